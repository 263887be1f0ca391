"""Tests for JSONL decoding and timestamp normalization."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from codexusage.usage.aggregator import load_snapshot
from codexusage.usage.config import UsageConfig
from codexusage.usage.estimator import estimate_tokens
from codexusage.usage.models import (
    EventKind,
    FunctionCallOutputPayload,
    MessagePayload,
    ReasoningPayload,
    TimestampSource,
    UnknownPayload,
)
from codexusage.usage.parser import (
    classify,
    extract_usage,
    load_events,
    parse_iso_timestamp,
    parse_session_file,
)
from helpers import write_jsonl


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestScenarios:
    def test_single_valid_line(self, tmp_path: Path) -> None:
        f = write_jsonl(
            tmp_path / "a.jsonl",
            ['{"timestamp":"2024-01-01T00:00:00Z","text":"hello world"}'],
        )
        events = parse_session_file(f)
        assert len(events) == 1
        assert events[0].timestamp == _utc(2024, 1, 1)
        assert events[0].source_file == f
        assert estimate_tokens(events[0]) == 3

    def test_malformed_file_yields_nothing(self, tmp_path: Path) -> None:
        f = write_jsonl(tmp_path / "b.jsonl", ['{"timestamp": oops'])
        assert parse_session_file(f) == []

    def test_missing_file_yields_nothing(self, tmp_path: Path) -> None:
        assert parse_session_file(tmp_path / "gone.jsonl") == []

    def test_event_count_matches_valid_lines(self, tmp_path: Path) -> None:
        a = write_jsonl(tmp_path / "a.jsonl", [{"a": 1}, "nope", "42", "", '"str"', "[1, 2"])
        b = write_jsonl(tmp_path / "b.jsonl", ["}", {"b": 2}, "null"])
        events = load_events([a, b])
        assert len(events) == 3 + 2
        assert [e.source_file for e in events] == [a, a, a, b, b]

    def test_append_order_preserved_for_equal_timestamps(self, tmp_path: Path) -> None:
        lines = [{"timestamp": "2024-01-01T00:00:00Z", "text": f"line-{i}"} for i in range(5)]
        events = parse_session_file(write_jsonl(tmp_path / "a.jsonl", lines))
        assert [e.text for e in events] == [f"line-{i}" for i in range(5)]


class TestTimestampPrecedence:
    def test_iso_wins_over_epoch(self, tmp_path: Path) -> None:
        f = write_jsonl(tmp_path / "a.jsonl", [{"timestamp": "2024-02-01T10:00:00Z", "ts": 0}])
        (event,) = parse_session_file(f)
        assert event.timestamp == _utc(2024, 2, 1, 10)
        assert event.timestamp_source is TimestampSource.ISO

    def test_epoch_seconds(self, tmp_path: Path) -> None:
        f = write_jsonl(tmp_path / "a.jsonl", [{"ts": 1704067200}])
        (event,) = parse_session_file(f)
        assert event.timestamp == _utc(2024, 1, 1)
        assert event.timestamp_source is TimestampSource.EPOCH

    def test_carry_forward(self, tmp_path: Path) -> None:
        f = write_jsonl(
            tmp_path / "a.jsonl",
            [{"timestamp": "2024-01-01T00:05:00Z"}, "garbage", {"text": "no ts"}, {"ts": 1704067260}, {}],
        )
        events = parse_session_file(f)
        assert [e.timestamp for e in events] == [
            _utc(2024, 1, 1, 0, 5),
            _utc(2024, 1, 1, 0, 5),
            _utc(2024, 1, 1, 0, 1),
            _utc(2024, 1, 1, 0, 1),
        ]
        assert events[1].timestamp_source is TimestampSource.CARRIED
        assert events[3].timestamp_source is TimestampSource.CARRIED

    def test_file_mtime_for_leading_records(self, tmp_path: Path) -> None:
        f = write_jsonl(tmp_path / "a.jsonl", [{"text": "a"}, {"text": "b"}], mtime=1_704_067_200)
        events = parse_session_file(f)
        assert all(e.timestamp == _utc(2024, 1, 1) for e in events)
        assert all(e.timestamp_source is TimestampSource.FILE_MTIME for e in events)

    def test_unparseable_iso_falls_through(self, tmp_path: Path) -> None:
        f = write_jsonl(tmp_path / "a.jsonl", [{"timestamp": "yesterday", "ts": 1704067200}])
        (event,) = parse_session_file(f)
        assert event.timestamp == _utc(2024, 1, 1)
        assert event.timestamp_source is TimestampSource.EPOCH

    def test_parse_iso_variants(self) -> None:
        assert parse_iso_timestamp("2024-01-01T00:00:00.123Z") == _utc(2024, 1, 1, 0, 0, 0, 123000)
        assert parse_iso_timestamp("2024-01-01T02:00:00+02:00") == _utc(2024, 1, 1)
        assert parse_iso_timestamp("2024-01-01T00:00:00") == _utc(2024, 1, 1)
        assert parse_iso_timestamp(12345) is None
        assert parse_iso_timestamp("") is None


class TestClassify:
    def test_wrapped_message(self) -> None:
        kind, payload = classify({
            "type": "response_item",
            "payload": {
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": "hi"}, {"type": "image"}],
            },
        })
        assert kind is EventKind.MESSAGE
        assert payload == MessagePayload(texts=("hi",))

    def test_bare_message(self) -> None:
        kind, payload = classify({"type": "message", "content": [{"text": "a"}, {"text": "b"}]})
        assert kind is EventKind.MESSAGE
        assert payload.texts == ("a", "b")

    def test_function_call_output_nested_json(self) -> None:
        raw = json.dumps({"output": "inner text", "metadata": {"exit_code": 0}})
        kind, payload = classify({"type": "function_call_output", "output": raw})
        assert kind is EventKind.FUNCTION_CALL_OUTPUT
        assert payload == FunctionCallOutputPayload(output="inner text", raw_output=raw)

    def test_function_call_output_plain(self) -> None:
        _, payload = classify({"type": "function_call_output", "output": "ls: done"})
        assert payload == FunctionCallOutputPayload(output="ls: done")

    def test_reasoning(self) -> None:
        kind, payload = classify({
            "type": "reasoning",
            "summary": [{"type": "summary_text", "text": "thinking"}],
        })
        assert kind is EventKind.REASONING
        assert payload == ReasoningPayload(summaries=("thinking",))

    def test_unknown(self) -> None:
        assert classify({"type": "session_meta"}) == (EventKind.OTHER, UnknownPayload(type="session_meta"))
        assert classify([1, 2, 3]) == (EventKind.OTHER, UnknownPayload())


class TestExtractUsage:
    def test_top_level_counters(self) -> None:
        usage = extract_usage({"input_tokens": 10, "output_tokens": 5})
        assert usage is not None and usage.total == 15

    def test_nested_message_usage(self) -> None:
        usage = extract_usage({
            "message": {"usage": {
                "input_tokens": 100,
                "cache_creation_input_tokens": 500,
                "cache_read_input_tokens": 2000,
                "output_tokens": 300,
            }},
        })
        assert usage is not None and usage.total == 2900

    def test_absent(self) -> None:
        assert extract_usage({"usage": {"foo": 1}}) is None
        assert extract_usage({"input_tokens": True}) is None
        assert extract_usage("text") is None


class TestHostileLines:
    def test_non_finite_counters_are_ignored(self, tmp_path: Path) -> None:
        f = write_jsonl(
            tmp_path / "a.jsonl",
            [
                '{"timestamp":"2024-01-01T00:00:00Z","input_tokens":1e400}',
                '{"output_tokens":-1e999}',
                '{"input_tokens":NaN,"text":"abcd"}',
                '{"input_tokens":Infinity,"output_tokens":5}',
            ],
        )
        events = parse_session_file(f)
        assert len(events) == 4
        assert [e.usage for e in events[:3]] == [None, None, None]
        assert [estimate_tokens(e) for e in events] == [0, 0, 1, 5]

    def test_non_finite_counter_does_not_sink_corpus(self, tmp_path: Path) -> None:
        base = tmp_path / ".codex"
        write_jsonl(base / "sessions" / "bad.jsonl", ['{"output_tokens":-1e999}'])
        write_jsonl(base / "sessions" / "good.jsonl", [{"timestamp": "2024-01-01T00:00:00Z", "input_tokens": 7}])
        assert load_snapshot(UsageConfig(base_dirs=(base,))).total_tokens == 7

    def test_deeply_nested_line_is_dropped(self, tmp_path: Path) -> None:
        f = write_jsonl(
            tmp_path / "a.jsonl",
            [{"text": "first"}, "[" * 100_000 + "]" * 100_000, {"text": "ok"}],
        )
        events = parse_session_file(f)
        assert [e.text for e in events] == ["first", "ok"]

    def test_deeply_nested_function_output_kept_verbatim(self) -> None:
        deep = "[" * 100_000 + "]" * 100_000
        _, payload = classify({"type": "function_call_output", "output": deep})
        assert payload == FunctionCallOutputPayload(output=deep)

    def test_out_of_range_offset_falls_through(self, tmp_path: Path) -> None:
        f = write_jsonl(
            tmp_path / "a.jsonl",
            [{"timestamp": "0001-01-01T00:00:00+01:00", "ts": 1704067200}],
        )
        (event,) = parse_session_file(f)
        assert event.timestamp == _utc(2024, 1, 1)
        assert event.timestamp_source is TimestampSource.EPOCH

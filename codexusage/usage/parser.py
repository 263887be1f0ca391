"""Decode Codex session JSONL files into normalized events.

Each line is an independent JSON value. Malformed lines are dropped, an
unreadable file yields no events, and every surviving record gets a resolved
UTC timestamp using this precedence:

1. an ISO-8601 ``timestamp`` string,
2. a numeric ``ts`` field (epoch seconds),
3. the previous record's resolved timestamp in the same file,
4. the file's modification time (first record only).

Records keep file-append order; it is the only tiebreak between records that
resolve to the same instant.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import (
    Event,
    EventKind,
    FunctionCallOutputPayload,
    MessagePayload,
    Payload,
    ReasoningPayload,
    TimestampSource,
    UnknownPayload,
    UsageCounters,
)

logger = logging.getLogger(__name__)

_READ_WORKERS = 8
_USAGE_FIELDS = (
    "input_tokens",
    "output_tokens",
    "cache_creation_input_tokens",
    "cache_read_input_tokens",
)


# -- Timestamps ----------------------------------------------------------------


def parse_iso_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime, or None."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        # offsets at the edges of the calendar can leave the datetime range
        return dt.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        logger.debug("Unparseable timestamp: %r", value)
        return None


def epoch_seconds_to_datetime(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def explicit_timestamp(record: Any) -> tuple[datetime, TimestampSource] | None:
    """Timestamp a record carries itself, ignoring carry-forward and mtime."""
    if not isinstance(record, dict):
        return None
    dt = parse_iso_timestamp(record.get("timestamp"))
    if dt is not None:
        return dt, TimestampSource.ISO
    dt = epoch_seconds_to_datetime(record.get("ts"))
    if dt is not None:
        return dt, TimestampSource.EPOCH
    return None


# -- Shape classification ------------------------------------------------------


def _item(record: dict[str, Any]) -> dict[str, Any]:
    """Return the response item: the wrapped ``payload`` if present, else the record."""
    payload = record.get("payload")
    if isinstance(payload, dict) and "type" in payload:
        return payload
    return record


def _block_texts(blocks: Any) -> tuple[str, ...]:
    if not isinstance(blocks, list):
        return ()
    texts: list[str] = []
    for block in blocks:
        if isinstance(block, dict) and isinstance(block.get("text"), str):
            texts.append(block["text"])
        elif isinstance(block, str):
            texts.append(block)
    return tuple(texts)


def _function_output(output: Any) -> FunctionCallOutputPayload:
    """Prefer a nested ``output`` string when the raw output is itself JSON.

    The undecoded string is kept as ``raw_output`` whenever it was unwrapped.
    """
    if isinstance(output, dict):
        nested = output.get("output")
        return FunctionCallOutputPayload(output=nested if isinstance(nested, str) else "")
    if not isinstance(output, str):
        return FunctionCallOutputPayload(output="")
    try:
        decoded = json.loads(output)
    except (ValueError, RecursionError):
        return FunctionCallOutputPayload(output=output)
    if isinstance(decoded, dict) and isinstance(decoded.get("output"), str):
        return FunctionCallOutputPayload(output=decoded["output"], raw_output=output)
    return FunctionCallOutputPayload(output=output)


def classify(record: Any) -> tuple[EventKind, Payload]:
    if not isinstance(record, dict):
        return EventKind.OTHER, UnknownPayload()

    item = _item(record)
    item_type = item.get("type")

    if item_type == "message" and isinstance(item.get("content"), list):
        return EventKind.MESSAGE, MessagePayload(texts=_block_texts(item["content"]))

    # Claude-style records nest the message one level down
    message = item.get("message")
    if isinstance(message, dict) and isinstance(message.get("content"), list):
        return EventKind.MESSAGE, MessagePayload(texts=_block_texts(message["content"]))

    if item_type == "function_call_output":
        return EventKind.FUNCTION_CALL_OUTPUT, _function_output(item.get("output"))

    if item_type == "reasoning":
        return EventKind.REASONING, ReasoningPayload(summaries=_block_texts(item.get("summary")))

    return EventKind.OTHER, UnknownPayload(type=item_type if isinstance(item_type, str) else None)


def _counter(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # json.loads accepts NaN, Infinity and out-of-range floats like 1e400
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return max(0, int(value))


def _counters_from(mapping: Any) -> UsageCounters | None:
    if not isinstance(mapping, dict):
        return None
    values = {name: _counter(mapping.get(name)) for name in _USAGE_FIELDS}
    if all(v is None for v in values.values()):
        return None
    return UsageCounters(**{name: v or 0 for name, v in values.items()})


def extract_usage(record: Any) -> UsageCounters | None:
    """Find explicit usage counters on the record, its message, or its payload."""
    if not isinstance(record, dict):
        return None
    candidates: list[Any] = [record, record.get("usage")]
    message = record.get("message")
    if isinstance(message, dict):
        candidates.append(message.get("usage"))
    payload = record.get("payload")
    if isinstance(payload, dict):
        candidates.append(payload.get("usage"))
    for candidate in candidates:
        usage = _counters_from(candidate)
        if usage is not None:
            return usage
    return None


# -- File reading --------------------------------------------------------------


def iter_records(path: Path) -> Iterator[Any]:
    """Yield each decodable JSON value in the file, dropping malformed lines."""
    dropped = 0
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                # RecursionError: valid JSON nested deeper than the decoder allows
                try:
                    record = json.loads(line)
                except (ValueError, RecursionError):
                    dropped += 1
                    continue
                yield record
    except OSError as e:
        logger.debug("Could not read %s: %s", path, e)
        return
    if dropped:
        logger.debug("Dropped %d malformed line(s) in %s", dropped, path)


def build_event(
    record: Any,
    source_file: Path,
    timestamp: datetime,
    timestamp_source: TimestampSource,
) -> Event:
    kind, payload = classify(record)
    text = record.get("text") if isinstance(record, dict) else None
    return Event(
        source_file=source_file,
        timestamp=timestamp,
        timestamp_source=timestamp_source,
        kind=kind,
        payload=payload,
        text=text if isinstance(text, str) else None,
        usage=extract_usage(record),
    )


def parse_session_file(path: Path) -> list[Event]:
    """Decode and normalize one session file. Never raises."""
    path = Path(path)
    try:
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    except OSError as e:
        logger.debug("Could not stat %s: %s", path, e)
        return []

    events: list[Event] = []
    carried: tuple[datetime, TimestampSource] | None = None

    for record in iter_records(path):
        resolved = explicit_timestamp(record)
        if resolved is None:
            if carried is not None:
                ts, origin = carried
                # mtime-derived instants stay marked as such when carried forward
                if origin is not TimestampSource.FILE_MTIME:
                    origin = TimestampSource.CARRIED
                resolved = (ts, origin)
            else:
                resolved = (mtime, TimestampSource.FILE_MTIME)
        events.append(build_event(record, path, resolved[0], resolved[1]))
        carried = resolved

    return events


def load_events(files: Iterable[Path]) -> list[Event]:
    """Parse files concurrently and concatenate in the given file order."""
    files = list(files)
    if not files:
        return []
    with ThreadPoolExecutor(max_workers=_READ_WORKERS) as pool:
        per_file = list(pool.map(parse_session_file, files))
    events: list[Event] = []
    for file_events in per_file:
        events.extend(file_events)
    return events

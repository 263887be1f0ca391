"""Plain builders shared by the test modules."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from codexusage.usage.models import Event, TimestampSource
from codexusage.usage.parser import build_event

NOW = datetime(2024, 1, 1, 12, 0, 30, tzinfo=timezone.utc)


def write_jsonl(path: Path, lines: list[Any], mtime: float | None = None) -> Path:
    """Write records (dicts are JSON-encoded, strings written verbatim)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for line in lines:
            f.write((line if isinstance(line, str) else json.dumps(line)) + "\n")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


def make_event(
    record: Any,
    timestamp: datetime,
    source: Path = Path("/codex/sessions/2024/01/01/rollout.jsonl"),
    timestamp_source: TimestampSource = TimestampSource.ISO,
) -> Event:
    return build_event(record, source, timestamp, timestamp_source)


def text_of(n_chars: int) -> str:
    return "x" * n_chars


"""Value types shared by the usage engine.

Everything here is a transient, recomputed-on-demand value: events are rebuilt
from raw session files on every pass and snapshots are never mutated after
they are produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Union


class EventKind(str, Enum):
    MESSAGE = "message"
    FUNCTION_CALL_OUTPUT = "function_call_output"
    REASONING = "reasoning"
    OTHER = "other"


class TimestampSource(str, Enum):
    """Where an event's resolved timestamp came from, in precedence order."""

    ISO = "iso"
    EPOCH = "epoch"
    CARRIED = "carried"
    FILE_MTIME = "file_mtime"


# -- Payload variant -----------------------------------------------------------


@dataclass(frozen=True)
class MessagePayload:
    texts: tuple[str, ...] = ()


@dataclass(frozen=True)
class FunctionCallOutputPayload:
    output: str
    raw_output: str = ""  # undecoded JSON wrapper when `output` was unwrapped from it


@dataclass(frozen=True)
class ReasoningPayload:
    summaries: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnknownPayload:
    type: str | None = None


Payload = Union[MessagePayload, FunctionCallOutputPayload, ReasoningPayload, UnknownPayload]


@dataclass(frozen=True)
class UsageCounters:
    """Explicit token counters reported by the assistant itself."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_input_tokens
            + self.cache_read_input_tokens
        )


# -- Events --------------------------------------------------------------------


@dataclass(frozen=True)
class Event:
    """One decoded, timestamp-normalized log record."""

    source_file: Path
    timestamp: datetime  # always timezone-aware UTC
    timestamp_source: TimestampSource
    kind: EventKind
    payload: Payload
    text: str | None = None  # plain top-level text field
    usage: UsageCounters | None = None


# -- Aggregates ----------------------------------------------------------------


@dataclass(frozen=True)
class TimeBucket:
    minute_key: str
    tokens: int = 0
    messages: int = 0


@dataclass(frozen=True)
class DayRow:
    date: str
    tokens: int = 0
    messages: int = 0


@dataclass(frozen=True)
class MonthRow:
    month: str
    tokens: int = 0
    messages: int = 0


@dataclass(frozen=True)
class BlockWindow:
    start: datetime
    end: datetime
    window_hours: float


@dataclass(frozen=True)
class BlockStats:
    window: BlockWindow
    tokens_in_block: int
    remaining_ms: int
    burn_tokens_per_minute: float
    burn_window_minutes: float
    burn_series: tuple[TimeBucket, ...]
    token_limit: int | None = None
    percent_of_limit: float | None = None
    eta_minutes_to_limit: float | None = None
    explicit_reset_ms: int | None = None


@dataclass(frozen=True)
class RecentEvent:
    time: str
    tokens: int
    kind: str
    file: str


@dataclass(frozen=True)
class SessionSummary:
    file: str
    entries: int
    started: str | None


@dataclass(frozen=True)
class Snapshot:
    """Complete result of one aggregation pass."""

    total_tokens: int = 0
    total_messages: int = 0
    timeline: tuple[str, ...] = ()
    points: tuple[TimeBucket, ...] = ()

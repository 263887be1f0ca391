"""Usage engine: discovery, parsing, estimation, aggregation."""

from .aggregator import (
    build_snapshot,
    compute_block_stats,
    daily_rollup,
    load_corpus,
    load_current_block_stats,
    load_daily_report,
    load_monthly_report,
    load_recent_events,
    load_session_summaries,
    load_snapshot,
    monthly_rollup,
    recent_events,
    resolve_block_window,
)
from .config import BlockAnchor, UsageConfig
from .discovery import NoSessionRootsError, list_session_files, require_session_roots
from .estimator import estimate_tokens
from .models import BlockStats, BlockWindow, DayRow, Event, EventKind, Snapshot, TimeBucket
from .parser import parse_session_file
from .reset_scanner import find_reset_ms

__all__ = [
    "BlockAnchor",
    "BlockStats",
    "BlockWindow",
    "DayRow",
    "Event",
    "EventKind",
    "NoSessionRootsError",
    "Snapshot",
    "TimeBucket",
    "UsageConfig",
    "build_snapshot",
    "compute_block_stats",
    "daily_rollup",
    "estimate_tokens",
    "find_reset_ms",
    "list_session_files",
    "load_corpus",
    "load_current_block_stats",
    "load_daily_report",
    "load_monthly_report",
    "load_recent_events",
    "load_session_summaries",
    "load_snapshot",
    "monthly_rollup",
    "parse_session_file",
    "recent_events",
    "require_session_roots",
    "resolve_block_window",
]

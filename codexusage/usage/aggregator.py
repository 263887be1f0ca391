"""Fold normalized events into timeline, daily, block and tail views.

Every fold runs from scratch over an already-materialized event list; nothing
is cached or updated incrementally between passes. All calendar and minute
bucketing is done in UTC.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .config import BlockAnchor, UsageConfig
from .discovery import list_session_files
from .estimator import estimate_tokens
from .models import (
    BlockStats,
    BlockWindow,
    DayRow,
    Event,
    EventKind,
    MonthRow,
    RecentEvent,
    SessionSummary,
    Snapshot,
    TimeBucket,
    TimestampSource,
)
from .parser import explicit_timestamp, iter_records, load_events
from .reset_scanner import find_reset_ms

logger = logging.getLogger(__name__)

BURN_SERIES_MINUTES = 60
SESSION_LISTING_DISCOVERY_LIMIT = 200

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS = timedelta(milliseconds=1)


# -- Time helpers --------------------------------------------------------------


def to_ms(dt: datetime) -> int:
    return (dt - _EPOCH) // _MS


def from_ms(ms: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=ms)


def iso_z(dt: datetime) -> str:
    """Millisecond-precision UTC ISO string, e.g. ``2024-01-01T00:00:00.000Z``."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def minute_floor(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(second=0, microsecond=0)


def minute_key(dt: datetime) -> str:
    return iso_z(minute_floor(dt))


def path_date(path: Path) -> str | None:
    """Date from a ``sessions/YYYY/MM/DD/...`` storage path, if present."""
    parts = Path(path).parts
    try:
        i = parts.index("sessions")
    except ValueError:
        return None
    if len(parts) <= i + 3:
        return None
    yyyy, mm, dd = parts[i + 1], parts[i + 2], parts[i + 3]
    if not (len(yyyy) == 4 and len(mm) == 2 and len(dd) == 2):
        return None
    if not (yyyy.isdigit() and mm.isdigit() and dd.isdigit()):
        return None
    return f"{yyyy}-{mm}-{dd}"


def event_date(event: Event) -> str:
    if event.timestamp_source is TimestampSource.FILE_MTIME:
        from_path = path_date(event.source_file)
        if from_path:
            return from_path
    return event.timestamp.astimezone(timezone.utc).date().isoformat()


def _now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


# -- Timeline ------------------------------------------------------------------


def build_snapshot(events: Iterable[Event]) -> Snapshot:
    buckets: dict[str, list[int]] = {}
    total_tokens = 0
    total_messages = 0

    for event in events:
        tokens = estimate_tokens(event)
        total_tokens += tokens
        if event.kind is EventKind.MESSAGE:
            total_messages += 1
        bucket = buckets.setdefault(minute_key(event.timestamp), [0, 0])
        bucket[0] += tokens
        if tokens > 0:
            bucket[1] += 1

    keys = sorted(buckets)
    return Snapshot(
        total_tokens=total_tokens,
        total_messages=total_messages,
        timeline=tuple(keys),
        points=tuple(TimeBucket(minute_key=k, tokens=buckets[k][0], messages=buckets[k][1]) for k in keys),
    )


# -- Daily / monthly -----------------------------------------------------------


def daily_rollup(events: Iterable[Event]) -> list[DayRow]:
    by_date: dict[str, list[int]] = {}
    for event in events:
        tokens = estimate_tokens(event)
        row = by_date.setdefault(event_date(event), [0, 0])
        row[0] += tokens
        if tokens > 0:
            row[1] += 1
    return [DayRow(date=d, tokens=v[0], messages=v[1]) for d, v in sorted(by_date.items())]


def monthly_rollup(days: Iterable[DayRow]) -> list[MonthRow]:
    by_month: dict[str, list[int]] = {}
    for day in days:
        row = by_month.setdefault(day.date[:7], [0, 0])
        row[0] += day.tokens
        row[1] += day.messages
    return [MonthRow(month=m, tokens=v[0], messages=v[1]) for m, v in sorted(by_month.items())]


# -- Block window --------------------------------------------------------------


def resolve_block_window(
    now: datetime,
    window_hours: float,
    anchor: BlockAnchor | str = BlockAnchor.ROLLING,
    reset_ms: int | None = None,
) -> BlockWindow:
    """Resolve the active window.

    A reset instant strictly between ``now`` and ``now + window`` overrides the
    anchor mode: it becomes the end and the start is one window before it.
    """
    now = _now(now)
    window = timedelta(hours=window_hours)
    window_ms = window // _MS
    now_ms = to_ms(now)

    if reset_ms is not None and now_ms < reset_ms < now_ms + window_ms:
        end = from_ms(reset_ms)
        return BlockWindow(start=end - window, end=end, window_hours=window_hours)

    if BlockAnchor(anchor) is BlockAnchor.EPOCH:
        start_ms = (now_ms // window_ms) * window_ms
        start = from_ms(start_ms)
        return BlockWindow(start=start, end=start + window, window_hours=window_hours)

    return BlockWindow(start=now - window, end=now, window_hours=window_hours)


def burn_series(events: Iterable[Event], now: datetime) -> tuple[TimeBucket, ...]:
    """Sixty one-minute buckets ending with the minute containing ``now``."""
    last = minute_floor(_now(now))
    first = last - timedelta(minutes=BURN_SERIES_MINUTES - 1)
    horizon = last + timedelta(minutes=1)

    sums: dict[str, list[int]] = {}
    for event in events:
        if first <= event.timestamp < horizon:
            tokens = estimate_tokens(event)
            bucket = sums.setdefault(minute_key(event.timestamp), [0, 0])
            bucket[0] += tokens
            if tokens > 0:
                bucket[1] += 1

    series = []
    for i in range(BURN_SERIES_MINUTES):
        key = iso_z(first + timedelta(minutes=i))
        tokens, messages = sums.get(key, (0, 0))
        series.append(TimeBucket(minute_key=key, tokens=tokens, messages=messages))
    return tuple(series)


def compute_block_stats(
    events: Sequence[Event],
    config: UsageConfig,
    now: datetime | None = None,
    reset_ms: int | None = None,
) -> BlockStats:
    """Block-window usage, burn rate and cap projection.

    Args:
        events: The normalized corpus.
        config: Window size, anchor, cap and burn-window settings.
        now: Evaluation instant; defaults to the current wall clock.
        reset_ms: Detected reset instant. When omitted the corpus is scanned.
    """
    now = _now(now)
    if reset_ms is None:
        reset_ms = find_reset_ms(events)

    window = resolve_block_window(now, config.window_hours, config.anchor, reset_ms)

    burn_start = max(now - timedelta(minutes=config.burn_window_minutes), window.start)
    elapsed_minutes = max(0.0, (now - burn_start).total_seconds() / 60)

    tokens_in_block = 0
    tokens_in_burn = 0
    for event in events:
        in_block = window.start <= event.timestamp < window.end
        in_burn = burn_start <= event.timestamp <= now
        if not (in_block or in_burn):
            continue
        tokens = estimate_tokens(event)
        if in_block:
            tokens_in_block += tokens
        if in_burn:
            tokens_in_burn += tokens

    burn_rate = tokens_in_burn / max(1.0, elapsed_minutes)

    percent: float | None = None
    eta: float | None = None
    if config.token_limit:
        percent = min(100.0, 100.0 * tokens_in_block / config.token_limit)
        if burn_rate > 0:
            eta = max(0.0, (config.token_limit - tokens_in_block) / burn_rate)

    return BlockStats(
        window=window,
        tokens_in_block=tokens_in_block,
        remaining_ms=max(0, to_ms(window.end) - to_ms(now)),
        burn_tokens_per_minute=burn_rate,
        burn_window_minutes=config.burn_window_minutes,
        burn_series=burn_series(events, now),
        token_limit=config.token_limit,
        percent_of_limit=percent,
        eta_minutes_to_limit=eta,
        explicit_reset_ms=reset_ms,
    )


# -- Recent tail ---------------------------------------------------------------


def recent_events(
    events: Iterable[Event],
    now: datetime | None = None,
    within_minutes: float = 15,
    max_count: int = 20,
) -> list[RecentEvent]:
    """Token-bearing events from the trailing window, oldest first."""
    now = _now(now)
    cutoff = now - timedelta(minutes=within_minutes)

    recent: list[tuple[Event, int]] = []
    for event in events:
        if not (cutoff <= event.timestamp <= now):
            continue
        tokens = estimate_tokens(event)
        if tokens > 0:
            recent.append((event, tokens))

    # stable: equal timestamps keep corpus (file-append) order
    recent.sort(key=lambda pair: pair[0].timestamp)
    if max_count > 0:
        recent = recent[-max_count:]
    else:
        recent = []

    return [
        RecentEvent(
            time=iso_z(event.timestamp),
            tokens=tokens,
            kind=event.kind.value,
            file=event.source_file.name,
        )
        for event, tokens in recent
    ]


# -- Session listing -----------------------------------------------------------


def summarize_session_file(path: Path) -> SessionSummary:
    entries = 0
    started: str | None = None
    for record in iter_records(path):
        entries += 1
        if started is None:
            resolved = explicit_timestamp(record)
            if resolved is not None:
                started = iso_z(resolved[0])
    return SessionSummary(file="/".join(Path(path).parts[-4:]), entries=entries, started=started)


# -- Entry points (discover + parse + fold) ------------------------------------


def load_corpus(config: UsageConfig) -> list[Event]:
    files = list_session_files(config.base_dirs, limit=config.limit)
    events = load_events(files)
    logger.debug("Loaded %d events from %d files", len(events), len(files))
    return events


def load_snapshot(config: UsageConfig) -> Snapshot:
    return build_snapshot(load_corpus(config))


def load_daily_report(config: UsageConfig) -> list[DayRow]:
    return daily_rollup(load_corpus(config))


def load_monthly_report(config: UsageConfig) -> list[MonthRow]:
    return monthly_rollup(daily_rollup(load_corpus(config)))


def load_current_block_stats(config: UsageConfig, now: datetime | None = None) -> BlockStats:
    return compute_block_stats(load_corpus(config), config, now=now)


def load_recent_events(
    config: UsageConfig,
    now: datetime | None = None,
    within_minutes: float | None = None,
    max_count: int | None = None,
) -> list[RecentEvent]:
    return recent_events(
        load_corpus(config),
        now=now,
        within_minutes=config.tail_minutes if within_minutes is None else within_minutes,
        max_count=config.tail_max if max_count is None else max_count,
    )


def load_session_summaries(config: UsageConfig, count: int = 20) -> list[SessionSummary]:
    files = list_session_files(config.base_dirs, limit=SESSION_LISTING_DISCOVERY_LIMIT)
    return [summarize_session_file(f) for f in files[-count:]] if count > 0 else []

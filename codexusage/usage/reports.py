"""Report shapes handed to the CLI and HTTP layers.

Pure conversions from engine values to JSON-safe dicts and text lines; no I/O.
"""

from __future__ import annotations

import csv
import io
import math
from collections.abc import Iterable
from typing import Any

from .aggregator import iso_z, to_ms
from .models import (
    BlockStats,
    DayRow,
    MonthRow,
    RecentEvent,
    SessionSummary,
    Snapshot,
    TimeBucket,
)


def _bucket_to_dict(b: TimeBucket) -> dict[str, Any]:
    return {"minuteKey": b.minute_key, "tokens": b.tokens, "messages": b.messages}


def snapshot_to_dict(s: Snapshot) -> dict[str, Any]:
    return {
        "totalTokens": s.total_tokens,
        "totalMessages": s.total_messages,
        "timeline": list(s.timeline),
        "points": [_bucket_to_dict(p) for p in s.points],
    }


def day_rows_to_dicts(rows: Iterable[DayRow]) -> list[dict[str, Any]]:
    return [{"date": r.date, "tokens": r.tokens, "messages": r.messages} for r in rows]


def month_rows_to_dicts(rows: Iterable[MonthRow]) -> list[dict[str, Any]]:
    return [{"month": r.month, "tokens": r.tokens, "messages": r.messages} for r in rows]


def recent_to_dicts(rows: Iterable[RecentEvent]) -> list[dict[str, Any]]:
    return [{"time": r.time, "tokens": r.tokens, "kind": r.kind, "file": r.file} for r in rows]


def sessions_to_dicts(rows: Iterable[SessionSummary]) -> list[dict[str, Any]]:
    return [{"file": r.file, "entries": r.entries, "started": r.started} for r in rows]


def render_daily_csv(rows: Iterable[DayRow]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(["date", "tokens", "messages"])
    for r in rows:
        writer.writerow([r.date, r.tokens, r.messages])
    return buf.getvalue()


# -- Block / statusline --------------------------------------------------------


def remaining_minutes(stats: BlockStats) -> int:
    return stats.remaining_ms // 60_000


def _js_round(value: float) -> int:
    return math.floor(value + 0.5)


def block_to_dict(stats: BlockStats, include_series: bool = False) -> dict[str, Any]:
    """JSON shape of the current block, as printed by ``codexusage blocks --json``."""
    data: dict[str, Any] = {
        "window": {
            "start": iso_z(stats.window.start),
            "end": iso_z(stats.window.end),
            "startMs": to_ms(stats.window.start),
            "endMs": to_ms(stats.window.end),
            "windowHours": stats.window.window_hours,
        },
        "explicitResetMs": stats.explicit_reset_ms,
        "tokensInBlock": stats.tokens_in_block,
        "tokenLimit": stats.token_limit,
        "percentOfLimit": stats.percent_of_limit,
        "remainingMinutes": remaining_minutes(stats),
        "burn": {
            "tokensPerMinute": _js_round(stats.burn_tokens_per_minute),
            "windowMinutes": stats.burn_window_minutes,
        },
        "etaMinutesToLimit": stats.eta_minutes_to_limit,
    }
    if include_series:
        data["burnSeries"] = [_bucket_to_dict(b) for b in stats.burn_series]
    return data


def format_hours_minutes(total_minutes: int) -> str:
    hours = total_minutes // 60
    minutes = max(0, total_minutes % 60)
    return f"{hours}h{minutes:02d}m"


def statusline_to_dict(stats: BlockStats) -> dict[str, Any]:
    pct = _js_round(stats.percent_of_limit) if stats.percent_of_limit is not None else None
    eta = (
        max(0, math.floor(stats.eta_minutes_to_limit))
        if stats.eta_minutes_to_limit is not None
        else None
    )
    return {
        "remainingMinutes": remaining_minutes(stats),
        "percentOfLimit": pct,
        "etaMinutesToLimit": eta,
        "tokensPerMinute": _js_round(stats.burn_tokens_per_minute),
    }


def render_statusline(stats: BlockStats) -> str:
    """One-line status, e.g. ``Cap 40% | ETA 50m | Burn 12/m | Rem 2h05m``."""
    d = statusline_to_dict(stats)
    parts: list[str] = []
    if d["percentOfLimit"] is not None:
        parts.append(f"Cap {d['percentOfLimit']}%")
    if d["etaMinutesToLimit"] is not None:
        parts.append(f"ETA {d['etaMinutesToLimit']}m")
    parts.append(f"Burn {d['tokensPerMinute']}/m")
    parts.append(f"Rem {format_hours_minutes(d['remainingMinutes'])}")
    return " | ".join(parts)

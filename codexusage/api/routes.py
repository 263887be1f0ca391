"""API routes for usage reports and the live snapshot stream.

Endpoints (mounted under ``/api``):
  GET /usage/snapshot: totals + per-minute timeline
  GET /usage/daily: daily rollup rows
  GET /usage/monthly: monthly rollup rows
  GET /usage/blocks: current block window, burn rate, cap projection
  GET /usage/statusline: compact block summary (text + fields)
  GET /usage/tail: recent token-bearing events
  GET /usage/sessions: most recent session files
  GET /usage/stream: SSE stream of live snapshots
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from codexusage.usage import aggregator
from codexusage.usage.config import UsageConfig
from codexusage.usage.discovery import NoSessionRootsError, require_session_roots
from codexusage.usage.models import Snapshot
from codexusage.usage.reports import (
    block_to_dict,
    day_rows_to_dicts,
    month_rows_to_dicts,
    recent_to_dicts,
    render_statusline,
    sessions_to_dicts,
    snapshot_to_dict,
    statusline_to_dict,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# ── SSE subscriber list (in-memory) ──────────────────────────────────────────

_sse_queues: list[asyncio.Queue[dict[str, Any]]] = []


def broadcast_snapshot(snapshot: Snapshot) -> None:
    """Push a delivered snapshot to all SSE subscribers."""
    data = snapshot_to_dict(snapshot)
    for q in _sse_queues:
        try:
            q.put_nowait(data)
        except asyncio.QueueFull:
            pass  # slow consumer: drop


def _config(request: Request) -> UsageConfig:
    config: UsageConfig = request.app.state.config
    try:
        require_session_roots(config.base_dirs)
    except NoSessionRootsError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return config


# ── Reports ──────────────────────────────────────────────────────────────────


@router.get("/usage/snapshot")
def get_snapshot(request: Request) -> dict[str, Any]:
    """Recompute the full snapshot from session files."""
    return snapshot_to_dict(aggregator.load_snapshot(_config(request)))


@router.get("/usage/daily")
def get_daily(request: Request) -> dict[str, Any]:
    rows = aggregator.load_daily_report(_config(request))
    return {"daily": day_rows_to_dicts(rows)}


@router.get("/usage/monthly")
def get_monthly(request: Request) -> dict[str, Any]:
    rows = aggregator.load_monthly_report(_config(request))
    return {"monthly": month_rows_to_dicts(rows)}


@router.get("/usage/blocks")
def get_blocks(request: Request, series: bool = False) -> dict[str, Any]:
    """Current block window with burn rate and ETA to the configured cap."""
    stats = aggregator.load_current_block_stats(_config(request))
    return block_to_dict(stats, include_series=series)


@router.get("/usage/statusline")
def get_statusline(request: Request) -> dict[str, Any]:
    stats = aggregator.load_current_block_stats(_config(request))
    return {"text": render_statusline(stats), **statusline_to_dict(stats)}


@router.get("/usage/tail")
def get_tail(
    request: Request,
    minutes: float | None = Query(default=None, gt=0),
    max_count: int | None = Query(default=None, ge=1, alias="max"),
) -> dict[str, Any]:
    rows = aggregator.load_recent_events(
        _config(request), within_minutes=minutes, max_count=max_count,
    )
    return {"events": recent_to_dicts(rows)}


@router.get("/usage/sessions")
def get_sessions(request: Request, count: int = Query(default=20, ge=1, le=200)) -> dict[str, Any]:
    rows = aggregator.load_session_summaries(_config(request), count=count)
    return {"sessions": sessions_to_dicts(rows)}


# ── SSE stream ───────────────────────────────────────────────────────────────


@router.get("/usage/stream")
async def usage_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream of live snapshots."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=50)
    _sse_queues.append(queue)

    async def event_generator():
        try:
            scheduler = getattr(request.app.state, "scheduler", None)
            latest = scheduler.latest if scheduler is not None else None
            initial = snapshot_to_dict(latest) if latest is not None else snapshot_to_dict(Snapshot())
            yield f"event: init\ndata: {json.dumps(initial)}\n\n"

            while True:
                if await request.is_disconnected():
                    break

                try:
                    data = await asyncio.wait_for(queue.get(), timeout=30)
                    yield f"event: snapshot\ndata: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            _sse_queues.remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )

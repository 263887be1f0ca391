"""Entry point for the codexusage command."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codexusage.config import settings
from codexusage.live.scheduler import create_scheduler
from codexusage.usage import aggregator
from codexusage.usage.config import UsageConfig
from codexusage.usage.discovery import NoSessionRootsError, require_session_roots
from codexusage.usage.models import Snapshot
from codexusage.usage.reports import (
    block_to_dict,
    format_hours_minutes,
    recent_to_dicts,
    remaining_minutes,
    render_daily_csv,
    render_statusline,
    statusline_to_dict,
)

console = Console()


def run_daily(config: UsageConfig, as_csv: bool) -> None:
    rows = aggregator.load_daily_report(config)
    if as_csv:
        sys.stdout.write(render_daily_csv(rows))
        return
    if not rows:
        console.print("No Codex usage found.")
        return
    table = Table(title="Daily usage (estimated)")
    table.add_column("Date")
    table.add_column("Tokens", justify="right")
    table.add_column("Messages", justify="right")
    for r in rows:
        table.add_row(r.date, f"{r.tokens:,}", f"{r.messages:,}")
    console.print(table)


def run_monthly(config: UsageConfig) -> None:
    rows = aggregator.load_monthly_report(config)
    table = Table(title="Monthly usage (estimated)")
    table.add_column("Month")
    table.add_column("Tokens", justify="right")
    table.add_column("Messages", justify="right")
    for r in rows:
        table.add_row(r.month, f"{r.tokens:,}", f"{r.messages:,}")
    console.print(table)


def run_sessions(config: UsageConfig) -> None:
    rows = aggregator.load_session_summaries(config)
    table = Table(title="Recent sessions")
    table.add_column("File")
    table.add_column("Entries", justify="right")
    table.add_column("Started")
    for r in rows:
        table.add_row(r.file, str(r.entries), r.started or "-")
    console.print(table)


def run_blocks(config: UsageConfig, as_json: bool) -> None:
    stats = aggregator.load_current_block_stats(config)
    if as_json:
        print(json.dumps(block_to_dict(stats), indent=2))
        return

    d = block_to_dict(stats)
    table = Table(show_header=False, box=None)
    table.add_row("window hours", str(stats.window.window_hours))
    table.add_row("start", d["window"]["start"])
    table.add_row("end", d["window"]["end"])
    table.add_row("remaining", format_hours_minutes(remaining_minutes(stats)))
    table.add_row("tokens (est)", f"{stats.tokens_in_block:,}")
    table.add_row("burn rate (tpm)", str(d["burn"]["tokensPerMinute"]))
    if stats.token_limit:
        table.add_row("cap", f"{stats.token_limit:,}")
        table.add_row("cap usage %", str(round(stats.percent_of_limit or 0)))
        if stats.eta_minutes_to_limit is not None:
            table.add_row("ETA to cap (min)", str(int(stats.eta_minutes_to_limit)))
    console.print(Panel(table, title="Current Block"))


def run_statusline(config: UsageConfig, as_json: bool) -> None:
    stats = aggregator.load_current_block_stats(config)
    if as_json:
        print(json.dumps(statusline_to_dict(stats), indent=2))
    else:
        print(render_statusline(stats))


def run_tail(config: UsageConfig, minutes: float | None, max_count: int | None, as_json: bool) -> None:
    rows = aggregator.load_recent_events(config, within_minutes=minutes, max_count=max_count)
    if as_json:
        print(json.dumps(recent_to_dicts(rows), indent=2))
        return
    if not rows:
        console.print("No recent token-bearing events found.")
        return
    table = Table(title="Recent events")
    for col in ("Time", "Tokens", "Kind", "File"):
        table.add_column(col, justify="right" if col == "Tokens" else "left")
    for r in rows:
        table.add_row(r.time, str(r.tokens), r.kind, r.file)
    console.print(table)


def run_watch(config: UsageConfig, mode: str) -> None:
    """Print a one-line summary per delivered snapshot until interrupted."""

    def show(snap: Snapshot) -> None:
        last = snap.points[-1].tokens if snap.points else 0
        console.print(
            f"[dim]{datetime.now().strftime('%H:%M:%S')}[/dim] "
            f"tokens (est) [bold]{snap.total_tokens:,}[/bold] | "
            f"messages {snap.total_messages:,} | last minute {last:,}"
        )

    async def _run() -> None:
        scheduler = create_scheduler(config, on_snapshot=show, mode=mode)
        await scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()

    console.print(Panel(f"Watching Codex sessions ({mode})", style="bold blue"))
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


def run_server(config: UsageConfig) -> None:
    from codexusage.api.server import create_app

    console.print(Panel("Starting codexusage API", style="bold green"))
    uvicorn.run(
        create_app(config, live_mode=settings.live_mode),
        host=settings.api_host,
        port=settings.api_port,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codexusage", description="Estimated Codex token usage from session logs",
    )
    sub = parser.add_subparsers(dest="command")

    daily = sub.add_parser("daily", help="Daily rollup")
    daily.add_argument("--csv", action="store_true", help="Print CSV rows")

    sub.add_parser("monthly", help="Monthly rollup")
    sub.add_parser("sessions", help="Most recent session files")

    blocks = sub.add_parser("blocks", help="Current block window and burn rate")
    blocks.add_argument("--json", action="store_true")

    statusline = sub.add_parser("statusline", help="One-line block summary")
    statusline.add_argument("--json", action="store_true")

    tail = sub.add_parser("tail", help="Recent token-bearing events")
    tail.add_argument("--minutes", type=float, default=None)
    tail.add_argument("--max", type=int, default=None, dest="max_count")
    tail.add_argument("--json", action="store_true")

    watch = sub.add_parser("watch", help="Live summary on every change")
    watch.add_argument("--mode", choices=["watch", "poll"], default=None)

    sub.add_parser("serve", help="Start the API server")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 2

    config = settings.usage_config()
    try:
        require_session_roots(config.base_dirs)
    except NoSessionRootsError as e:
        console.print(f"[red]codexusage error:[/red] {e}")
        return 1

    if args.command == "daily":
        run_daily(config, args.csv)
    elif args.command == "monthly":
        run_monthly(config)
    elif args.command == "sessions":
        run_sessions(config)
    elif args.command == "blocks":
        run_blocks(config, args.json)
    elif args.command == "statusline":
        run_statusline(config, args.json)
    elif args.command == "tail":
        run_tail(config, args.minutes, args.max_count, args.json)
    elif args.command == "watch":
        run_watch(config, args.mode or settings.live_mode)
    elif args.command == "serve":
        run_server(config)
    return 0


if __name__ == "__main__":
    sys.exit(main())

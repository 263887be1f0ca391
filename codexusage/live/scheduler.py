"""Live snapshot delivery, either change-driven (debounced) or fixed-interval polling.

Both strategies recompute the full snapshot from disk on every cycle and hand
it to a single subscriber callback and to the ``snapshots`` queue. At most one
recompute is scheduled or in flight at any time; failures while building or
delivering are logged and the next trigger proceeds normally.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any, Generic, TypeVar

from watchfiles import awatch

from ..usage.aggregator import load_snapshot
from ..usage.config import UsageConfig
from ..usage.discovery import SESSION_FILE_SUFFIX

logger = logging.getLogger(__name__)

T = TypeVar("T")

_QUEUE_SIZE = 16


def watch_targets(roots: Iterable[Path]) -> list[Path]:
    """Each session root, or its base directory while the root does not exist yet."""
    targets: list[Path] = []
    for root in roots:
        target = root if root.is_dir() else root.parent
        if target.is_dir() and target not in targets:
            targets.append(target)
    return targets


class SnapshotScheduler(Generic[T]):
    """Shared delivery plumbing for the two live strategies."""

    strategy = "base"

    def __init__(
        self,
        build: Callable[[], T],
        on_snapshot: Callable[[T], Any] | None = None,
        queue_size: int = _QUEUE_SIZE,
    ) -> None:
        self._build = build
        self.on_snapshot = on_snapshot
        self.snapshots: asyncio.Queue[T] = asyncio.Queue(maxsize=queue_size)
        self.latest: T | None = None
        self.deliveries = 0
        self._running = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Deliver one snapshot immediately, then begin scheduling."""
        if self._running or self._stopped:
            return
        self._running = True
        await self._recompute_and_deliver()
        self._begin()
        logger.info("Live scheduler started (%s)", self.strategy)

    async def stop(self) -> None:
        """Halt deliveries and release watch/timer resources. Safe to call twice."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        await self._end()
        logger.info("Live scheduler stopped (%s)", self.strategy)

    def _begin(self) -> None:
        raise NotImplementedError

    async def _end(self) -> None:
        raise NotImplementedError

    async def _recompute_and_deliver(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            snapshot = await loop.run_in_executor(None, self._build)
        except Exception:
            logger.exception("Snapshot recompute failed")
            return
        if self._stopped:
            return
        self._deliver(snapshot)

    def _deliver(self, snapshot: T) -> None:
        self.latest = snapshot
        self.deliveries += 1
        if self.snapshots.full():
            # drop the oldest so consumers always see the freshest state
            self.snapshots.get_nowait()
        self.snapshots.put_nowait(snapshot)
        if self.on_snapshot:
            try:
                self.on_snapshot(snapshot)
            except Exception:
                logger.exception("Snapshot subscriber error")


class ChangeDrivenScheduler(SnapshotScheduler[T]):
    """Recompute after filesystem changes, coalescing bursts.

    The debounce timer is armed by the first notification of a burst and is
    not extended by later ones, so a steady stream of writes still yields one
    recompute per debounce interval.
    """

    strategy = "watch"

    def __init__(
        self,
        build: Callable[[], T],
        roots: Iterable[Path],
        on_snapshot: Callable[[T], Any] | None = None,
        debounce_ms: int = 300,
        watch: bool = True,
        queue_size: int = _QUEUE_SIZE,
    ) -> None:
        super().__init__(build, on_snapshot, queue_size=queue_size)
        self.roots = [Path(r) for r in roots]
        self.debounce_ms = debounce_ms
        self._watch = watch
        self._pending = False
        self._pending_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def pending(self) -> bool:
        return self._pending

    def notify(self) -> None:
        """Register a filesystem change; arms the debounce timer if idle."""
        if not self._running or self._pending:
            return
        self._pending = True
        self._pending_task = asyncio.get_running_loop().create_task(self._debounced())

    async def _debounced(self) -> None:
        try:
            await asyncio.sleep(self.debounce_ms / 1000)
            if self._running:
                await self._recompute_and_deliver()
        finally:
            self._pending = False

    def _begin(self) -> None:
        if not self._watch:
            return
        targets = watch_targets(self.roots)
        if not targets:
            logger.warning("No session roots or base directories exist; live updates disabled")
            return
        self._watch_task = asyncio.get_running_loop().create_task(self._watch_loop(targets))
        logger.info("Watching %d director(ies): %s", len(targets), ", ".join(map(str, targets)))

    def is_session_file(self, _change: Any, path: str) -> bool:
        """watchfiles filter: ``.jsonl`` files under one of the session roots."""
        if not path.endswith(SESSION_FILE_SUFFIX):
            return False
        parents = Path(path).parents
        return any(root in parents for root in self.roots)

    async def _watch_loop(self, roots: list[Path]) -> None:
        try:
            async for changes in awatch(
                *roots,
                watch_filter=self.is_session_file,
                stop_event=self._stop_event,
                debounce=50,
                step=50,
                recursive=True,
            ):
                logger.debug("Filesystem changes: %d", len(changes))
                self.notify()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Session watcher failed; live updates stopped")

    async def _end(self) -> None:
        self._stop_event.set()
        tasks = [t for t in (self._watch_task, self._pending_task) if t is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._watch_task = None
        self._pending_task = None
        self._pending = False


class PollingScheduler(SnapshotScheduler[T]):
    """Recompute unconditionally on a fixed interval."""

    strategy = "poll"

    def __init__(
        self,
        build: Callable[[], T],
        on_snapshot: Callable[[T], Any] | None = None,
        interval_seconds: float = 5.0,
        queue_size: int = _QUEUE_SIZE,
    ) -> None:
        super().__init__(build, on_snapshot, queue_size=queue_size)
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    def _begin(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            if not self._running:
                break
            await self._recompute_and_deliver()

    async def _end(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None


def create_scheduler(
    config: UsageConfig,
    on_snapshot: Callable[[Any], Any] | None = None,
    mode: str = "watch",
    build: Callable[[], Any] | None = None,
) -> SnapshotScheduler[Any]:
    """Build the configured strategy; ``build`` defaults to a full snapshot load."""
    if build is None:
        def build() -> Any:
            return load_snapshot(config)

    if mode == "poll":
        return PollingScheduler(
            build, on_snapshot, interval_seconds=config.poll_interval_seconds,
        )
    if mode == "watch":
        return ChangeDrivenScheduler(
            build, config.session_roots, on_snapshot, debounce_ms=config.debounce_ms,
        )
    raise ValueError(f"Unknown live mode: {mode!r} (expected 'watch' or 'poll')")

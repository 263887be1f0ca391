"""Locate Codex session JSONL files under one or more base directories.

Each base directory contributes ``<base>/sessions/**/*.jsonl``. Missing or
unreadable roots are treated as empty; only ``require_session_roots`` turns
"nothing accessible at all" into an error for the presentation layer.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .config import DEFAULT_DISCOVERY_LIMIT

logger = logging.getLogger(__name__)

SESSION_FILE_SUFFIX = ".jsonl"
_STAT_WORKERS = 8


class NoSessionRootsError(RuntimeError):
    """None of the configured session roots can be read."""


def default_base_dirs(codex_config_dir: str = "") -> list[Path]:
    """Resolve base directories from a comma-separated override or the defaults."""
    override = codex_config_dir.strip()
    if override:
        return [Path(p.strip()).expanduser().resolve() for p in override.split(",") if p.strip()]
    home = Path.home()
    return [home / ".config" / "codex", home / ".codex"]


def session_roots(base_dirs: Iterable[Path]) -> list[Path]:
    return [Path(base) / "sessions" for base in base_dirs]


def require_session_roots(base_dirs: Iterable[Path]) -> list[Path]:
    """Return the accessible session roots, raising if there are none."""
    roots = session_roots(base_dirs)
    accessible = [r for r in roots if r.is_dir() and os.access(r, os.R_OK | os.X_OK)]
    if not accessible:
        listed = ", ".join(str(r) for r in roots) or "(none configured)"
        raise NoSessionRootsError(f"No readable Codex session directory found: {listed}")
    return accessible


def _glob_root(root: Path) -> list[Path]:
    if not root.is_dir():
        logger.debug("Session root missing: %s", root)
        return []
    try:
        return [p for p in root.rglob(f"*{SESSION_FILE_SUFFIX}") if p.is_file()]
    except OSError as e:
        logger.debug("Could not walk %s: %s", root, e)
        return []


def _mtime(path: Path) -> float | None:
    try:
        return path.stat().st_mtime
    except OSError as e:
        logger.debug("Could not stat %s: %s", path, e)
        return None


def list_session_files(
    base_dirs: Iterable[Path],
    limit: int = DEFAULT_DISCOVERY_LIMIT,
) -> list[Path]:
    """List session files oldest-first by mtime, keeping the newest ``limit``.

    Stat calls fan out over a thread pool; results are joined before sorting
    so concurrency never affects ordering.
    """
    candidates: list[Path] = []
    seen: set[Path] = set()
    for root in session_roots(base_dirs):
        for path in _glob_root(root):
            if path not in seen:
                seen.add(path)
                candidates.append(path)

    if not candidates:
        return []

    with ThreadPoolExecutor(max_workers=_STAT_WORKERS) as pool:
        mtimes = list(pool.map(_mtime, candidates))

    stamped = [(m, str(p), p) for p, m in zip(candidates, mtimes) if m is not None]
    stamped.sort(key=lambda item: (item[0], item[1]))
    if limit > 0:
        stamped = stamped[-limit:]
    return [p for _, _, p in stamped]

"""Explicit engine configuration.

Built once at the boundary (see ``codexusage.config.Settings.usage_config``) and
passed into every engine entry point. Nothing in ``codexusage.usage`` reads the
process environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class BlockAnchor(str, Enum):
    ROLLING = "rolling"
    EPOCH = "epoch"


DEFAULT_DISCOVERY_LIMIT = 5000


@dataclass(frozen=True)
class UsageConfig:
    """Parameters consumed by discovery, aggregation and the live scheduler."""

    base_dirs: tuple[Path, ...] = field(default_factory=tuple)
    window_hours: float = 5.0
    token_limit: int | None = None
    burn_window_minutes: float = 10.0
    anchor: BlockAnchor = BlockAnchor.ROLLING
    limit: int = DEFAULT_DISCOVERY_LIMIT
    debounce_ms: int = 300
    poll_interval_seconds: float = 5.0
    tail_minutes: float = 15.0
    tail_max: int = 20

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_dirs", tuple(Path(p) for p in self.base_dirs))
        object.__setattr__(self, "anchor", BlockAnchor(self.anchor))
        if self.window_hours <= 0:
            raise ValueError(f"window_hours must be positive, got {self.window_hours}")
        if self.burn_window_minutes <= 0:
            raise ValueError(
                f"burn_window_minutes must be positive, got {self.burn_window_minutes}"
            )
        if self.token_limit is not None and self.token_limit <= 0:
            raise ValueError(f"token_limit must be positive or None, got {self.token_limit}")
        if self.limit < 1:
            raise ValueError(f"limit must be at least 1, got {self.limit}")
        if self.debounce_ms < 0:
            raise ValueError(f"debounce_ms must not be negative, got {self.debounce_ms}")
        if self.poll_interval_seconds <= 0:
            raise ValueError(
                f"poll_interval_seconds must be positive, got {self.poll_interval_seconds}"
            )

    @property
    def session_roots(self) -> tuple[Path, ...]:
        return tuple(base / "sessions" for base in self.base_dirs)

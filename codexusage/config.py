from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

from codexusage.usage.config import BlockAnchor, UsageConfig
from codexusage.usage.discovery import default_base_dirs


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CODEXUSAGE_",
        "extra": "ignore",
        "populate_by_name": True,
    }

    # Comma-separated Codex base dirs; each contributes <dir>/sessions
    codex_config_dir: str = Field(
        default="",
        validation_alias=AliasChoices("CODEX_CONFIG_DIR", "CODEXUSAGE_CODEX_CONFIG_DIR"),
    )

    # Block window
    window_hours: float = 5.0
    token_limit: int | None = None  # unset = no cap, no ETA
    burn_window_minutes: float = 10.0
    anchor: BlockAnchor = BlockAnchor.ROLLING

    # Discovery
    discovery_limit: int = 5000

    # Live updates
    live_mode: str = "watch"  # "watch" | "poll"
    debounce_ms: int = 300
    poll_interval_seconds: float = 5.0

    # Tail report
    tail_minutes: float = 15.0
    tail_max: int = 20

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8787

    # Logging
    log_level: str = "INFO"

    def usage_config(self) -> UsageConfig:
        """Freeze these settings into the engine's explicit configuration."""
        return UsageConfig(
            base_dirs=tuple(default_base_dirs(self.codex_config_dir)),
            window_hours=self.window_hours,
            token_limit=self.token_limit,
            burn_window_minutes=self.burn_window_minutes,
            anchor=self.anchor,
            limit=self.discovery_limit,
            debounce_ms=self.debounce_ms,
            poll_interval_seconds=self.poll_interval_seconds,
            tail_minutes=self.tail_minutes,
            tail_max=self.tail_max,
        )


settings = Settings()

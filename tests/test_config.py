"""Tests for environment settings and the engine configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from codexusage.config import Settings
from codexusage.usage.config import BlockAnchor, UsageConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in ("CODEX_CONFIG_DIR", "CODEXUSAGE_CODEX_CONFIG_DIR", "CODEXUSAGE_TOKEN_LIMIT"):
        monkeypatch.delenv(key, raising=False)
    # keep a stray .env out of the picture
    monkeypatch.chdir(tmp_path)


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings()
        assert s.window_hours == 5.0
        assert s.token_limit is None
        assert s.anchor == BlockAnchor.ROLLING
        assert s.live_mode == "watch"
        assert s.debounce_ms == 300

    def test_default_base_dirs(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        config = Settings().usage_config()
        assert config.base_dirs == (tmp_path / ".config" / "codex", tmp_path / ".codex")

    def test_codex_config_dir_override(self, monkeypatch, tmp_path: Path) -> None:
        a, b = tmp_path / "a", tmp_path / "b"
        monkeypatch.setenv("CODEX_CONFIG_DIR", f"{a}, {b}")
        config = Settings().usage_config()
        assert config.base_dirs == (a.resolve(), b.resolve())
        assert config.session_roots == (a.resolve() / "sessions", b.resolve() / "sessions")

    def test_prefixed_env(self, monkeypatch) -> None:
        monkeypatch.setenv("CODEXUSAGE_WINDOW_HOURS", "3")
        monkeypatch.setenv("CODEXUSAGE_TOKEN_LIMIT", "50000")
        monkeypatch.setenv("CODEXUSAGE_ANCHOR", "epoch")
        monkeypatch.setenv("CODEXUSAGE_DISCOVERY_LIMIT", "10")
        config = Settings().usage_config()
        assert config.window_hours == 3
        assert config.token_limit == 50000
        assert config.anchor is BlockAnchor.EPOCH
        assert config.limit == 10

    def test_dotenv_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("CODEXUSAGE_BURN_WINDOW_MINUTES=30\n", encoding="utf-8")
        assert Settings().burn_window_minutes == 30


class TestUsageConfig:
    def test_coerces_paths_and_anchor(self) -> None:
        config = UsageConfig(base_dirs=["/tmp/x"], anchor="epoch")
        assert config.base_dirs == (Path("/tmp/x"),)
        assert config.anchor is BlockAnchor.EPOCH

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"window_hours": 0},
            {"burn_window_minutes": -1},
            {"token_limit": 0},
            {"limit": 0},
            {"debounce_ms": -5},
            {"poll_interval_seconds": 0},
            {"anchor": "weekly"},
        ],
    )
    def test_rejects_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            UsageConfig(**kwargs)

    def test_frozen(self) -> None:
        config = UsageConfig()
        with pytest.raises(AttributeError):
            config.window_hours = 1  # type: ignore[misc]

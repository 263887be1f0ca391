"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import pytest

from codexusage.usage.config import UsageConfig
from helpers import NOW, text_of, write_jsonl


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def codex_base(tmp_path: Path) -> Path:
    """A fake Codex base directory with a dated session file."""
    base = tmp_path / ".codex"
    write_jsonl(
        base / "sessions" / "2024" / "01" / "01" / "rollout-a.jsonl",
        [
            {"timestamp": "2024-01-01T11:55:00Z", "text": "hello world"},
            {
                "timestamp": "2024-01-01T11:58:10Z",
                "type": "response_item",
                "payload": {
                    "type": "message",
                    "role": "assistant",
                    "content": [{"type": "output_text", "text": text_of(40)}],
                },
            },
            "{not json",
        ],
    )
    return base


@pytest.fixture
def config(codex_base: Path) -> UsageConfig:
    return UsageConfig(base_dirs=(codex_base,), token_limit=1000)

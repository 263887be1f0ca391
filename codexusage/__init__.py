"""Estimated token usage analytics for Codex session logs."""

__version__ = "0.1.0"

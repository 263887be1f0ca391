"""Heuristic scan for quota-reset instants announced inside event text.

Two signals are recognised in any text payload, including the whole JSON
wrapper of a function output whose nested ``output`` was unwrapped:

- ``|1712345678``: a 10-digit epoch-seconds value right after a pipe;
- a standalone 10-digit number starting with ``1`` in text that also mentions
  "limit", "reset", "window" or "quota".

The latest candidate across the corpus wins. The value is advisory: the
aggregator only uses it to pull the block window's end forward.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .estimator import event_texts
from .models import Event, FunctionCallOutputPayload

_PIPE_EPOCH_RE = re.compile(r"\|(\d{10})(?!\d)")
_BARE_EPOCH_RE = re.compile(r"(?<!\d)(1\d{9})(?!\d)")
_KEYWORD_RE = re.compile(r"limit|reset|window|quota", re.IGNORECASE)


def reset_candidates_ms(text: str) -> list[int]:
    """All reset candidates in one string, in milliseconds."""
    if not text:
        return []
    seconds = [int(m) for m in _PIPE_EPOCH_RE.findall(text)]
    if _KEYWORD_RE.search(text):
        seconds.extend(int(m) for m in _BARE_EPOCH_RE.findall(text))
    return [s * 1000 for s in seconds]


def scanned_texts(event: Event) -> tuple[str, ...]:
    """Estimator texts plus the undecoded wrapper of an unwrapped function output."""
    texts = event_texts(event)
    payload = event.payload
    if isinstance(payload, FunctionCallOutputPayload) and payload.raw_output:
        texts = texts + (payload.raw_output,)
    return texts


def find_reset_ms(events: Iterable[Event]) -> int | None:
    latest: int | None = None
    for event in events:
        for text in scanned_texts(event):
            for candidate in reset_candidates_ms(text):
                if latest is None or candidate > latest:
                    latest = candidate
    return latest

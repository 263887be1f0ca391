"""Token estimation for a single event.

Explicit usage counters win. Otherwise every recognized text payload on the
event is run through a ~4 characters per token heuristic. This is an
estimate, not a metered count.
"""

from __future__ import annotations

from .models import (
    Event,
    FunctionCallOutputPayload,
    MessagePayload,
    Payload,
    ReasoningPayload,
    UnknownPayload,
)

CHARS_PER_TOKEN = 4


def estimate_text_tokens(text: str | None) -> int:
    if not text:
        return 0
    # half-up rounding; round() would send 2.5 to 2
    return max(0, int(len(text) / CHARS_PER_TOKEN + 0.5))


def payload_texts(payload: Payload) -> tuple[str, ...]:
    """Text strings carried by a payload variant."""
    if isinstance(payload, MessagePayload):
        return payload.texts
    if isinstance(payload, FunctionCallOutputPayload):
        return (payload.output,) if payload.output else ()
    if isinstance(payload, ReasoningPayload):
        return payload.summaries
    if isinstance(payload, UnknownPayload):
        return ()
    raise TypeError(f"Unhandled payload variant: {type(payload).__name__}")


def event_texts(event: Event) -> tuple[str, ...]:
    texts = payload_texts(event.payload)
    if event.text:
        texts = texts + (event.text,)
    return texts


def estimate_tokens(event: Event) -> int:
    if event.usage is not None:
        return event.usage.total
    return sum(estimate_text_tokens(t) for t in event_texts(event))

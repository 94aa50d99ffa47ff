"""Trace context carried by the current thread or task.

Log records read their ids from here, so lines written while a search or
indexing span is open carry that span's ids and the bound index handle.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict[str, object] | None] = ContextVar("trace_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_trace_context() -> dict[str, object]:
    """Current context; starts a fresh trace when none is set."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    """Replace the context, e.g. ``index="blog"`` at the start of a command."""
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


@contextmanager
def bound_trace_context(**values: object) -> Iterator[dict[str, object]]:
    """Overlay ``values`` on the context until the block exits."""
    token = trace_context.set({**get_trace_context(), **values})
    try:
        yield trace_context.get() or {}
    finally:
        trace_context.reset(token)

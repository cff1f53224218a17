"""Trace context carried alongside catalog operations for log correlation."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict | None] = ContextVar("trace_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Get current trace context with trace_id and span_id."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def set_trace_context(trace_id: str, span_id: str, **extra: object) -> None:
    trace_context.set({"trace_id": trace_id, "span_id": span_id, **extra})


@contextmanager
def span_context(trace_id: str, span_id: str) -> Iterator[dict]:
    """Bind trace and span ids for the duration of a span, restoring the previous ids afterwards."""
    token = trace_context.set({**(trace_context.get() or {}), "trace_id": trace_id, "span_id": span_id})
    try:
        yield trace_context.get() or {}
    finally:
        trace_context.reset(token)


@contextmanager
def operation_context(operation: str, **extra: object) -> Iterator[dict]:
    """Start a fresh trace tagged with the catalog operation name.

    Nested operations stay on the enclosing trace.
    """
    ctx = trace_context.get() or {}
    if not ctx.get("operation") or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
    token = trace_context.set({**ctx, "operation": operation, **extra})
    try:
        yield trace_context.get() or {}
    finally:
        trace_context.reset(token)

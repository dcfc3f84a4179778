"""Trace ID propagation using structlog contextvars."""

from __future__ import annotations

import asyncio
import functools
import uuid
from collections.abc import Generator
from contextlib import contextmanager

import structlog.contextvars as contextvars


def generate_trace_id() -> str:
    """Generate a unique trace ID.

    Returns:
        Hexadecimal trace ID (32 characters)
    """
    return uuid.uuid4().hex


def get_trace_id() -> str | None:
    """Get the current trace ID from context.

    Returns:
        Current trace ID or None if not set
    """
    return contextvars.get_contextvars().get("trace_id")


def set_trace_id(trace_id: str) -> None:
    contextvars.bind_contextvars(trace_id=trace_id)


def clear_trace_id() -> None:
    contextvars.unbind_contextvars("trace_id")


@contextmanager
def trace_context(trace_id: str | None = None) -> Generator[str]:
    """Bind a trace ID for the duration of the block.

    An existing context is restored on exit, so matching runs started inside
    an HTTP request keep the request's other bound values afterwards.

    Args:
        trace_id: Optional trace ID to use. If None, generates a new one.

    Yields:
        The trace ID being used

    Example:
        >>> with trace_context() as trace_id:
        ...     logger.info("Matching library")  # Will include trace_id
    """
    old_context = dict(contextvars.get_contextvars())

    if trace_id is None:
        trace_id = generate_trace_id()

    contextvars.clear_contextvars()
    contextvars.bind_contextvars(trace_id=trace_id)

    try:
        yield trace_id
    finally:
        contextvars.clear_contextvars()
        if old_context:
            contextvars.bind_contextvars(**old_context)


def with_trace_id(trace_id: str | None = None):
    """Decorator running the wrapped (sync or async) callable inside trace_context."""

    def decorator(func):
        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with trace_context(trace_id):
                    return await func(*args, **kwargs)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with trace_context(trace_id):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator

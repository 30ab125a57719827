"""Utilities for running work after the HTTP acknowledgement has been sent."""

from contextvars import copy_context
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

import structlog
from structlog.contextvars import bind_contextvars, get_contextvars


_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="ack-followup")


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Submit *func* to the shared thread pool and return a Future.

    The caller's contextvars (structlog ``trace_id`` included) are copied into
    the worker. Exceptions raised by *func* are logged and re-raised into the
    Future so they never vanish silently.
    """

    context = copy_context()

    if trace_id is not None:
        existing_trace = context.run(lambda: get_contextvars().get("trace_id"))

        if existing_trace != trace_id:
            context.run(lambda: bind_contextvars(trace_id=trace_id))

    def runner() -> Any:
        try:
            return context.run(func, *args, **kwargs)
        except Exception:
            context.run(
                lambda: structlog.get_logger().exception(
                    "background_task_failed", task=getattr(func, "__name__", repr(func))
                )
            )
            raise

    return _executor.submit(runner)

"""Asyncio helpers for background tasks that must not lose exceptions."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Iterable, Optional

from .logging_utils import LoggerLike, ensure_structured_logger


def _task_label(task: asyncio.Task[Any], context: Optional[str]) -> str:
    if context:
        return context
    return task.get_name() or "background task"


def add_task_exception_logger(
    task: asyncio.Task[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
) -> asyncio.Task[Any]:
    """Ensure task exceptions are retrieved and logged when the task finishes."""
    task_logger = ensure_structured_logger(logger, fallback_name="asyncio")

    def _done(done_task: asyncio.Task[Any]) -> None:
        if done_task.cancelled():
            return
        exc = done_task.exception()
        if exc is not None:
            task_logger.error(
                "Unhandled exception in %s",
                _task_label(done_task, context),
                exc_info=exc,
            )

    task.add_done_callback(_done)
    return task


def create_logged_task(
    coro: Awaitable[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
    pending: Optional[set[asyncio.Task[Any]]] = None,
) -> asyncio.Task[Any]:
    """Create a task that won't lose exceptions, optionally tracking it."""
    task = asyncio.get_running_loop().create_task(coro, name=context)
    add_task_exception_logger(task, logger=logger, context=context)

    if pending is not None:
        pending.add(task)
        task.add_done_callback(pending.discard)

    return task


async def cancel_tasks(tasks: Iterable[Optional[asyncio.Task[Any]]]) -> None:
    """Cancel every unfinished task and wait for it to unwind."""
    current = asyncio.current_task()
    for task in tasks:
        if task is None or task is current or task.done():
            continue
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


__all__ = ["add_task_exception_logger", "create_logged_task", "cancel_tasks"]

"""
Safe asyncio task creation with error logging.

Background summarization is fire-and-forget; a bare ``asyncio.create_task()``
would drop its exceptions on the floor.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

# Strong references so pending tasks are not garbage-collected mid-flight
_background_tasks: set[asyncio.Task] = set()


def safe_create_task(coro, *, name: str = None) -> asyncio.Task:
    """Create an asyncio task with automatic error logging.

    Args:
        coro: The coroutine to schedule.
        name: Optional human-readable task name for log messages.

    Returns:
        The created ``asyncio.Task``.
    """
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    task.add_done_callback(_log_task_exception)
    return task


def _log_task_exception(task: asyncio.Task) -> None:
    """Done-callback that logs unhandled task exceptions."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error(
            "Background task '%s' failed: %s",
            task.get_name(),
            exc,
            exc_info=exc,
        )

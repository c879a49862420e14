"""Reusable asyncio combinators: race-against-deadline and first-success-of-N."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, Mapping, Tuple

from lending_library.errors import AllSourcesFailed, DeadlineExceeded

logger = logging.getLogger(__name__)


def _log_late_outcome(label: str):
    def callback(task: asyncio.Future) -> None:
        if task.cancelled():
            logger.info(f"{label} was cancelled after its deadline")
        elif task.exception() is not None:
            logger.error(f"{label} failed after its deadline: {task.exception()}")
        else:
            logger.info(f"{label} completed after its deadline")
    return callback


def _discard_outcome(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


async def with_timeout(operation: Awaitable[Any], timeout_ms: float, label: str = "operation") -> Any:
    """Race ``operation`` against a deadline and adopt whichever settles first.

    The operation is not cancelled when the deadline wins: it keeps running and
    may still finish (and, for a save, write its data) after
    ``DeadlineExceeded`` has been raised to the caller.
    """
    task = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({task}, timeout=max(timeout_ms, 0) / 1000)
    if task in done:
        return task.result()
    logger.warning(f"{label} timed out after {timeout_ms:g} ms")
    task.add_done_callback(_log_late_outcome(label))
    raise DeadlineExceeded(label, timeout_ms)


async def first_success(sources: Mapping[str, Awaitable[Any]]) -> Tuple[str, Any]:
    """Run every source concurrently and return ``(name, result)`` of the first to succeed.

    When several sources finish in the same step the earlier one in ``sources``
    wins. Sources still running once a winner is known are cancelled. If none
    succeeds a single ``AllSourcesFailed`` carrying each source's error is raised.
    """
    tasks: Dict[asyncio.Future, str] = {asyncio.ensure_future(aw): name for name, aw in sources.items()}
    errors: Dict[str, BaseException] = {}
    pending = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            winner = None
            # retrieve the outcome of every finished source, not only the winner's
            for task in (t for t in tasks if t in done):
                name = tasks[task]
                if task.cancelled():
                    errors[name] = asyncio.CancelledError()
                elif task.exception() is not None:
                    errors[name] = task.exception()
                    logger.debug(f"Source {name} failed: {task.exception()}")
                elif winner is None:
                    winner = name, task.result()
            if winner is not None:
                return winner
    finally:
        for task in pending:
            task.cancel()
            task.add_done_callback(_discard_outcome)
    raise AllSourcesFailed(errors)

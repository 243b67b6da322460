"""Background task utilities with error tracking.

Used for best-effort work the caller does not wait on, such as
notifying a partner after content was shared. Failures are logged and
recorded, never raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundTaskError:
    """Record of a failed background task."""

    def __init__(
        self,
        task_name: str,
        error: BaseException,
        timestamp: datetime | None = None,
    ):
        self.task_name = task_name
        self.error = error
        self.timestamp = timestamp or datetime.now(UTC)
        self.error_type = type(error).__name__
        self.error_message = str(error)


class BackgroundTaskTracker:
    """Track background task results and keep running tasks referenced."""

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self.successful_tasks: list[tuple[str, datetime]] = []
        self.failed_tasks: list[BackgroundTaskError] = []
        self._running: set[asyncio.Task[Any]] = set()

    def record_success(self, task_name: str) -> None:
        self.successful_tasks.append((task_name, datetime.now(UTC)))
        if len(self.successful_tasks) > self.max_history:
            self.successful_tasks = self.successful_tasks[-self.max_history :]

    def record_failure(self, task_name: str, error: BaseException) -> None:
        task_error = BackgroundTaskError(task_name, error)
        self.failed_tasks.append(task_error)
        if len(self.failed_tasks) > self.max_history:
            self.failed_tasks = self.failed_tasks[-self.max_history :]

        logger.error(
            "Background task failed: %s - %s",
            task_error.task_name,
            task_error.error_message,
            exc_info=error,
            extra={"task_name": task_name, "error_type": task_error.error_type},
        )

    def spawn(self, task_name: str, factory: Callable[[], Awaitable[Any]]) -> asyncio.Task[None]:
        """
        Run a coroutine in the background without awaiting it.

        The task is referenced until it finishes so it cannot be garbage
        collected mid-flight.

        Args:
            task_name: Name of the task for logging/tracking
            factory: Zero-argument callable returning the awaitable to run

        Returns:
            The scheduled task (callers may ignore it)
        """
        task = asyncio.create_task(self._run(task_name, factory), name=task_name)
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def _run(self, task_name: str, factory: Callable[[], Awaitable[Any]]) -> None:
        logger.debug("Starting background task", extra={"task_name": task_name})
        try:
            await factory()
        except asyncio.CancelledError:
            logger.info("Background task cancelled", extra={"task_name": task_name})
            raise
        except Exception as e:
            self.record_failure(task_name, e)
        else:
            self.record_success(task_name)

    async def drain(self) -> None:
        """Wait for every running background task to finish."""
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._running)

    def get_status(self) -> dict[str, Any]:
        """Get current status of background tasks."""
        return {
            "pending_tasks": self.pending,
            "successful_tasks": len(self.successful_tasks),
            "failed_tasks": len(self.failed_tasks),
            "recent_failures": [
                {
                    "task": f.task_name,
                    "error": f.error_message,
                    "type": f.error_type,
                    "timestamp": f.timestamp.isoformat(),
                }
                for f in self.failed_tasks[-5:]
            ],
        }

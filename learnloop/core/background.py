"""In-process background task runner.

Work that must not hold up a request (content indexing, embedding
generation) is submitted here instead of being started and forgotten.
Every submission gets a TaskHandle that records completion or failure,
so callers and the API can observe the outcome.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TaskHandle:
    """Observable record of one submitted background task."""

    id: str
    name: str
    status: TaskStatus = TaskStatus.PENDING
    result: Any = None
    error: Optional[str] = None
    submitted_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    _task: Optional["asyncio.Task[Any]"] = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status in (TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.CANCELLED)

    async def wait(self) -> Any:
        """Wait for the task to finish; returns its result (None on failure)."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        return self.result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.id,
            "name": self.name,
            "status": self.status.value,
            "error": self.error,
            "submitted_at": self.submitted_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class BackgroundTaskRunner:
    """
    Runs coroutines on the current event loop and tracks their outcome.

    Failures are logged with traceback and stored on the handle; they never
    propagate into the request that submitted the task.
    """

    def __init__(self, max_history: int = 500):
        self.max_history = max_history
        self._handles: Dict[str, TaskHandle] = {}
        self._listeners: List[Callable[[TaskHandle], None]] = []

    def add_listener(self, listener: Callable[[TaskHandle], None]) -> None:
        """Register a callback invoked whenever a task finishes."""
        self._listeners.append(listener)

    def submit(self, name: str, factory: Callable[[], Awaitable[Any]]) -> TaskHandle:
        """
        Schedule `factory()` in the background.

        Args:
            name: Short label used in logs and status responses
            factory: Zero-argument callable returning the coroutine to run

        Returns:
            The handle tracking the task
        """
        handle = TaskHandle(id=str(uuid.uuid4()), name=name)
        self._handles[handle.id] = handle
        self._trim_history()
        handle._task = asyncio.create_task(self._run(handle, factory), name=f"bg:{name}")
        logger.info("Submitted background task %s (%s)", name, handle.id)
        return handle

    def get(self, task_id: str) -> Optional[TaskHandle]:
        return self._handles.get(task_id)

    async def _run(self, handle: TaskHandle, factory: Callable[[], Awaitable[Any]]) -> None:
        handle.status = TaskStatus.RUNNING
        try:
            handle.result = await factory()
            handle.status = TaskStatus.SUCCEEDED
            logger.info("Background task %s (%s) succeeded", handle.name, handle.id)
        except asyncio.CancelledError:
            handle.status = TaskStatus.CANCELLED
            raise
        except Exception as exc:
            handle.status = TaskStatus.FAILED
            handle.error = str(exc)
            logger.exception("Background task %s (%s) failed", handle.name, handle.id)
        finally:
            handle.finished_at = datetime.utcnow()
            for listener in self._listeners:
                try:
                    listener(handle)
                except Exception:
                    logger.exception("Background task listener failed for %s", handle.id)

    def _trim_history(self) -> None:
        if len(self._handles) <= self.max_history:
            return
        finished = [h for h in self._handles.values() if h.done]
        finished.sort(key=lambda h: h.finished_at or h.submitted_at)
        for handle in finished[: len(self._handles) - self.max_history]:
            self._handles.pop(handle.id, None)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Wait briefly for running tasks, then cancel the rest."""
        pending = [h._task for h in self._handles.values() if h._task and not h._task.done()]
        if not pending:
            return
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)

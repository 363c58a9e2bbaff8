from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Dict, Optional, Protocol
from uuid import uuid4

from common.agent_client import AgentError, NameCheckResult


logger = logging.getLogger(__name__)


class StateConflictError(RuntimeError):
    """A result from a superseded task was about to be applied.

    Only raised on a programming error; users never see it.
    """


class NameChecker(Protocol):
    def check_name_availability(self, name: str, state: str) -> NameCheckResult: ...


class TaskStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    SUPERSEDED = "superseded"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskHandle:
    task_id: str
    name: str
    state: str
    started_at: datetime


@dataclass(frozen=True)
class TaskSnapshot:
    handle: TaskHandle
    status: TaskStatus
    result: Optional[NameCheckResult] = None
    error: Optional[str] = None


class BackgroundTaskCoordinator:
    """
    Runs one name-availability check at a time on a worker thread.

    - `submit()` returns immediately; the previous task, if any, becomes
      superseded and its result is never reported again.
    - Callers poll with `status()` / `wait()` instead of receiving
      callbacks, so nothing outside this class is mutated from the worker.
    - `take_completion()` is a one-shot "the current check finished" signal.
    """

    def __init__(self, checker: NameChecker, *, max_workers: int = 4) -> None:
        self._checker = checker
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="name-check")
        self._lock = threading.Lock()
        self._futures: Dict[str, Future] = {}
        self._current: Optional[TaskHandle] = None
        self._announced: set[str] = set()

    @property
    def current(self) -> Optional[TaskHandle]:
        with self._lock:
            return self._current

    def submit(self, name: str, state: str) -> TaskHandle:
        handle = TaskHandle(
            task_id=uuid4().hex,
            name=name,
            state=state,
            started_at=datetime.now(UTC),
        )
        with self._lock:
            previous = self._current
            self._current = handle
            if previous is not None:
                self._retire(previous)
            self._futures[handle.task_id] = self._executor.submit(self._run, name, state)
        if previous is not None:
            logger.info("Name check %s superseded by %s", previous.task_id, handle.task_id)
        logger.info("Submitted name check %s for %r in %s", handle.task_id, name, state)
        return handle

    def status(self, handle: TaskHandle) -> TaskSnapshot:
        with self._lock:
            if self._current is None or handle.task_id != self._current.task_id:
                return TaskSnapshot(handle, TaskStatus.SUPERSEDED)
            future = self._futures[handle.task_id]
        return self._snapshot(handle, future)

    def wait(self, handle: TaskHandle, timeout: Optional[float]) -> TaskSnapshot:
        """Block up to `timeout` seconds for the task, then report its status."""
        with self._lock:
            future = self._futures.get(handle.task_id)
        if future is not None:
            try:
                future.exception(timeout=timeout)
            except (FutureTimeoutError, CancelledError):
                pass
        return self.status(handle)

    def take_completion(self, handle: TaskHandle) -> bool:
        """True exactly once, the first time it is called after the current task finished."""
        snapshot = self.status(handle)
        if snapshot.status in (TaskStatus.PENDING, TaskStatus.SUPERSEDED):
            return False
        with self._lock:
            if handle.task_id in self._announced:
                return False
            self._announced.add(handle.task_id)
        return True

    def cancel(self, handle: TaskHandle) -> None:
        """Best effort; the request may still run but its result is discarded."""
        with self._lock:
            if self._current is not None and self._current.task_id == handle.task_id:
                self._current = None
                self._retire(handle)
        logger.info("Cancelled name check %s", handle.task_id)

    def shutdown(self) -> None:
        with self._lock:
            if self._current is not None:
                self._retire(self._current)
                self._current = None
        self._executor.shutdown(wait=False, cancel_futures=True)

    # -------- Internal --------
    def _run(self, name: str, state: str) -> NameCheckResult:
        try:
            result = self._checker.check_name_availability(name, state)
        except AgentError as exc:
            logger.warning("Name check for %r failed: %s", name, exc)
            raise
        except Exception:
            logger.exception("Name check for %r crashed", name)
            raise
        logger.info("Name check for %r resolved: available=%s", name, result.available)
        return result

    def _retire(self, handle: TaskHandle) -> None:
        # Caller holds the lock
        future = self._futures.pop(handle.task_id, None)
        if future is not None:
            future.cancel()
        self._announced.discard(handle.task_id)

    @staticmethod
    def _snapshot(handle: TaskHandle, future: Future) -> TaskSnapshot:
        if not future.done():
            return TaskSnapshot(handle, TaskStatus.PENDING)
        if future.cancelled():
            return TaskSnapshot(handle, TaskStatus.SUPERSEDED)
        exc = future.exception()
        if exc is None:
            return TaskSnapshot(handle, TaskStatus.RESOLVED, result=future.result())
        if isinstance(exc, AgentError):
            return TaskSnapshot(handle, TaskStatus.FAILED, error=str(exc))
        return TaskSnapshot(handle, TaskStatus.FAILED, error="Unable to verify name availability")


__all__ = [
    "BackgroundTaskCoordinator",
    "NameChecker",
    "StateConflictError",
    "TaskHandle",
    "TaskSnapshot",
    "TaskStatus",
]

# observer.py
# Task progress registry.
#
# The only structure shared between threads: the engine running a task is
# its single writer, HTTP handlers or CLI pollers are readers. One instance
# is built at startup and passed to whatever needs it.

import threading
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from video_agent import display
from video_agent.models import TaskStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TaskProgress(BaseModel):
    task_id: str
    status: TaskStatus = TaskStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    message: str = "Task created"
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class TaskObserver:
    """Thread-safe map of task id → TaskProgress. Readers always get copies."""

    def __init__(self) -> None:
        self._tasks: dict[str, TaskProgress] = {}
        self._lock = threading.Lock()

    def register(self, task_id: str) -> TaskProgress:
        entry = TaskProgress(task_id=task_id)
        with self._lock:
            self._tasks[task_id] = entry
        display.task_registered(task_id)
        return entry.model_copy()

    def update(self, task_id: str, status: TaskStatus, progress: int, message: str) -> bool:
        """Update a registered task. Returns False if the id is unknown."""
        with self._lock:
            entry = self._tasks.get(task_id)
            if entry is None:
                return False
            self._tasks[task_id] = entry.model_copy(
                update={
                    "status": status,
                    "progress": max(0, min(100, progress)),
                    "message": message,
                    "updated_at": _now(),
                }
            )
        display.task_progress(task_id, status.value, progress, message)
        return True

    def get(self, task_id: str) -> TaskProgress | None:
        with self._lock:
            entry = self._tasks.get(task_id)
            return entry.model_copy() if entry is not None else None

    def list(self) -> dict[str, TaskProgress]:
        with self._lock:
            return {task_id: entry.model_copy() for task_id, entry in self._tasks.items()}

    def remove(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

"""
TaskStore interface and the in-memory implementation.
Both stores hold whole Task snapshots, so a reader never sees a partial update.
"""

import threading
from typing import Optional, Protocol

from learnclip.core.models import Task


class TaskStore(Protocol):
    def insert(self, task: Task) -> Task: ...

    def update(self, task: Task) -> Task: ...

    def get_by_id(self, task_id: str) -> Optional[Task]: ...

    def get_all(self) -> list[Task]: ...


class InMemoryTaskStore:
    """Lock-guarded dict of frozen Task snapshots."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: dict[str, Task] = {}

    def insert(self, task: Task) -> Task:
        with self._lock:
            if task.id in self._tasks:
                raise ValueError(f"Task already exists: {task.id}")
            self._tasks[task.id] = task
        return task

    def update(self, task: Task) -> Task:
        with self._lock:
            if task.id not in self._tasks:
                raise KeyError(task.id)
            self._tasks[task.id] = task
        return task

    def get_by_id(self, task_id: str) -> Optional[Task]:
        with self._lock:
            return self._tasks.get(task_id)

    def get_all(self) -> list[Task]:
        with self._lock:
            tasks = list(self._tasks.values())
        return sorted(tasks, key=lambda t: t.created_at or '', reverse=True)

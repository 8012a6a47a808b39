import logging
from typing import List, Optional, Union

from .errors import NotFoundError, ValidationError
from .models import Priority, Status, Task, TaskChanges
from .store import TaskStore, get_store

logger = logging.getLogger(__name__)


def _clean_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    return title


def _enum(enum_cls, value, field: str):
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {choices}")


class TaskService:
    """CRUD operations over a task store.

    Views call this; it owns input rules (non-empty title, known priority and
    status values) and turns a missing document into NotFoundError. Store
    failures propagate as StoreError untouched and are never retried.
    """

    def __init__(self, store: Optional[TaskStore] = None):
        self.store = store if store is not None else get_store()

    def list(self) -> List[Task]:
        return self.store.list()

    def get(self, task_id: str) -> Task:
        task = self.store.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def create(self, title: Optional[str], description: Optional[str] = None,
               priority: Union[Priority, str, None] = None) -> Task:
        changes = TaskChanges.full(
            title=_clean_title(title),
            description=(description or "").strip(),
            priority=_enum(Priority, priority, "priority"),
            status=Status.PENDING,
        )
        task = self.store.insert(changes)
        logger.info("Created task %s (%s)", task.id, task.title)
        return task

    def update_full(self, task_id: str, fields: TaskChanges) -> Task:
        """Replace every mutable field; omitted optional fields reset to defaults."""
        changes = TaskChanges.full(
            title=_clean_title(fields.title),
            description=(fields.description or "").strip(),
            priority=_enum(Priority, fields.priority, "priority"),
            status=_enum(Status, fields.status, "status"),
        )
        return self._apply(task_id, changes)

    def update_partial(self, task_id: str, changes: TaskChanges) -> Task:
        """Merge only the fields that are set on ``changes``."""
        merged = TaskChanges(
            title=_clean_title(changes.title) if changes.title is not None else None,
            description=changes.description.strip() if changes.description is not None else None,
            priority=_enum(Priority, changes.priority, "priority"),
            status=_enum(Status, changes.status, "status"),
        )
        if merged.is_empty():
            # nothing to merge, but an unknown id must still 404
            return self.get(task_id)
        return self._apply(task_id, merged)

    def toggle_status(self, task_id: str) -> Task:
        task = self.get(task_id)
        return self.update_partial(task_id, TaskChanges(status=task.status.toggled()))

    def delete(self, task_id: str) -> None:
        if not self.store.delete(task_id):
            raise NotFoundError(f"Task {task_id} not found")
        logger.info("Deleted task %s", task_id)

    def _apply(self, task_id: str, changes: TaskChanges) -> Task:
        task = self.store.update(task_id, changes)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        logger.info("Updated task %s: %s", task_id, sorted(changes.to_document()))
        return task

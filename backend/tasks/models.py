from dataclasses import dataclass, fields as dc_fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Status(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"

    def toggled(self) -> "Status":
        return Status.PENDING if self is Status.COMPLETED else Status.COMPLETED


def utcnow() -> datetime:
    # Mongo stores millisecond precision; truncate so both stores agree.
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


@dataclass
class Task:
    id: str
    title: str
    description: str = ""
    priority: Priority = Priority.MEDIUM
    status: Status = Status.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __str__(self):
        return self.title

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Task":
        """Build a Task from a stored document (``_id`` plus camelCase timestamps)."""
        return cls(
            id=str(doc["_id"]),
            title=doc["title"],
            description=doc.get("description") or "",
            priority=Priority(doc.get("priority") or Priority.MEDIUM),
            status=Status(doc.get("status") or Status.PENDING),
            created_at=_aware(doc.get("createdAt")),
            updated_at=_aware(doc.get("updatedAt")),
        )


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # pymongo hands back naive UTC datetimes unless tz_aware=True
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class TaskChanges:
    """Mutable task fields for an update; ``None`` leaves a field untouched."""

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None

    @classmethod
    def full(cls, title: str, description: Optional[str] = None,
             priority: Optional[Priority] = None,
             status: Optional[Status] = None) -> "TaskChanges":
        """Replacement payload: omitted optional fields fall back to defaults."""
        return cls(
            title=title,
            description=description or "",
            priority=priority or Priority.MEDIUM,
            status=status or Status.PENDING,
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {}
        for f in dc_fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            doc[f.name] = value.value if isinstance(value, Enum) else value
        return doc

    def is_empty(self) -> bool:
        return not self.to_document()

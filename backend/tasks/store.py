"""Document-store drivers for task persistence.

A store is picked from a connection string:
  - ``mongodb://`` / ``mongodb+srv://`` -> MongoTaskStore (pymongo)
  - ``memory://``                       -> MemoryTaskStore (process-local, dev and tests)

Both keep the same document layout, ``{_id, title, description, priority,
status, createdAt, updatedAt}``, and return ``Task`` objects. Driver failures
surface as ``StoreError``; an unknown or malformed id is simply "not found".
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional

from bson import ObjectId
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver
from pymongo import DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from .errors import StoreError
from .models import Task, TaskChanges, utcnow

logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "taskboard"
DEFAULT_COLLECTION = "tasks"


def _object_id(task_id: str) -> Optional[ObjectId]:
    if isinstance(task_id, ObjectId):
        return task_id
    if not ObjectId.is_valid(task_id):
        return None
    return ObjectId(task_id)


class TaskStore:
    """Driver interface; subclasses talk to a concrete backend."""

    def ping(self) -> None:
        raise NotImplementedError

    def list(self) -> List[Task]:
        raise NotImplementedError

    def get(self, task_id: str) -> Optional[Task]:
        raise NotImplementedError

    def insert(self, changes: TaskChanges) -> Task:
        raise NotImplementedError

    def update(self, task_id: str, changes: TaskChanges) -> Optional[Task]:
        raise NotImplementedError

    def delete(self, task_id: str) -> bool:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass

    @staticmethod
    def _new_document(changes: TaskChanges) -> Dict[str, Any]:
        now = utcnow()
        doc = TaskChanges.full(**changes.to_document()).to_document()
        doc.update({"_id": ObjectId(), "createdAt": now, "updatedAt": now})
        return doc


class MongoTaskStore(TaskStore):
    def __init__(self, uri: str, database: Optional[str] = None,
                 collection: str = DEFAULT_COLLECTION, timeout_ms: int = 5000):
        # bad URIs and SRV lookups fail here, before any ping
        try:
            self.client: MongoClient = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
            if database:
                db = self.client[database]
            else:
                db = self.client.get_default_database(DEFAULT_DATABASE)
        except (PyMongoError, ValueError) as e:
            raise StoreError(f"Could not connect to MongoDB: {e}")
        self.collection = db[collection]

    def ping(self) -> None:
        try:
            self.client.admin.command("ping")
        except PyMongoError as e:
            raise StoreError(f"Could not reach MongoDB: {e}")

    def list(self) -> List[Task]:
        try:
            cursor = self.collection.find().sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
            return [Task.from_document(doc) for doc in cursor]
        except PyMongoError as e:
            raise StoreError(f"Failed to list tasks: {e}")

    def get(self, task_id: str) -> Optional[Task]:
        oid = _object_id(task_id)
        if oid is None:
            return None
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            raise StoreError(f"Failed to load task {task_id}: {e}")
        return Task.from_document(doc) if doc else None

    def insert(self, changes: TaskChanges) -> Task:
        doc = self._new_document(changes)
        try:
            self.collection.insert_one(doc)
        except PyMongoError as e:
            raise StoreError(f"Failed to create task: {e}")
        return Task.from_document(doc)

    def update(self, task_id: str, changes: TaskChanges) -> Optional[Task]:
        oid = _object_id(task_id)
        if oid is None:
            return None
        update = changes.to_document()
        update["updatedAt"] = utcnow()
        try:
            doc = self.collection.find_one_and_update(
                {"_id": oid}, {"$set": update}, return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            raise StoreError(f"Failed to update task {task_id}: {e}")
        return Task.from_document(doc) if doc else None

    def delete(self, task_id: str) -> bool:
        oid = _object_id(task_id)
        if oid is None:
            return False
        try:
            result = self.collection.delete_one({"_id": oid})
        except PyMongoError as e:
            raise StoreError(f"Failed to delete task {task_id}: {e}")
        return result.deleted_count == 1

    def count(self) -> int:
        try:
            return self.collection.count_documents({})
        except PyMongoError as e:
            raise StoreError(f"Failed to count tasks: {e}")

    def close(self) -> None:
        self.client.close()


class MemoryTaskStore(TaskStore):
    """Keeps documents in a dict; same semantics as the Mongo driver."""

    def __init__(self):
        self._docs: Dict[ObjectId, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def ping(self) -> None:
        return None

    def list(self) -> List[Task]:
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._docs.values()]
        # dict keeps insertion order, so reversing gives newest first
        return [Task.from_document(d) for d in reversed(docs)]

    def get(self, task_id: str) -> Optional[Task]:
        oid = _object_id(task_id)
        with self._lock:
            doc = self._docs.get(oid) if oid is not None else None
            return Task.from_document(copy.deepcopy(doc)) if doc else None

    def insert(self, changes: TaskChanges) -> Task:
        doc = self._new_document(changes)
        with self._lock:
            self._docs[doc["_id"]] = doc
            return Task.from_document(copy.deepcopy(doc))

    def update(self, task_id: str, changes: TaskChanges) -> Optional[Task]:
        oid = _object_id(task_id)
        with self._lock:
            doc = self._docs.get(oid) if oid is not None else None
            if doc is None:
                return None
            doc.update(changes.to_document())
            doc["updatedAt"] = utcnow()
            return Task.from_document(copy.deepcopy(doc))

    def delete(self, task_id: str) -> bool:
        oid = _object_id(task_id)
        with self._lock:
            return oid is not None and self._docs.pop(oid, None) is not None

    def count(self) -> int:
        with self._lock:
            return len(self._docs)


def build_store(uri: str, database: Optional[str] = None,
                collection: str = DEFAULT_COLLECTION, timeout_ms: int = 5000) -> TaskStore:
    scheme = uri.split("://", 1)[0].lower() if "://" in uri else ""
    if scheme == "memory":
        return MemoryTaskStore()
    if scheme in ("mongodb", "mongodb+srv"):
        return MongoTaskStore(uri, database=database, collection=collection, timeout_ms=timeout_ms)
    raise ImproperlyConfigured(f"Unsupported task store URI: {uri!r}")


_store: Optional[TaskStore] = None
_store_lock = threading.Lock()


def get_store() -> TaskStore:
    """Return the process-wide store, building it from settings on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = build_store(
                settings.TASKS_STORE_URI,
                database=getattr(settings, "TASKS_STORE_DATABASE", None),
                collection=getattr(settings, "TASKS_STORE_COLLECTION", DEFAULT_COLLECTION),
                timeout_ms=getattr(settings, "TASKS_STORE_TIMEOUT_MS", 5000),
            )
            logger.debug("Task store initialised: %s", type(_store).__name__)
        return _store


def reset_store() -> None:
    global _store
    with _store_lock:
        if _store is not None:
            _store.close()
        _store = None


@receiver(setting_changed)
def _on_setting_changed(setting, **kwargs):
    if setting.startswith("TASKS_STORE_"):
        reset_store()

"""HTTP client for the task API plus the local view state a UI renders from.

The client owns its cached task list outright: nothing is shared between
instances. Each action calls the API first and only touches the cache once a
response has arrived (insert on create, replace on update, remove on delete).
A failed call leaves the cache alone and sets a short ``error`` message; the
underlying exception is logged, not re-raised.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .models import Priority, Status

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_TIMEOUT = 10.0

TaskDict = Dict[str, Any]


def default_config_dir() -> Path:
    raw = os.getenv("TASKBOARD_CONFIG_DIR")
    if raw:
        return Path(raw).expanduser()
    base = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "taskboard"


class Preferences:
    """Client-only display settings kept in a small JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else default_config_dir() / "preferences.json"
        self.theme = "light"
        self.load()

    @property
    def dark_mode(self) -> bool:
        return self.theme == "dark"

    def load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.path, e)
            return
        self.theme = "dark" if data.get("theme") == "dark" else "light"

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"theme": self.theme}, f, indent=2)


class TaskClient:
    def __init__(self, base_url: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 preferences: Optional[Preferences] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.base_url = (base_url or os.getenv("TASKBOARD_API_URL") or DEFAULT_API_URL).rstrip("/")
        self.session = session or requests.Session()
        self.preferences = preferences or Preferences()
        self.timeout = timeout

        self.tasks: List[TaskDict] = []
        self.loading = False
        self.error: Optional[str] = None

    # ---- HTTP ----

    def _url(self, *parts: str) -> str:
        return "/".join([self.base_url, *parts])

    def _request(self, method: str, *parts: str, payload: Optional[dict] = None) -> Any:
        response = self.session.request(method, self._url(*parts), json=payload, timeout=self.timeout)
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def _fail(self, message: str, exc: Exception) -> None:
        logger.warning("%s: %s", message, exc)
        self.error = message

    # ---- actions ----

    def load_tasks(self) -> List[TaskDict]:
        self.loading = True
        try:
            data = self._request("GET", "tasks")
            self.tasks = data if isinstance(data, list) else []
        except (requests.RequestException, ValueError) as e:
            self._fail("Failed to load tasks", e)
            self.tasks = []
        finally:
            self.loading = False
        return self.tasks

    def add_task(self, title: str, description: str = "",
                 priority: str = Priority.MEDIUM.value) -> Optional[TaskDict]:
        if not (title or "").strip():
            return None
        payload = {"title": title, "description": description, "priority": priority}
        try:
            data = self._request("POST", "tasks", payload=payload)
        except (requests.RequestException, ValueError) as e:
            self._fail("Failed to create task", e)
            return None
        task = self._task_from(data, "Failed to create task")
        if task:
            self.tasks.insert(0, task)
        return task

    def toggle_task(self, task: TaskDict) -> Optional[TaskDict]:
        try:
            new_status = Status(task.get("status")).toggled().value
        except ValueError as e:
            self._fail("Failed to update task", e)
            return None
        return self._patch(task["id"], {"status": new_status})

    def update_task(self, task_id: str, **fields: Any) -> Optional[TaskDict]:
        """PUT the full task; fields not passed are taken from the cached copy."""
        current = self.find(task_id) or {}
        payload = {
            key: fields.get(key, current.get(key))
            for key in ("title", "description", "priority", "status")
        }
        try:
            data = self._request("PUT", "tasks", task_id, payload=payload)
        except (requests.RequestException, ValueError) as e:
            self._fail("Failed to update task", e)
            return None
        return self._replace(self._task_from(data, "Failed to update task"))

    def delete_task(self, task_id: str) -> bool:
        try:
            self._request("DELETE", "tasks", task_id)
        except requests.RequestException as e:
            self._fail("Failed to delete task", e)
            return False
        self.tasks = [t for t in self.tasks if t.get("id") != task_id]
        return True

    def _patch(self, task_id: str, payload: dict) -> Optional[TaskDict]:
        try:
            data = self._request("PATCH", "tasks", task_id, payload=payload)
        except (requests.RequestException, ValueError) as e:
            self._fail("Failed to update task", e)
            return None
        return self._replace(self._task_from(data, "Failed to update task"))

    def _task_from(self, data: Any, message: str) -> Optional[TaskDict]:
        """Pull the task out of a {"task": ...} body; anything else counts as a failure."""
        task = data.get("task") if isinstance(data, dict) else None
        if not isinstance(task, dict) or "id" not in task:
            self._fail(message, ValueError(f"unexpected response body: {data!r}"))
            return None
        return task

    def _replace(self, task: Optional[TaskDict]) -> Optional[TaskDict]:
        if task:
            self.tasks = [task if t.get("id") == task["id"] else t for t in self.tasks]
        return task

    # ---- view state ----

    def find(self, task_id: str) -> Optional[TaskDict]:
        return next((t for t in self.tasks if t.get("id") == task_id), None)

    @property
    def pending_tasks(self) -> List[TaskDict]:
        return [t for t in self.tasks if t.get("status") == Status.PENDING.value]

    @property
    def completed_tasks(self) -> List[TaskDict]:
        return [t for t in self.tasks if t.get("status") == Status.COMPLETED.value]

    @property
    def dark_mode(self) -> bool:
        return self.preferences.dark_mode

    def toggle_dark_mode(self) -> bool:
        self.preferences.theme = "light" if self.preferences.dark_mode else "dark"
        self.preferences.save()
        return self.preferences.dark_mode

    def dismiss_error(self) -> None:
        self.error = None

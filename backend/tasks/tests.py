import tempfile
from pathlib import Path
from unittest import mock

import mongomock
import requests
from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase, override_settings
from pymongo.errors import AutoReconnect, ServerSelectionTimeoutError
from rest_framework.test import APIClient, RequestsClient
from rich.console import Console

from .cli import build_parser, run
from .client import Preferences, TaskClient
from .errors import NotFoundError, StoreError, ValidationError
from .models import Priority, Status, TaskChanges
from .service import TaskService
from .startup import connect_store_or_exit
from .store import MemoryTaskStore, MongoTaskStore, TaskStore, build_store, reset_store

MISSING_ID = "0123456789abcdef01234567"


class BrokenStore(TaskStore):
    def ping(self):
        raise StoreError("Could not reach MongoDB: connection refused")

    def list(self):
        raise StoreError("Failed to list tasks: connection refused")

    def insert(self, changes):
        raise StoreError("Failed to create task: connection refused")


class ServiceTests(SimpleTestCase):
    def setUp(self):
        self.store = MemoryTaskStore()
        self.service = TaskService(self.store)

    def test_create_returns_pending_task_with_supplied_fields(self):
        task = self.service.create("Write report", "Quarterly numbers", "High")
        self.assertEqual(task.title, "Write report")
        self.assertEqual(task.description, "Quarterly numbers")
        self.assertEqual(task.priority, Priority.HIGH)
        self.assertEqual(task.status, Status.PENDING)
        self.assertIsNotNone(task.created_at)
        self.assertEqual(len(task.id), 24)

    def test_create_defaults_priority_to_medium(self):
        task = self.service.create("Water plants")
        self.assertEqual(task.priority, Priority.MEDIUM)
        self.assertEqual(task.description, "")

    def test_create_with_empty_title_is_rejected_and_not_persisted(self):
        for title in ("", "   ", None):
            with self.assertRaises(ValidationError):
                self.service.create(title)
        self.assertEqual(self.store.count(), 0)

    def test_create_with_unknown_priority_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.service.create("Call mom", priority="Urgent")
        self.assertEqual(self.store.count(), 0)

    def test_list_after_creates_and_deletes(self):
        created = [self.service.create(f"Task {i}") for i in range(5)]
        for task in created[:2]:
            self.service.delete(task.id)
        remaining = self.service.list()
        self.assertEqual(len(remaining), 3)
        self.assertEqual({t.id for t in remaining}, {t.id for t in created[2:]})

    def test_list_is_newest_first(self):
        first = self.service.create("First")
        second = self.service.create("Second")
        self.assertEqual([t.id for t in self.service.list()], [second.id, first.id])

    def test_toggle_twice_restores_status(self):
        task = self.service.create("Laundry")
        toggled = self.service.toggle_status(task.id)
        self.assertEqual(toggled.status, Status.COMPLETED)
        restored = self.service.toggle_status(task.id)
        self.assertEqual(restored.status, Status.PENDING)

    def test_delete_unknown_id_raises_and_keeps_count(self):
        self.service.create("Keep me")
        for task_id in (MISSING_ID, "not-an-object-id"):
            with self.assertRaises(NotFoundError):
                self.service.delete(task_id)
        self.assertEqual(self.store.count(), 1)

    def test_update_unknown_id_raises(self):
        with self.assertRaises(NotFoundError):
            self.service.update_full(MISSING_ID, TaskChanges.full(title="x"))
        with self.assertRaises(NotFoundError):
            self.service.update_partial(MISSING_ID, TaskChanges(status=Status.COMPLETED))
        with self.assertRaises(NotFoundError):
            self.service.update_partial(MISSING_ID, TaskChanges())

    def test_update_full_resets_omitted_fields(self):
        task = self.service.create("Old", "details", "High")
        self.service.update_partial(task.id, TaskChanges(status=Status.COMPLETED))

        updated = self.service.update_full(task.id, TaskChanges(title="New"))
        self.assertEqual(updated.title, "New")
        self.assertEqual(updated.description, "")
        self.assertEqual(updated.priority, Priority.MEDIUM)
        self.assertEqual(updated.status, Status.PENDING)
        self.assertEqual(updated.created_at, task.created_at)

    def test_update_partial_only_touches_given_fields(self):
        task = self.service.create("Groceries", "eggs", "Low")
        updated = self.service.update_partial(task.id, TaskChanges(status=Status.COMPLETED))
        self.assertEqual(updated.status, Status.COMPLETED)
        self.assertEqual(updated.title, "Groceries")
        self.assertEqual(updated.description, "eggs")
        self.assertEqual(updated.priority, Priority.LOW)

    def test_update_partial_rejects_blank_title(self):
        task = self.service.create("Groceries")
        with self.assertRaises(ValidationError):
            self.service.update_partial(task.id, TaskChanges(title="  "))
        self.assertEqual(self.service.get(task.id).title, "Groceries")


class StoreTests(SimpleTestCase):
    def test_build_store_by_scheme(self):
        self.assertIsInstance(build_store("memory://"), MemoryTaskStore)
        with self.assertRaises(ImproperlyConfigured):
            build_store("postgres://localhost/tasks")

    def test_bad_mongo_uri_becomes_store_error(self):
        with self.assertRaises(StoreError) as ctx:
            build_store("mongodb://localhost:notaport/taskboard")
        self.assertIn("Could not connect to MongoDB", str(ctx.exception.detail))

    def test_memory_store_returns_copies(self):
        store = MemoryTaskStore()
        task = store.insert(TaskChanges.full(title="Original"))
        fetched = store.get(task.id)
        fetched.title = "Mutated"
        self.assertEqual(store.get(task.id).title, "Original")


class MongoTaskStoreTests(SimpleTestCase):
    def setUp(self):
        patcher = mock.patch("tasks.store.MongoClient", mongomock.MongoClient)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.store = MongoTaskStore("mongodb://localhost:27017/taskboard_test")

    def test_uses_database_from_uri(self):
        self.assertEqual(self.store.collection.database.name, "taskboard_test")
        other = MongoTaskStore("mongodb://localhost:27017/ignored", database="explicit",
                               collection="todo")
        self.assertEqual(other.collection.database.name, "explicit")
        self.assertEqual(other.collection.name, "todo")

    def test_insert_and_list_newest_first(self):
        first = self.store.insert(TaskChanges.full(title="First"))
        second = self.store.insert(TaskChanges.full(title="Second", priority=Priority.HIGH))
        listed = self.store.list()
        self.assertEqual([t.id for t in listed], [second.id, first.id])
        self.assertEqual(listed[0].priority, Priority.HIGH)
        self.assertEqual(listed[1].status, Status.PENDING)
        self.assertIsNotNone(listed[0].created_at.tzinfo)
        self.assertEqual(self.store.count(), 2)

    def test_update_returns_document_after_change(self):
        task = self.store.insert(TaskChanges.full(title="Laundry", description="whites"))
        updated = self.store.update(task.id, TaskChanges(status=Status.COMPLETED))
        self.assertEqual(updated.status, Status.COMPLETED)
        self.assertEqual(updated.description, "whites")
        self.assertEqual(self.store.get(task.id).status, Status.COMPLETED)

    def test_unknown_and_malformed_ids(self):
        self.store.insert(TaskChanges.full(title="Stay"))
        for task_id in (MISSING_ID, "not-an-object-id"):
            self.assertIsNone(self.store.get(task_id))
            self.assertIsNone(self.store.update(task_id, TaskChanges(title="x")))
            self.assertFalse(self.store.delete(task_id))
        self.assertEqual(self.store.count(), 1)

    def test_delete(self):
        task = self.store.insert(TaskChanges.full(title="Trash"))
        self.assertTrue(self.store.delete(task.id))
        self.assertEqual(self.store.list(), [])

    def test_driver_errors_become_store_errors(self):
        task = self.store.insert(TaskChanges.full(title="Flaky"))
        self.store.collection = mock.Mock()
        for method in ("find", "find_one", "insert_one", "find_one_and_update",
                       "delete_one", "count_documents"):
            getattr(self.store.collection, method).side_effect = AutoReconnect("connection reset")

        calls = [
            self.store.list,
            lambda: self.store.get(task.id),
            lambda: self.store.insert(TaskChanges.full(title="New")),
            lambda: self.store.update(task.id, TaskChanges(status=Status.COMPLETED)),
            lambda: self.store.delete(task.id),
            self.store.count,
        ]
        for call in calls:
            with self.assertRaises(StoreError):
                call()

    def test_ping_failure_becomes_store_error(self):
        self.store.client = mock.Mock()
        self.store.client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")
        with self.assertRaises(StoreError) as ctx:
            self.store.ping()
        self.assertIn("Could not reach MongoDB", str(ctx.exception.detail))


class StartupTests(SimpleTestCase):
    def test_exits_when_store_unreachable(self):
        with mock.patch("tasks.startup.get_store", return_value=BrokenStore()):
            with self.assertLogs("tasks.startup", level="CRITICAL") as logs:
                with self.assertRaises(SystemExit) as ctx:
                    connect_store_or_exit()
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("Failed to connect to database", logs.output[0])
        self.assertIn("Server will not start", logs.output[1])

    @override_settings(TASKS_STORE_URI="mongodb://localhost:notaport/taskboard")
    def test_exits_on_malformed_uri(self):
        reset_store()
        with self.assertLogs("tasks.startup", level="CRITICAL"):
            with self.assertRaises(SystemExit) as ctx:
                connect_store_or_exit()
        self.assertEqual(ctx.exception.code, 1)

    @override_settings(TASKS_STORE_URI="memory://")
    def test_memory_store_starts(self):
        reset_store()
        with self.assertLogs("tasks.startup", level="INFO"):
            connect_store_or_exit()


@override_settings(TASKS_STORE_URI="memory://")
class TaskApiTests(SimpleTestCase):
    def setUp(self):
        reset_store()
        self.client = APIClient()

    def create(self, **body):
        return self.client.post("/api/tasks", body, format="json")

    def test_health(self):
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"status": "ok", "message": "Backend is running"})

    def test_create_and_list(self):
        res = self.create(title="Buy milk")
        self.assertEqual(res.status_code, 201)
        task = res.json()["task"]
        self.assertEqual(task["title"], "Buy milk")
        self.assertEqual(task["status"], "Pending")
        self.assertEqual(task["priority"], "Medium")
        self.assertIn("createdAt", task)

        listed = self.client.get("/api/tasks/").json()
        self.assertEqual([t["id"] for t in listed], [task["id"]])

    def test_create_with_empty_title_returns_400(self):
        res = self.create(title="   ", description="nothing")
        self.assertEqual(res.status_code, 400)
        self.assertIn("title", res.json()["error"])
        self.assertEqual(self.client.get("/api/tasks").json(), [])

    def test_create_with_bad_priority_returns_400(self):
        res = self.create(title="Something", priority="Whenever")
        self.assertEqual(res.status_code, 400)
        self.assertIn("priority", res.json()["details"])

    def test_malformed_json_returns_400(self):
        res = self.client.post("/api/tasks", data="{not json", content_type="application/json")
        self.assertEqual(res.status_code, 400)
        self.assertIn("error", res.json())

    def test_patch_status(self):
        task = self.create(title="Laundry").json()["task"]
        res = self.client.patch(f"/api/tasks/{task['id']}", {"status": "Completed"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["task"]["status"], "Completed")
        self.assertEqual(res.json()["task"]["title"], "Laundry")

    def test_put_replaces_fields(self):
        task = self.create(title="Draft", description="v1", priority="High").json()["task"]
        res = self.client.put(f"/api/tasks/{task['id']}",
                              {"title": "Final", "status": "Completed"}, format="json")
        self.assertEqual(res.status_code, 200)
        body = res.json()["task"]
        self.assertEqual(body["title"], "Final")
        self.assertEqual(body["description"], "")
        self.assertEqual(body["priority"], "Medium")
        self.assertEqual(body["status"], "Completed")

    def test_put_without_title_returns_400(self):
        task = self.create(title="Draft").json()["task"]
        res = self.client.put(f"/api/tasks/{task['id']}", {"priority": "Low"}, format="json")
        self.assertEqual(res.status_code, 400)

    def test_delete(self):
        task = self.create(title="Trash").json()["task"]
        res = self.client.delete(f"/api/tasks/{task['id']}")
        self.assertEqual(res.status_code, 204)
        self.assertEqual(res.content, b"")
        self.assertEqual(self.client.get("/api/tasks").json(), [])

    def test_unknown_id_returns_404(self):
        self.create(title="Stay")
        for method in ("put", "patch"):
            res = getattr(self.client, method)(f"/api/tasks/{MISSING_ID}",
                                               {"title": "x"}, format="json")
            self.assertEqual(res.status_code, 404)
            self.assertIn("not found", res.json()["error"])
        res = self.client.delete("/api/tasks/garbage")
        self.assertEqual(res.status_code, 404)
        self.assertEqual(len(self.client.get("/api/tasks").json()), 1)

    def test_store_failure_returns_500(self):
        with mock.patch("tasks.service.get_store", return_value=BrokenStore()):
            res = self.client.get("/api/tasks")
            self.assertEqual(res.status_code, 500)
            self.assertIn("Failed to list tasks", res.json()["error"])

            res = self.create(title="Nope")
            self.assertEqual(res.status_code, 500)

    def test_unexpected_error_returns_json_500(self):
        with mock.patch.object(MemoryTaskStore, "list", side_effect=RuntimeError("boom")):
            with self.assertLogs("tasks.errors", level="ERROR"):
                res = self.client.get("/api/tasks")
        self.assertEqual(res.status_code, 500)
        self.assertEqual(res.json(), {"error": "Internal server error"})

    def test_long_title_is_accepted(self):
        title = "Plan " * 100
        res = self.create(title=title)
        self.assertEqual(res.status_code, 201)
        self.assertEqual(res.json()["task"]["title"], title.strip())
        self.assertEqual(TaskService(MemoryTaskStore()).create(title).title, title.strip())


@override_settings(TASKS_STORE_URI="memory://")
class TaskClientTests(SimpleTestCase):
    def setUp(self):
        reset_store()
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.prefs_path = Path(self._tmp.name) / "preferences.json"
        self.client = TaskClient(
            base_url="http://testserver/api",
            session=RequestsClient(),
            preferences=Preferences(self.prefs_path),
        )

    def test_end_to_end_lifecycle(self):
        task = self.client.add_task("Buy milk")
        self.assertEqual(task["status"], "Pending")
        self.assertEqual(self.client.tasks[0]["id"], task["id"])

        self.client.toggle_task(task)
        self.client.load_tasks()
        self.assertEqual([t["id"] for t in self.client.completed_tasks], [task["id"]])
        self.assertEqual(self.client.pending_tasks, [])

        self.assertTrue(self.client.delete_task(task["id"]))
        self.client.load_tasks()
        self.assertIsNone(self.client.find(task["id"]))
        self.assertIsNone(self.client.error)

    def test_new_tasks_are_prepended(self):
        first = self.client.add_task("First")
        second = self.client.add_task("Second", priority="High")
        self.assertEqual([t["id"] for t in self.client.tasks], [second["id"], first["id"]])

    def test_blank_title_is_ignored(self):
        self.assertIsNone(self.client.add_task("  "))
        self.assertEqual(self.client.load_tasks(), [])
        self.assertIsNone(self.client.error)

    def test_update_task_keeps_cached_fields(self):
        task = self.client.add_task("Plan trip", "book hotel", "Low")
        updated = self.client.update_task(task["id"], title="Plan vacation")
        self.assertEqual(updated["title"], "Plan vacation")
        self.assertEqual(updated["description"], "book hotel")
        self.assertEqual(updated["priority"], "Low")
        self.assertEqual(self.client.find(task["id"])["title"], "Plan vacation")

    def test_failed_delete_leaves_list_unchanged(self):
        self.client.add_task("Keep")
        before = list(self.client.tasks)
        with self.assertLogs("tasks.client", level="WARNING"):
            self.assertFalse(self.client.delete_task(MISSING_ID))
        self.assertEqual(self.client.tasks, before)
        self.assertEqual(self.client.error, "Failed to delete task")

        self.client.dismiss_error()
        self.assertIsNone(self.client.error)

    def test_failed_toggle_leaves_list_unchanged(self):
        task = self.client.add_task("Stale")
        ghost = dict(task, id=MISSING_ID)
        with self.assertLogs("tasks.client", level="WARNING"):
            self.assertIsNone(self.client.toggle_task(ghost))
        self.assertEqual(self.client.tasks, [task])
        self.assertEqual(self.client.error, "Failed to update task")

    def test_connection_failure_on_load(self):
        session = mock.Mock(spec=requests.Session)
        session.request.side_effect = requests.ConnectionError("refused")
        client = TaskClient("http://localhost:1/api", session=session,
                            preferences=Preferences(self.prefs_path))
        client.tasks = [{"id": "stale"}]
        with self.assertLogs("tasks.client", level="WARNING"):
            self.assertEqual(client.load_tasks(), [])
        self.assertFalse(client.loading)
        self.assertEqual(client.error, "Failed to load tasks")

    def test_connection_failure_on_create(self):
        session = mock.Mock(spec=requests.Session)
        session.request.side_effect = requests.Timeout("slow")
        client = TaskClient("http://localhost:1/api", session=session,
                            preferences=Preferences(self.prefs_path))
        with self.assertLogs("tasks.client", level="WARNING"):
            self.assertIsNone(client.add_task("Offline"))
        self.assertEqual(client.tasks, [])
        self.assertEqual(client.error, "Failed to create task")

    def test_dark_mode_is_persisted(self):
        self.assertFalse(self.client.dark_mode)
        self.assertTrue(self.client.toggle_dark_mode())
        self.assertTrue(Preferences(self.prefs_path).dark_mode)
        self.assertFalse(self.client.toggle_dark_mode())
        self.assertFalse(Preferences(self.prefs_path).dark_mode)

    def test_corrupt_preferences_fall_back_to_light(self):
        self.prefs_path.write_text("{oops", encoding="utf-8")
        with self.assertLogs("tasks.client", level="WARNING"):
            prefs = Preferences(self.prefs_path)
        self.assertFalse(prefs.dark_mode)

    def _client_answering(self, body):
        response = requests.Response()
        response.status_code = 200
        response._content = body
        session = mock.Mock(spec=requests.Session)
        session.request.return_value = response
        return TaskClient("http://localhost:1/api", session=session,
                          preferences=Preferences(self.prefs_path))

    def test_unexpected_response_body_sets_error(self):
        client = self._client_answering(b'["not", "a", "task"]')
        client.tasks = [{"id": "abc", "title": "Kept", "status": "Pending"}]
        before = list(client.tasks)
        with self.assertLogs("tasks.client", level="WARNING"):
            self.assertIsNone(client.add_task("New"))
        self.assertEqual(client.error, "Failed to create task")
        self.assertEqual(client.tasks, before)

        client.dismiss_error()
        with self.assertLogs("tasks.client", level="WARNING"):
            self.assertIsNone(client.update_task("abc", title="Renamed"))
            self.assertIsNone(client.toggle_task(before[0]))
        self.assertEqual(client.error, "Failed to update task")
        self.assertEqual(client.tasks, before)

    def test_toggle_with_unknown_status_sets_error(self):
        task = self.client.add_task("Odd")
        weird = dict(task, status="Archived")
        with self.assertLogs("tasks.client", level="WARNING"):
            self.assertIsNone(self.client.toggle_task(weird))
        self.assertEqual(self.client.error, "Failed to update task")
        self.assertEqual(self.client.tasks, [task])


@override_settings(TASKS_STORE_URI="memory://")
class CliTests(SimpleTestCase):
    def setUp(self):
        reset_store()
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.client = TaskClient(
            base_url="http://testserver/api",
            session=RequestsClient(),
            preferences=Preferences(Path(self._tmp.name) / "preferences.json"),
        )
        self.console = Console(record=True, width=120, color_system=None)

    def invoke(self, *argv):
        return run(build_parser().parse_args(list(argv)), self.client, self.console)

    def test_add_then_toggle_renders_both_sections(self):
        self.assertEqual(self.invoke("add", "Buy milk", "-p", "h"), 0)
        task_id = self.client.tasks[0]["id"]
        self.assertEqual(self.client.tasks[0]["priority"], "High")

        self.assertEqual(self.invoke("toggle", task_id), 0)
        output = self.console.export_text()
        self.assertIn("Completed Tasks (1)", output)
        self.assertIn("Buy milk", output)

    def test_unknown_id_reports_error(self):
        self.assertEqual(self.invoke("toggle", MISSING_ID), 1)
        self.assertIn(f"No task with id {MISSING_ID}", self.console.export_text())

    def test_theme_switches_preference(self):
        self.invoke("theme")
        self.assertTrue(self.client.dark_mode)

from django.apps import AppConfig


class TasksConfig(AppConfig):
    name = "tasks"

    def ready(self):
        # connects the setting_changed receiver that resets the cached store
        from . import store  # noqa: F401

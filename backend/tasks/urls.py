from django.urls import re_path

from .views import HealthCheck, TaskDetail, TaskList

urlpatterns = [
    re_path(r"^tasks/?$", TaskList.as_view(), name="task-list"),
    re_path(r"^tasks/(?P<task_id>[^/]+)/?$", TaskDetail.as_view(), name="task-detail"),
    re_path(r"^health/?$", HealthCheck.as_view(), name="health"),
]

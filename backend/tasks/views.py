# views.py
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from .serializers import (
    TaskCreateSerializer,
    TaskPatchSerializer,
    TaskSerializer,
    TaskUpdateSerializer,
)
from .service import TaskService


def task_response(task, status_code=status.HTTP_200_OK) -> Response:
    """Wrap a single task the way every write endpoint returns it: {"task": {...}}."""
    return Response({"task": TaskSerializer(task).data}, status=status_code)


class TaskList(APIView):
    """
    GET  /api/tasks  -> array of tasks, newest first
    POST /api/tasks  -> {title, description?, priority?}; returns {"task": ...} with 201
    """

    def get(self, request):
        tasks = TaskService().list()
        return Response(TaskSerializer(tasks, many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        serializer = TaskCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        task = TaskService().create(
            title=data["title"],
            description=data.get("description"),
            priority=data.get("priority"),
        )
        return task_response(task, status.HTTP_201_CREATED)


class TaskDetail(APIView):
    """
    PUT    /api/tasks/<id>  -> replace all mutable fields
    PATCH  /api/tasks/<id>  -> merge the given fields (e.g. {"status": "Completed"})
    DELETE /api/tasks/<id>  -> 204 with no body
    Unknown ids answer 404.
    """

    def put(self, request, task_id):
        serializer = TaskUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = TaskService().update_full(task_id, serializer.to_changes())
        return task_response(task)

    def patch(self, request, task_id):
        serializer = TaskPatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = TaskService().update_partial(task_id, serializer.to_changes())
        return task_response(task)

    def delete(self, request, task_id):
        TaskService().delete(task_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class HealthCheck(APIView):
    """GET /api/health"""

    def get(self, request):
        return Response({"status": "ok", "message": "Backend is running"}, status=status.HTTP_200_OK)

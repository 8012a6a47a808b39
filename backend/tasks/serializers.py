from rest_framework import serializers

from .models import Priority, Status, TaskChanges

PRIORITY_CHOICES = [p.value for p in Priority]
STATUS_CHOICES = [s.value for s in Status]


class TaskSerializer(serializers.Serializer):
    """Output shape of a task; keys match what the frontend reads."""
    id = serializers.CharField(read_only=True)
    title = serializers.CharField(read_only=True)
    description = serializers.CharField(read_only=True)
    priority = serializers.CharField(source="priority.value", read_only=True)
    status = serializers.CharField(source="status.value", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)


class TaskCreateSerializer(serializers.Serializer):
    title = serializers.CharField()
    description = serializers.CharField(required=False, allow_blank=True, default="")
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False,
                                       default=Priority.MEDIUM.value)


class TaskUpdateSerializer(serializers.Serializer):
    """PUT body: the whole mutable task. Optional fields left out reset to defaults."""
    title = serializers.CharField()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False, allow_null=True)
    status = serializers.ChoiceField(choices=STATUS_CHOICES, required=False, allow_null=True)

    def to_changes(self) -> TaskChanges:
        data = self.validated_data
        return TaskChanges.full(
            title=data["title"],
            description=data.get("description"),
            priority=Priority(data["priority"]) if data.get("priority") else None,
            status=Status(data["status"]) if data.get("status") else None,
        )


class TaskPatchSerializer(serializers.Serializer):
    """PATCH body: any subset of the mutable fields, most often just ``status``."""
    title = serializers.CharField(required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False)
    status = serializers.ChoiceField(choices=STATUS_CHOICES, required=False)

    def to_changes(self) -> TaskChanges:
        data = self.validated_data
        return TaskChanges(
            title=data.get("title"),
            description=data.get("description"),
            priority=Priority(data["priority"]) if "priority" in data else None,
            status=Status(data["status"]) if "status" in data else None,
        )

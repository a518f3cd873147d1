from django.contrib.auth import get_user_model
from rest_framework import serializers

from apps.tasks.models import (
    ApprovalRequest,
    AssignmentStrategy,
    Task,
    TaskAction,
    TaskAssignmentSuggestion,
    TaskHistory,
    TimeLogEntry,
)
from apps.users.api.serializers import UserSerializer
from apps.users.models import Team

User = get_user_model()


class TaskSerializer(serializers.ModelSerializer):
    created_by = serializers.PrimaryKeyRelatedField(read_only=True)
    assigned_to = serializers.PrimaryKeyRelatedField(read_only=True)
    team = serializers.PrimaryKeyRelatedField(queryset=Team.objects.all(), required=False, allow_null=True)

    class Meta:
        model = Task
        fields = [
            "id",
            "title",
            "description",
            "status",
            "priority",
            "scheduled_at",
            "estimated_hours",
            "created_by",
            "team",
            "assigned_to",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "status",
            "created_by",
            "assigned_to",
            "created_at",
            "updated_at",
        ]

    def create(self, validated_data):
        request = self.context["request"]
        task = Task.objects.create(created_by=request.user, **validated_data)
        TaskHistory.objects.create(task=task, user=request.user, action=TaskAction.CREATED)
        return task

    def update(self, instance, validated_data):
        request = self.context["request"]
        for k, v in validated_data.items():
            setattr(instance, k, v)
        instance.save()
        TaskHistory.objects.create(
            task=instance, user=request.user, action=TaskAction.UPDATED, metadata={"fields": sorted(validated_data)}
        )
        return instance


class AutoAssignSerializer(serializers.Serializer):
    # Unknown modes are rejected by the orchestrator with InvalidStrategy
    mode = serializers.CharField(required=False, default=AssignmentStrategy.AI)
    override_approval = serializers.BooleanField(required=False, default=False)


class ManualAssignSerializer(serializers.Serializer):
    assigned_to = serializers.IntegerField(min_value=1)
    message = serializers.CharField(required=False, allow_blank=True, default="")
    request_approval = serializers.BooleanField(required=False, default=False)


class LogTimeSerializer(serializers.Serializer):
    start_time = serializers.DateTimeField(required=False)
    end_time = serializers.DateTimeField(required=False)
    duration_hours = serializers.FloatField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    auto_detected = serializers.BooleanField(required=False, default=False)
    complete_if_done = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if ("start_time" in attrs) != ("end_time" in attrs) and "duration_hours" not in attrs:
            raise serializers.ValidationError("start_time and end_time must be given together.")
        return attrs


class ApprovalRequestSerializer(serializers.ModelSerializer):
    task_title = serializers.CharField(source="task.title", read_only=True)
    team = serializers.IntegerField(source="task.team_id", read_only=True)
    requested_by = UserSerializer(read_only=True)
    approved_by = UserSerializer(read_only=True)

    class Meta:
        model = ApprovalRequest
        fields = [
            "id",
            "task",
            "task_title",
            "team",
            "status",
            "reason",
            "requested_by",
            "approved_by",
            "approved_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ApprovalCreateSerializer(serializers.Serializer):
    task = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ApprovalDecisionSerializer(serializers.Serializer):
    comments = serializers.CharField(required=False, allow_blank=True, default="")
    rejection_reason = serializers.CharField(required=False, allow_blank=True, default="")


class TaskHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = TaskHistory
        fields = ["id", "action", "metadata", "created_at", "user"]


class TimeLogEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = TimeLogEntry
        fields = [
            "id",
            "task",
            "user",
            "start_time",
            "end_time",
            "hours_spent",
            "notes",
            "auto_detected",
            "created_at",
        ]


class SuggestAssignmentSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=200)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    team_id = serializers.IntegerField(min_value=1)
    candidate_user_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1), required=False, allow_empty=True
    )


class SuggestionHistoryQuerySerializer(serializers.Serializer):
    team_id = serializers.IntegerField(min_value=1)
    limit = serializers.IntegerField(required=False, default=10)


class TaskAssignmentSuggestionSerializer(serializers.ModelSerializer):
    class Meta:
        model = TaskAssignmentSuggestion
        fields = [
            "id",
            "title",
            "description",
            "team",
            "recommendations",
            "suggested_priority",
            "suggested_estimated_hours",
            "candidate_user_ids",
            "requested_by",
            "source",
            "created_at",
        ]

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class TaskStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    ASSIGNED = "ASSIGNED", "Assigned"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    PENDING_APPROVAL = "PENDING_APPROVAL", "Pending Approval"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"
    COMPLETED = "COMPLETED", "Completed"


# Statuses that still count against a member's workload
OPEN_TASK_STATUSES = (
    TaskStatus.DRAFT,
    TaskStatus.IN_PROGRESS,
    TaskStatus.PENDING_APPROVAL,
)


class TaskPriority(models.TextChoices):
    LOW = "LOW", "Low"
    MEDIUM = "MEDIUM", "Medium"
    HIGH = "HIGH", "High"
    URGENT = "URGENT", "Urgent"


class ApprovalStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    APPROVED = "APPROVED", "Approved"
    REJECTED = "REJECTED", "Rejected"


class AssignmentStrategy(models.TextChoices):
    AI = "ai", "AI assisted"
    BALANCED = "balanced", "Balanced"
    MIN_LOAD = "min-load", "Minimum load"


class TaskAction(models.TextChoices):
    CREATED = "created", "Created"
    UPDATED = "updated", "Updated"
    STATUS_CHANGED = "status_changed", "Status Changed"
    ASSIGNED = "assigned", "Assigned"
    APPROVAL_REQUESTED = "approval_requested", "Approval Requested"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    TIME_LOGGED = "time_logged", "Time Logged"


class SuggestionSource(models.TextChoices):
    AI = "ai", "AI"
    HEURISTIC = "heuristic", "Heuristic"


class Task(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")

    status = models.CharField(
        max_length=32,
        choices=TaskStatus.choices,
        default=TaskStatus.DRAFT
    )
    priority = models.CharField(
        max_length=16,
        choices=TaskPriority.choices,
        default=TaskPriority.MEDIUM
    )

    scheduled_at = models.DateTimeField(null=True, blank=True)
    estimated_hours = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(0)]
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tasks_created"
    )
    team = models.ForeignKey(
        "users.Team",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="tasks"
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="tasks_assigned"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="tasks_task_status_idx"),
            models.Index(fields=["priority"], name="tasks_task_priority_idx"),
            models.Index(fields=["scheduled_at"], name="tasks_task_sched_idx"),
            models.Index(fields=["assigned_to", "status"], name="tasks_task_assignee_st_idx"),
            models.Index(fields=["created_at"], name="tasks_task_created_idx"),
        ]
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.title

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_TASK_STATUSES


class ApprovalRequest(models.Model):
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name="approval_requests")
    status = models.CharField(
        max_length=16,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING
    )
    reason = models.TextField(blank=True, default="")
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="approval_requests_made"
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="approval_decisions"
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["status", "created_at"], name="tasks_appr_status_idx")]

    def __str__(self) -> str:
        return f"Approval #{self.pk} ({self.status}) for {self.task_id}"

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING


class TimeLogEntry(models.Model):
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name="time_logs")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="time_logs"
    )
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    hours_spent = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(0)]
    )
    notes = models.TextField(blank=True, default="")
    auto_detected = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["task", "created_at"], name="tasks_timelog_task_idx")]

    def __str__(self) -> str:
        return f"{self.hours_spent}h by {self.user_id} on {self.task_id}"


class TaskHistory(models.Model):
    task = models.ForeignKey(Task, on_delete=models.CASCADE, related_name="history")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="task_events"
    )
    action = models.CharField(max_length=100, choices=TaskAction.choices)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["task", "created_at"], name="tasks_history_task_idx")]

    def __str__(self) -> str:
        return f"{self.action} on {self.task_id}"


class TaskAssignmentSuggestion(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True, default="")
    team = models.ForeignKey(
        "users.Team",
        on_delete=models.CASCADE,
        related_name="assignment_suggestions"
    )
    recommendations = models.JSONField(default=list)
    suggested_priority = models.CharField(max_length=16, choices=TaskPriority.choices)
    suggested_estimated_hours = models.DecimalField(max_digits=6, decimal_places=2)
    candidate_user_ids = models.JSONField(null=True, blank=True)
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="assignment_suggestions"
    )
    source = models.CharField(
        max_length=16,
        choices=SuggestionSource.choices,
        default=SuggestionSource.AI
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["team", "created_at"], name="tasks_sugg_team_idx")]

    def __str__(self) -> str:
        return f"Suggestion for '{self.title}'"

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from numbers import Real
from typing import Callable, Dict, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from apps.common.db import atomic_with_timeout
from apps.common.exceptions import InvalidDuration, InvalidRange, NotAllowedToLogTime, UserNotFound
from apps.tasks.celery_tasks import queue_task_notification
from apps.tasks.models import Task, TaskAction, TaskHistory, TaskStatus, TimeLogEntry
from apps.tasks.producer.events import publish_task_completed, publish_time_logged
from apps.users.models import UserRole
from .assignment import lock_task

logger = logging.getLogger(__name__)

User = get_user_model()

HOURS = Decimal("0.01")
# Largest value hours_spent (max_digits=6, decimal_places=2) can hold
MAX_LOG_HOURS = Decimal("9999.99")


def quantize_hours(value) -> Decimal:
    return Decimal(str(value)).quantize(HOURS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TimeLogSummary:
    duration_logged: float
    total_logged_hours: float
    estimated_hours: Optional[float]
    remaining_hours: Optional[float]
    completion_percentage: Optional[int]
    status_changed: bool
    auto_completed: bool

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class TimeLogResult:
    entry: TimeLogEntry
    task: Task
    user: User
    summary: TimeLogSummary


def resolve_window(start: Optional[datetime], end: Optional[datetime], duration_hours,
                   now: datetime):
    """
    Turn either an explicit window or a duration into (start, end, hours).

    A duration produces a synthetic window ending now. Hours are kept to two
    decimal places and must land in (0, MAX_LOG_HOURS] after rounding.
    """
    if start is not None and end is not None:
        if end <= start:
            raise InvalidRange("end_time must be after start_time")
        hours = quantize_hours(Decimal((end - start).total_seconds()) / Decimal(3600))
        if hours > MAX_LOG_HOURS:
            raise InvalidRange(f"A single entry cannot exceed {MAX_LOG_HOURS} hours")
        if hours <= 0:
            raise InvalidRange("The time window is shorter than 0.01 hours")
        return start, end, hours

    if duration_hours is not None:
        if isinstance(duration_hours, bool) or not isinstance(duration_hours, (Real, Decimal)):
            raise InvalidDuration("duration_hours must be a positive number")
        value = Decimal(str(duration_hours))
        if not value.is_finite() or value <= 0:
            raise InvalidDuration("duration_hours must be a positive number")
        if value > MAX_LOG_HOURS:
            raise InvalidDuration(f"duration_hours cannot exceed {MAX_LOG_HOURS}")
        hours = quantize_hours(value)
        if hours <= 0:
            raise InvalidDuration("duration_hours must be at least 0.01")
        end = now
        start = end - timedelta(hours=float(hours))
        return start, end, hours

    raise InvalidRange("Either (start_time + end_time) or duration_hours is required")


def can_log_time(user: User, task: Task) -> bool:
    return (
        task.assigned_to_id == user.id
        or (user.role == UserRole.TEAM_LEADER and user.team_id is not None and user.team_id == task.team_id)
        or user.role == UserRole.ADMIN
    )


def _summary(duration: Decimal, total: Decimal, estimate: Optional[Decimal],
             status_changed: bool, auto_completed: bool) -> TimeLogSummary:
    if estimate:
        remaining = float(max(Decimal(0), estimate - total))
        completion = min(100, int((total / estimate * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)))
    else:
        remaining = completion = None
    return TimeLogSummary(
        duration_logged=float(duration),
        total_logged_hours=float(total),
        estimated_hours=float(estimate) if estimate is not None else None,
        remaining_hours=remaining,
        completion_percentage=completion,
        status_changed=status_changed,
        auto_completed=auto_completed,
    )


class TimeLedger:
    def __init__(self, clock: Callable[[], datetime] = timezone.now):
        self.clock = clock

    def log_time(self, task_id, user_id, start: Optional[datetime] = None, end: Optional[datetime] = None,
                 duration_hours=None, notes: str = "", complete_if_done: bool = False,
                 auto_detected: bool = False) -> TimeLogResult:
        """
        Record time spent on a task.

        With complete_if_done the task is completed once the logged total
        reaches a set estimate. Tasks without an estimate never auto-complete.
        """
        start, end, hours = resolve_window(start, end, duration_hours, self.clock())

        try:
            user = User.objects.get(pk=user_id)
        except (User.DoesNotExist, ValueError):
            raise UserNotFound(user_id)

        timeout = getattr(settings, "TIME_LOG_TRANSACTION_TIMEOUT_SECONDS", 10)
        with atomic_with_timeout(timeout):
            task = lock_task(task_id)
            if not can_log_time(user, task):
                raise NotAllowedToLogTime(f"User {user.name} is not authorized to log time for this task")

            entry = TimeLogEntry.objects.create(
                task=task,
                user=user,
                start_time=start,
                end_time=end,
                hours_spent=hours,
                notes=notes or "",
                auto_detected=auto_detected,
            )
            total = quantize_hours(
                task.time_logs.aggregate(total=Sum("hours_spent"))["total"] or Decimal(0)
            )

            old_status = task.status
            estimate = task.estimated_hours
            if complete_if_done and estimate and total >= estimate and task.status != TaskStatus.COMPLETED:
                task.status = TaskStatus.COMPLETED
            status_changed = task.status != old_status
            task.save(update_fields=["status", "updated_at"])

            TaskHistory.objects.create(
                task=task,
                user=user,
                action=TaskAction.TIME_LOGGED,
                metadata={"entry_id": entry.id, "hours": float(hours), "total_logged_hours": float(total)},
            )
            if status_changed:
                TaskHistory.objects.create(
                    task=task,
                    user=user,
                    action=TaskAction.STATUS_CHANGED,
                    metadata={"from": old_status, "to": task.status, "auto_completed": True},
                )

            summary = _summary(hours, total, estimate, status_changed, status_changed)
            entry_id, task_title, task_pk = entry.id, task.title, task.id

            def notify():
                publish_time_logged(user.id, task_pk, entry_id, float(hours), float(total))
                if status_changed:
                    publish_task_completed(user.id, task_pk, task_title)
                    queue_task_notification(task_pk, "completed")

            transaction.on_commit(notify)

        logger.info(
            f"User {user.id} logged {hours}h on task {task.id} "
            f"(total {total}h{', completed' if status_changed else ''})"
        )
        return TimeLogResult(entry=entry, task=task, user=user, summary=summary)

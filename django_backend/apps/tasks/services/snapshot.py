from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Tuple

from django.contrib.auth import get_user_model
from django.db.models import Prefetch

from apps.common.exceptions import NoTeamMembers, TaskNotFound, TeamNotAssigned, TeamNotFound
from apps.tasks.models import OPEN_TASK_STATUSES, Task
from apps.users.models import Team

User = get_user_model()

RECENT_TASKS_PER_MEMBER = 10


def to_hours(value) -> float:
    """Estimated hours as a float; missing or non-numeric values count as 0"""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        hours = float(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        return 0.0
    if hours != hours or hours in (float("inf"), float("-inf")):
        return 0.0
    return hours


@dataclass(frozen=True)
class OpenTask:
    id: int
    title: str
    status: str
    priority: str
    estimated_hours: float
    scheduled_at: Optional[datetime]

    @classmethod
    def from_task(cls, task: Task) -> "OpenTask":
        return cls(
            id=task.id,
            title=task.title,
            status=task.status,
            priority=task.priority,
            estimated_hours=to_hours(task.estimated_hours),
            scheduled_at=task.scheduled_at,
        )


@dataclass(frozen=True)
class MemberSnapshot:
    user: User
    open_tasks: Tuple[OpenTask, ...] = ()
    recent_task_titles: Tuple[str, ...] = ()

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def name(self) -> str:
        return self.user.name

    @property
    def role(self) -> str:
        return self.user.role

    @property
    def open_hours(self) -> float:
        return sum(t.estimated_hours for t in self.open_tasks)

    def experience_titles(self) -> Tuple[str, ...]:
        """Titles that count as evidence of a member's skills"""
        return tuple(t.title for t in self.open_tasks) + self.recent_task_titles


@dataclass(frozen=True)
class TeamSnapshot:
    """A team and its members with their open work, read once per request"""

    team: Team
    members: Tuple[MemberSnapshot, ...] = field(default_factory=tuple)

    @property
    def member_ids(self) -> Tuple[int, ...]:
        return tuple(m.user_id for m in self.members)

    def member(self, user_id) -> Optional[MemberSnapshot]:
        for m in self.members:
            if str(m.user_id) == str(user_id):
                return m
        return None

    def __len__(self):
        return len(self.members)


def _member_queryset(team: Team, candidate_user_ids: Optional[Iterable[int]] = None):
    qs = (
        User.objects.filter(team=team, is_active=True)
        .order_by("id")
        .prefetch_related(
            Prefetch(
                "tasks_assigned",
                queryset=Task.objects.filter(status__in=OPEN_TASK_STATUSES).order_by("id"),
                to_attr="open_tasks",
            ),
            Prefetch(
                "tasks_created",
                queryset=Task.objects.order_by("-created_at", "-id")[:RECENT_TASKS_PER_MEMBER],
                to_attr="recent_created_tasks",
            ),
        )
    )
    if candidate_user_ids:
        qs = qs.filter(id__in=list(candidate_user_ids))
    return qs


def build_team_snapshot(team: Team, candidate_user_ids: Optional[Iterable[int]] = None) -> TeamSnapshot:
    members = tuple(
        MemberSnapshot(
            user=u,
            open_tasks=tuple(OpenTask.from_task(t) for t in u.open_tasks),
            recent_task_titles=tuple(t.title for t in u.recent_created_tasks),
        )
        for u in _member_queryset(team, candidate_user_ids)
    )
    return TeamSnapshot(team=team, members=members)


def load_team_snapshot(team_id, candidate_user_ids: Optional[Iterable[int]] = None) -> TeamSnapshot:
    try:
        team = Team.objects.get(pk=team_id)
    except (Team.DoesNotExist, ValueError):
        raise TeamNotFound(team_id)
    return build_team_snapshot(team, candidate_user_ids)


def load_task_snapshot(task_id) -> Tuple[Task, TeamSnapshot]:
    """
    Load a task with its team roster for assignment.

    Raises TaskNotFound, TeamNotAssigned or NoTeamMembers; all three are
    terminal for the request.
    """
    try:
        task = Task.objects.select_related("team", "assigned_to").get(pk=task_id)
    except (Task.DoesNotExist, ValueError):
        raise TaskNotFound(task_id)
    if task.team is None:
        raise TeamNotAssigned(task_id)
    snapshot = build_team_snapshot(task.team)
    if not snapshot.members:
        raise NoTeamMembers(task.team.name)
    return task, snapshot

"""
Workload scoring.

score = min(100, round((open_estimated_hours + 2 * overdue_count) * 5))

Only open tasks count. A completed task contributes nothing even when its
due date has passed. Rounding is half up, so 0.5h of open work scores 3.
"""
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional

from django.utils import timezone

from apps.tasks.models import TaskStatus
from .snapshot import TeamSnapshot, load_team_snapshot, to_hours

MAX_SCORE = 100
OVERDUE_PENALTY_HOURS = 2
SCORE_MULTIPLIER = 5

DEFAULT_SCORE_THRESHOLD = 50
DEFAULT_HOURS_THRESHOLD = 40


def round_half_up(value: float, places: int = 0):
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


@dataclass(frozen=True)
class WorkloadScore:
    user_id: int
    user_name: str
    open_estimated_hours: float
    overdue_count: int
    score: int

    def to_dict(self) -> Dict:
        return asdict(self)


def is_overdue(task, now: datetime) -> bool:
    scheduled_at = getattr(task, "scheduled_at", None)
    return (
        scheduled_at is not None
        and scheduled_at < now
        and getattr(task, "status", None) != TaskStatus.COMPLETED
    )


def open_estimated_hours(tasks: Iterable) -> float:
    return sum(
        to_hours(getattr(t, "estimated_hours", None))
        for t in tasks
        if getattr(t, "status", None) != TaskStatus.COMPLETED
    )


def overdue_count(tasks: Iterable, now: datetime) -> int:
    return sum(1 for t in tasks if is_overdue(t, now))


def workload_score(hours: float, overdue: int) -> int:
    raw = round_half_up((hours + OVERDUE_PENALTY_HOURS * overdue) * SCORE_MULTIPLIER)
    return max(0, min(MAX_SCORE, raw))


def score_tasks(user_id, user_name: str, tasks: Iterable, now: datetime) -> WorkloadScore:
    """Score one user's open tasks. Pure: the result depends only on the inputs."""
    tasks = list(tasks)
    hours = open_estimated_hours(tasks)
    overdue = overdue_count(tasks, now)
    return WorkloadScore(
        user_id=user_id,
        user_name=user_name,
        open_estimated_hours=round(hours, 2),
        overdue_count=overdue,
        score=workload_score(hours, overdue),
    )


def score_snapshot(snapshot: TeamSnapshot, now: Optional[datetime] = None) -> List[WorkloadScore]:
    """
    Workload scores for every member, highest score first.

    sorted() is stable and members arrive in ascending user id order, so
    members with equal scores stay in user id order.
    """
    now = now or timezone.now()
    scores = [score_tasks(m.user_id, m.name, m.open_tasks, now) for m in snapshot.members]
    return sorted(scores, key=lambda s: s.score, reverse=True)


def least_loaded(scores: List[WorkloadScore]) -> WorkloadScore:
    """Member with the lowest score; ties go to the lowest user id"""
    if not scores:
        raise ValueError("least_loaded() needs at least one score")
    return min(scores, key=lambda s: (s.score, s.user_id))


def compute_workload(team_id, clock: Callable[[], datetime] = timezone.now) -> List[WorkloadScore]:
    return score_snapshot(load_team_snapshot(team_id), clock())


def workload_stats(scores: List[WorkloadScore]) -> Dict:
    if not scores:
        return {
            "total_members": 0,
            "average_score": 0,
            "highest_score": 0,
            "lowest_score": 0,
            "total_estimated_hours": 0,
            "total_overdue_tasks": 0,
        }
    total = sum(s.score for s in scores)
    return {
        "total_members": len(scores),
        "average_score": round_half_up(total / len(scores), 2),
        "highest_score": max(s.score for s in scores),
        "lowest_score": min(s.score for s in scores),
        "total_estimated_hours": round(sum(s.open_estimated_hours for s in scores), 2),
        "total_overdue_tasks": sum(s.overdue_count for s in scores),
    }


def get_workload_stats(team_id, clock: Callable[[], datetime] = timezone.now) -> Dict:
    return workload_stats(compute_workload(team_id, clock))


def overloaded(scores: List[WorkloadScore], score_threshold: float = DEFAULT_SCORE_THRESHOLD,
               hours_threshold: float = DEFAULT_HOURS_THRESHOLD) -> List[WorkloadScore]:
    return [
        s for s in scores
        if s.score >= score_threshold or s.open_estimated_hours >= hours_threshold
    ]


def get_overloaded_members(team_id, score_threshold: float = DEFAULT_SCORE_THRESHOLD,
                           hours_threshold: float = DEFAULT_HOURS_THRESHOLD,
                           clock: Callable[[], datetime] = timezone.now) -> List[WorkloadScore]:
    return overloaded(compute_workload(team_id, clock), score_threshold, hours_threshold)

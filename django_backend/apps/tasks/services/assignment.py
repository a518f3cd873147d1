"""
Assigning tasks to team members.

Strategy selection, including any model call, happens on a snapshot read
outside the transaction. The transaction then locks the task row,
re-checks that the chosen member still belongs to the team and writes the
assignment together with its approval request and history. Notifications
and events are queued with transaction.on_commit.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from apps.common.db import atomic_with_timeout
from apps.common.exceptions import (
    ExternalServiceFailure,
    InvalidSelection,
    InvalidStrategy,
    NotTeamMember,
    TaskNotFound,
    UserNotFound,
)
from apps.tasks.celery_tasks import queue_task_notification
from apps.tasks.models import (
    ApprovalRequest,
    ApprovalStatus,
    AssignmentStrategy,
    Task,
    TaskAction,
    TaskHistory,
    TaskStatus,
)
from apps.tasks.producer.events import publish_approval_requested, publish_task_assigned
from apps.users.models import UserRole
from .ai_assignment import ModelAssistedRecommender, TextGenerator, record_suggestion
from .snapshot import MemberSnapshot, TeamSnapshot, load_task_snapshot
from .workload import least_loaded, score_snapshot

logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass
class AssignmentResult:
    task: Task
    assignee: User
    approval_request: Optional[ApprovalRequest]
    rationale: str
    strategy: str
    fallback_used: bool = False


@dataclass
class ManualAssignmentResult:
    task: Task
    assignee: User
    actor: User
    approval_request: Optional[ApprovalRequest]
    needs_approval: bool
    previous_assignee: Optional[User]


def lock_task(task_id) -> Task:
    """Load a task with its row locked for the rest of the transaction"""
    try:
        return Task.objects.select_for_update(of=("self",)).select_related("team").get(pk=task_id)
    except (Task.DoesNotExist, ValueError):
        raise TaskNotFound(task_id)


def _queue_assignment_side_effects(task: Task, approval: Optional[ApprovalRequest],
                                   strategy: str, actor_id: Optional[int]):
    task_id, title, status = task.id, task.title, task.status
    assignee_id = task.assigned_to_id
    approval_id = approval.id if approval else None
    reason = approval.reason if approval else ""

    def run():
        publish_task_assigned(actor_id, task_id, title, assignee_id, strategy, status, approval_id)
        queue_task_notification(task_id, "assigned")
        if approval_id is not None:
            publish_approval_requested(actor_id or assignee_id, task_id, approval_id, reason)
            queue_task_notification(task_id, "approval_requested", approval_id)

    transaction.on_commit(run)


def _record_assignment(task: Task, actor: Optional[User], previous_assignee_id, approval, **metadata):
    TaskHistory.objects.create(
        task=task,
        user=actor,
        action=TaskAction.ASSIGNED,
        metadata={
            "from": previous_assignee_id,
            "to": task.assigned_to_id,
            "approval_request_id": approval.id if approval else None,
            **metadata,
        },
    )
    if approval:
        TaskHistory.objects.create(
            task=task,
            user=actor,
            action=TaskAction.APPROVAL_REQUESTED,
            metadata={"approval_request_id": approval.id},
        )


class AssignmentOrchestrator:
    def __init__(self, generator: Optional[TextGenerator] = None,
                 clock: Callable[[], datetime] = timezone.now):
        self.generator = generator
        self.clock = clock

    # Strategies

    def _balanced(self, snapshot: TeamSnapshot) -> Tuple[MemberSnapshot, str]:
        chosen = least_loaded(score_snapshot(snapshot, self.clock()))
        member = snapshot.member(chosen.user_id)
        return member, (
            f"Balanced assignment: lowest workload score ({chosen.score}, "
            f"{chosen.open_estimated_hours:g}h open, {chosen.overdue_count} overdue)"
        )

    def _min_load(self, snapshot: TeamSnapshot) -> Tuple[MemberSnapshot, str]:
        member = min(snapshot.members, key=lambda m: (m.open_hours, m.user_id))
        return member, f"Minimum load assignment: {member.open_hours:g}h of open work"

    def _ai(self, task: Task, snapshot: TeamSnapshot) -> Tuple[MemberSnapshot, str, bool]:
        try:
            recommender = ModelAssistedRecommender(self.generator, self.clock)
            suggestion = recommender.suggest(task.title, task.description, snapshot)
        except ExternalServiceFailure as e:
            logger.warning(f"AI assignment failed for task {task.id}, falling back to balanced: {e.message}")
            member, rationale = self._balanced(snapshot)
            return member, f"AI fallback: {rationale}", True

        record_suggestion(task.title, task.description, snapshot, suggestion)
        top = suggestion.recommendations[0]
        return snapshot.member(top.user_id), f"AI recommendation (score {top.score}): {top.reason}", False

    def choose(self, task: Task, snapshot: TeamSnapshot, strategy: str) -> Tuple[MemberSnapshot, str, bool]:
        """Pick an assignee from the snapshot; returns (member, rationale, fallback_used)"""
        if strategy == AssignmentStrategy.AI:
            return self._ai(task, snapshot)
        if strategy == AssignmentStrategy.BALANCED:
            return (*self._balanced(snapshot), False)
        if strategy == AssignmentStrategy.MIN_LOAD:
            return (*self._min_load(snapshot), False)
        raise InvalidStrategy(strategy)

    # Operations

    def auto_assign(self, task_id, strategy: str = AssignmentStrategy.AI,
                    override_approval: bool = False, actor: Optional[User] = None) -> AssignmentResult:
        if strategy not in AssignmentStrategy.values:
            raise InvalidStrategy(strategy)

        task, snapshot = load_task_snapshot(task_id)
        member, rationale, fallback_used = self.choose(task, snapshot, strategy)
        logger.info(f"Auto-assign ({strategy}) picked user {member.user_id} for task {task.id}")

        with atomic_with_timeout():
            task = lock_task(task_id)
            try:
                assignee = User.objects.get(pk=member.user_id, team_id=task.team_id, is_active=True)
            except User.DoesNotExist:
                raise InvalidSelection(member.user_id, snapshot.team.name)

            previous_assignee_id = task.assigned_to_id
            task.assigned_to = assignee
            approval = None
            if override_approval:
                task.status = TaskStatus.IN_PROGRESS
            else:
                approval = ApprovalRequest.objects.create(
                    task=task,
                    status=ApprovalStatus.PENDING,
                    reason=f'Auto-assignment request for task "{task.title}" to {assignee.name} ({rationale})',
                    requested_by=assignee,
                )
            task.save(update_fields=["assigned_to", "status", "updated_at"])

            _record_assignment(
                task, actor, previous_assignee_id, approval,
                strategy=strategy, rationale=rationale, fallback_used=fallback_used,
            )
            _queue_assignment_side_effects(task, approval, strategy, actor.id if actor else None)

        return AssignmentResult(
            task=task,
            assignee=assignee,
            approval_request=approval,
            rationale=rationale,
            strategy=strategy,
            fallback_used=fallback_used,
        )

    def manual_assign(self, task_id, assigned_to_id, actor_id, request_approval: bool = False,
                      message: str = "") -> ManualAssignmentResult:
        """
        Assign a task to a chosen member.

        Admins and team leaders assign directly unless they ask for
        approval; everyone else creates a pending approval request. The
        assignee must belong to the task's team, whoever the actor is.
        """
        with atomic_with_timeout():
            task = lock_task(task_id)
            previous_assignee = task.assigned_to

            try:
                actor = User.objects.get(pk=actor_id)
            except (User.DoesNotExist, ValueError):
                raise UserNotFound(actor_id)

            team_name = task.team.name if task.team else None
            try:
                assignee = User.objects.get(pk=assigned_to_id)
            except (User.DoesNotExist, ValueError):
                raise NotTeamMember(assigned_to_id, team_name)
            if task.team_id is None or assignee.team_id != task.team_id:
                raise NotTeamMember(assigned_to_id, team_name)

            needs_approval = request_approval or actor.role not in (UserRole.ADMIN, UserRole.TEAM_LEADER)
            approval = None
            if needs_approval:
                approval = ApprovalRequest.objects.create(
                    task=task,
                    status=ApprovalStatus.PENDING,
                    reason=message or (
                        f'Manual assignment request for task "{task.title}" '
                        f"to {assignee.name} by {actor.name}"
                    ),
                    requested_by=actor,
                )
            elif task.status == TaskStatus.DRAFT:
                task.status = TaskStatus.IN_PROGRESS

            task.assigned_to = assignee
            task.save(update_fields=["assigned_to", "status", "updated_at"])

            _record_assignment(
                task, actor, previous_assignee.id if previous_assignee else None, approval,
                manual=True, needs_approval=needs_approval,
            )
            _queue_assignment_side_effects(task, approval, "manual", actor.id)

        logger.info(
            f"Task {task.id} assigned to {assignee.id} by {actor.id} "
            f"({'pending approval' if needs_approval else 'direct assignment'})"
        )
        return ManualAssignmentResult(
            task=task,
            assignee=assignee,
            actor=actor,
            approval_request=approval,
            needs_approval=needs_approval,
            previous_assignee=previous_assignee,
        )


def assignment_history(task_id) -> Tuple[Task, List[ApprovalRequest]]:
    """A task and its approval requests, newest first"""
    try:
        task = Task.objects.select_related("team", "assigned_to").get(pk=task_id)
    except (Task.DoesNotExist, ValueError):
        raise TaskNotFound(task_id)
    requests = list(
        task.approval_requests.select_related("requested_by", "approved_by").order_by("-created_at", "-id")
    )
    return task, requests

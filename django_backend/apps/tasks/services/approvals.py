"""
Approval request state machine.

PENDING is the only state a request can leave, and it leaves it exactly
once: the decision is written with a conditional update on status=PENDING,
so of two deciders racing on the same request one wins and the other gets
AlreadyResolved.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from apps.common.db import atomic_with_timeout
from apps.common.exceptions import (
    AlreadyResolved,
    ApprovalNotFound,
    CrossTeamApproval,
    InsufficientRole,
    InvalidState,
    MissingReason,
    UserNotFound,
)
from apps.tasks.celery_tasks import queue_task_notification
from apps.tasks.models import (
    ApprovalRequest,
    ApprovalStatus,
    Task,
    TaskAction,
    TaskHistory,
    TaskStatus,
)
from apps.tasks.producer.events import publish_approval_decided, publish_approval_requested
from apps.users.models import UserRole
from .assignment import lock_task

logger = logging.getLogger(__name__)

User = get_user_model()

APPROVE = "approve"
REJECT = "reject"
DECISIONS = (APPROVE, REJECT)


@dataclass
class DecisionResult:
    approval: ApprovalRequest
    task: Task
    decision: str


def _rejection_clears_assignee() -> bool:
    return getattr(settings, "APPROVAL_REJECTION_CLEARS_ASSIGNEE", False)


class ApprovalStateMachine:
    def __init__(self, clock: Callable[[], datetime] = timezone.now):
        self.clock = clock

    def _load_for_update(self, approval_id) -> ApprovalRequest:
        try:
            return (
                ApprovalRequest.objects.select_for_update(of=("self",))
                .select_related("task", "task__team")
                .get(pk=approval_id)
            )
        except (ApprovalRequest.DoesNotExist, ValueError):
            raise ApprovalNotFound(approval_id)

    def _load_approver(self, approver_id) -> User:
        try:
            return User.objects.get(pk=approver_id)
        except (User.DoesNotExist, ValueError):
            raise UserNotFound(approver_id)

    def _authorize(self, approver: User, approval: ApprovalRequest):
        if approver.role not in (UserRole.TEAM_LEADER, UserRole.ADMIN):
            raise InsufficientRole(
                f"Only team leaders and admins can decide approvals, user {approver.id} is {approver.role}"
            )
        if approver.role != UserRole.ADMIN and approver.team_id != approval.task.team_id:
            raise CrossTeamApproval(
                f"Team leader {approver.id} cannot decide approvals for tasks of another team"
            )

    def decide_approval(self, approval_id, approver_id, decision: str, reason: str = "") -> DecisionResult:
        """
        Approve or reject a pending request.

        A rejection needs a reason; it is checked before anything is read so
        an invalid rejection leaves the store untouched. An approval appends
        the optional comment to the request's reason.
        """
        if decision not in DECISIONS:
            raise InvalidState(f"Unknown decision: {decision}. Must be one of: approve, reject")
        reason = (reason or "").strip()
        if decision == REJECT and not reason:
            raise MissingReason()

        with atomic_with_timeout(getattr(settings, "APPROVAL_TRANSACTION_TIMEOUT_SECONDS", 10)):
            approval = self._load_for_update(approval_id)
            if not approval.is_pending:
                raise AlreadyResolved(approval.id, approval.status)

            approver = self._load_approver(approver_id)
            self._authorize(approver, approval)

            now = self.clock()
            if decision == APPROVE:
                new_status = ApprovalStatus.APPROVED
                new_reason = f"{approval.reason} | Approved: {reason}" if reason else approval.reason
            else:
                new_status = ApprovalStatus.REJECTED
                new_reason = f"{approval.reason} | Rejected: {reason}"

            updated = ApprovalRequest.objects.filter(pk=approval.pk, status=ApprovalStatus.PENDING).update(
                status=new_status,
                reason=new_reason,
                approved_by=approver,
                approved_at=now,
                updated_at=now,
            )
            if updated == 0:
                current = (
                    ApprovalRequest.objects.filter(pk=approval.pk)
                    .values_list("status", flat=True)
                    .first()
                )
                logger.info(f"Approval {approval.pk} was decided concurrently, now {current}")
                raise AlreadyResolved(approval.pk, current or approval.status)

            task = lock_task(approval.task_id)
            old_status = task.status
            update_fields = ["status", "updated_at"]
            if decision == APPROVE:
                task.status = TaskStatus.IN_PROGRESS
            else:
                task.status = TaskStatus.REJECTED
                if _rejection_clears_assignee():
                    task.assigned_to = None
                    update_fields.append("assigned_to")
            task.save(update_fields=update_fields)

            TaskHistory.objects.create(
                task=task,
                user=approver,
                action=TaskAction.APPROVED if decision == APPROVE else TaskAction.REJECTED,
                metadata={
                    "approval_request_id": approval.pk,
                    "from": old_status,
                    "to": task.status,
                    "reason": reason,
                },
            )

            approval.refresh_from_db()
            task_id, approval_pk, task_status = task.id, approval.pk, task.status
            approved = decision == APPROVE

            def notify():
                publish_approval_decided(approver.id, task_id, approval_pk, approved, task_status)
                queue_task_notification(task_id, "approved" if approved else "rejected", approval_pk)

            transaction.on_commit(notify)

        logger.info(f"Approval {approval.pk} {approval.status.lower()} by user {approver.id}")
        return DecisionResult(approval=approval, task=task, decision=decision)

    def create_approval(self, task_id, requested_by_id, reason: str = "") -> ApprovalRequest:
        """Open a pending approval request for a task directly"""
        try:
            requested_by = User.objects.get(pk=requested_by_id)
        except (User.DoesNotExist, ValueError):
            raise UserNotFound(requested_by_id)

        with atomic_with_timeout():
            task = lock_task(task_id)
            approval = ApprovalRequest.objects.create(
                task=task,
                status=ApprovalStatus.PENDING,
                reason=reason or f'Approval requested for task "{task.title}" by {requested_by.name}',
                requested_by=requested_by,
            )
            TaskHistory.objects.create(
                task=task,
                user=requested_by,
                action=TaskAction.APPROVAL_REQUESTED,
                metadata={"approval_request_id": approval.id},
            )
            task_id, approval_id, approval_reason = task.id, approval.id, approval.reason

            def notify():
                publish_approval_requested(requested_by.id, task_id, approval_id, approval_reason)
                queue_task_notification(task_id, "approval_requested", approval_id)

            transaction.on_commit(notify)

        return approval

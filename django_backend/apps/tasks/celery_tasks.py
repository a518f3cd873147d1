import logging

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from kombu.exceptions import OperationalError as BrokerError

from apps.tasks.models import ApprovalRequest, Task
from apps.tasks.services.workload import get_overloaded_members
from apps.users.models import Team, UserRole

logger = logging.getLogger(__name__)

User = get_user_model()


def _emails(users):
    return sorted({u.email for u in users if u is not None and getattr(u, "email", None)})


def _notify(users, subject, body):
    recipients = _emails(users)
    if not recipients:
        return 0
    send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, recipients, fail_silently=True)
    return len(recipients)


def _team_approvers(team):
    if team is None:
        return []
    return list(
        User.objects.filter(team=team, role=UserRole.TEAM_LEADER, is_active=True)
    )


@shared_task
def send_task_notification(task_id, notification_type, approval_id=None):
    """
    Send email notifications for assignment events.
    notification_type: assigned | approval_requested | approved | rejected | completed
    """
    try:
        task = Task.objects.select_related("created_by", "assigned_to", "team").get(pk=task_id)
    except Task.DoesNotExist:
        logger.warning(f"Skipping {notification_type} notification, task {task_id} no longer exists")
        return 0

    approval = None
    if approval_id is not None:
        approval = ApprovalRequest.objects.select_related("requested_by", "approved_by").filter(
            pk=approval_id
        ).first()

    nt = notification_type
    if nt == "assigned":
        users = [task.assigned_to]
        subject = f"[Assignment] {task.title}"
        body = f"You have been assigned to the task '{task.title}' (status: {task.status})."
    elif nt == "approval_requested":
        users = _team_approvers(task.team)
        subject = f"[Approval Needed] {task.title}"
        reason = approval.reason if approval else ""
        body = f"An assignment for '{task.title}' is waiting for your approval.\n\n{reason}"
    elif nt == "approved":
        users = [task.assigned_to, approval.requested_by if approval else None]
        subject = f"[Approved] {task.title}"
        body = f"The assignment for '{task.title}' was approved. The task is now {task.status}."
    elif nt == "rejected":
        users = [task.assigned_to, approval.requested_by if approval else None]
        subject = f"[Rejected] {task.title}"
        reason = approval.reason if approval else ""
        body = f"The assignment for '{task.title}' was rejected.\n\n{reason}"
    elif nt == "completed":
        users = [task.created_by, task.assigned_to]
        subject = f"[Completed] {task.title}"
        body = f"The task '{task.title}' was completed after logging its estimated time."
    else:
        users = [task.assigned_to or task.created_by]
        subject = f"[Update] {task.title}"
        body = f"The task '{task.title}' has been updated."

    sent = _notify(users, subject, body)
    logger.info(f"Sent {nt} notification for task {task_id} to {sent} recipient(s)")
    return sent


def queue_task_notification(task_id, notification_type, approval_id=None) -> bool:
    """
    Hand a notification to the worker.

    Called after commit, so a broker outage is logged and the committed
    change still succeeds.
    """
    try:
        send_task_notification.delay(task_id, notification_type, approval_id)
    except BrokerError as e:
        logger.error(f"Could not queue {notification_type} notification for task {task_id}: {e}")
        return False
    return True


@shared_task
def report_overloaded_members():
    """
    Email each team leader the members of their team that are overloaded.
    Returns the number of emails sent.
    """
    total_sent = 0
    for team in Team.objects.all():
        members = get_overloaded_members(team.id)
        if not members:
            continue

        lines = [
            f"- {m.user_name}: score {m.score}, {m.open_estimated_hours:g}h open, "
            f"{m.overdue_count} overdue"
            for m in members
        ]
        subject = f"[Workload] {len(members)} overloaded member(s) in {team.name}"
        body = "The following members are above the workload thresholds:\n\n" + "\n".join(lines)
        total_sent += _notify(_team_approvers(team), subject, body)

    logger.info(f"Overloaded member report sent {total_sent} email(s)")
    return total_sent

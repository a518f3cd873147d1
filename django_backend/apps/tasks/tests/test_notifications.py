from unittest import mock

from django.core import mail
from django.test import TestCase
from kombu.exceptions import OperationalError

from apps.tasks.celery_tasks import queue_task_notification, report_overloaded_members, send_task_notification
from apps.tasks.models import ApprovalRequest, ApprovalStatus, TaskStatus
from apps.tasks.services.approvals import APPROVE, ApprovalStateMachine
from apps.tasks.services.assignment import AssignmentOrchestrator
from apps.tasks.services.time_ledger import TimeLedger
from apps.users.models import UserRole
from .factories import make_task, make_team, make_user


class SendTaskNotificationTest(TestCase):
    """Test notification emails for assignment events"""

    def setUp(self):
        self.team = make_team()
        self.leader = make_user("leader", team=self.team, role=UserRole.TEAM_LEADER)
        self.member = make_user("member", team=self.team)
        self.task = make_task(self.leader, self.team, self.member, title="Deploy")

    def test_assigned_goes_to_assignee(self):
        sent = send_task_notification(self.task.id, "assigned")

        self.assertEqual(sent, 1)
        self.assertEqual(mail.outbox[0].to, ["member@example.com"])
        self.assertIn("Deploy", mail.outbox[0].subject)

    def test_approval_requested_goes_to_team_leaders(self):
        approval = ApprovalRequest.objects.create(task=self.task, reason="please", requested_by=self.member)

        send_task_notification(self.task.id, "approval_requested", approval.id)

        self.assertEqual(mail.outbox[0].to, ["leader@example.com"])
        self.assertIn("please", mail.outbox[0].body)

    def test_missing_task_sends_nothing(self):
        self.assertEqual(send_task_notification(999999, "assigned"), 0)
        self.assertEqual(len(mail.outbox), 0)

    def test_decision_notifies_after_commit(self):
        approval = ApprovalRequest.objects.create(task=self.task, reason="please", requested_by=self.member)

        with self.captureOnCommitCallbacks(execute=True):
            ApprovalStateMachine().decide_approval(approval.id, self.leader.id, APPROVE)

        self.assertEqual(len(mail.outbox), 1)
        self.assertTrue(mail.outbox[0].subject.startswith("[Approved]"))


@mock.patch("apps.tasks.celery_tasks.send_task_notification")
class BrokerUnavailableTest(TestCase):
    """Test that committed changes stand when notifications cannot be queued"""

    def setUp(self):
        self.team = make_team()
        self.leader = make_user("leader", team=self.team, role=UserRole.TEAM_LEADER)
        self.member = make_user("member", team=self.team)
        self.task = make_task(self.leader, self.team, self.member, title="Deploy", hours=1)

    def test_queue_failure_is_logged(self, notification):
        notification.delay.side_effect = OperationalError("broker down")

        with self.assertLogs("apps.tasks.celery_tasks", level="ERROR") as logs:
            queued = queue_task_notification(self.task.id, "assigned")

        self.assertFalse(queued)
        self.assertIn("broker down", logs.output[0])

    def test_manual_assign_survives(self, notification):
        notification.delay.side_effect = OperationalError("broker down")

        with self.captureOnCommitCallbacks(execute=True):
            result = AssignmentOrchestrator().manual_assign(self.task.id, self.member.id, self.leader.id)

        self.assertEqual(result.assignee, self.member)
        self.task.refresh_from_db()
        self.assertEqual(self.task.assigned_to, self.member)
        self.assertEqual(self.task.status, TaskStatus.IN_PROGRESS)
        notification.delay.assert_called_once_with(self.task.id, "assigned", None)

    def test_approval_decision_survives(self, notification):
        notification.delay.side_effect = OperationalError("broker down")
        approval = ApprovalRequest.objects.create(task=self.task, reason="please", requested_by=self.member)

        with self.captureOnCommitCallbacks(execute=True):
            ApprovalStateMachine().decide_approval(approval.id, self.leader.id, APPROVE)

        approval.refresh_from_db()
        self.assertEqual(approval.status, ApprovalStatus.APPROVED)
        self.assertEqual(len(mail.outbox), 0)

    def test_completion_survives(self, notification):
        notification.delay.side_effect = OperationalError("broker down")
        self.task.status = TaskStatus.IN_PROGRESS
        self.task.save()

        with self.captureOnCommitCallbacks(execute=True):
            result = TimeLedger().log_time(self.task.id, self.member.id, duration_hours=1, complete_if_done=True)

        self.assertTrue(result.summary.auto_completed)
        self.task.refresh_from_db()
        self.assertEqual(self.task.status, TaskStatus.COMPLETED)


class ReportOverloadedMembersTest(TestCase):
    """Test the scheduled workload report"""

    def test_emails_leaders_of_overloaded_teams(self):
        busy = make_team("Busy")
        leader = make_user("busy_leader", team=busy, role=UserRole.TEAM_LEADER)
        member = make_user("busy_member", team=busy)
        make_task(leader, busy, member, TaskStatus.IN_PROGRESS, hours=45)

        quiet = make_team("Quiet")
        make_user("quiet_leader", team=quiet, role=UserRole.TEAM_LEADER)

        self.assertEqual(report_overloaded_members(), 1)
        self.assertEqual(mail.outbox[0].to, ["busy_leader@example.com"])
        self.assertIn("busy_member", mail.outbox[0].body)

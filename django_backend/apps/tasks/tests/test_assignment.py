import json
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from apps.common.events import EventPublisherFactory
from apps.common.exceptions import (
    ExternalServiceFailure,
    InvalidSelection,
    InvalidStrategy,
    NoTeamMembers,
    NotTeamMember,
    TaskNotFound,
    TeamNotAssigned,
    UserNotFound,
)
from apps.common.kafka.config import APPROVAL_EVENTS_TOPIC, TASK_EVENTS_TOPIC
from apps.tasks.models import ApprovalStatus, TaskAction, TaskStatus
from apps.tasks.services.assignment import AssignmentOrchestrator, assignment_history
from apps.users.models import UserRole
from .factories import FakeGenerator, fixed_clock, make_task, make_team, make_user

User = get_user_model()


class AutoAssignTest(TestCase):
    """Automatic assignment strategies"""

    def setUp(self):
        self.team = make_team()
        self.leader = make_user("leader", team=self.team, role=UserRole.TEAM_LEADER)
        self.heavy = make_user("heavy", team=self.team)
        self.light = make_user("light", team=self.team)
        # leader 16h, heavy 15h, light 5h
        make_task(self.leader, self.team, self.leader, TaskStatus.IN_PROGRESS, hours=16)
        make_task(self.heavy, self.team, self.heavy, TaskStatus.IN_PROGRESS, hours=15)
        make_task(self.light, self.team, self.light, TaskStatus.IN_PROGRESS, hours=5)
        self.task = make_task(self.leader, self.team, title="Write release notes")
        self.orchestrator = AssignmentOrchestrator(generator=FakeGenerator(error=ExternalServiceFailure("down")),
                                                   clock=fixed_clock)
        EventPublisherFactory.reset_publisher()

    def test_min_load_picks_least_open_hours(self):
        result = self.orchestrator.auto_assign(self.task.id, "min-load")

        self.assertEqual(result.assignee, self.light)
        self.assertEqual(result.strategy, "min-load")
        self.assertFalse(result.fallback_used)

    def test_balanced_picks_lowest_score(self):
        result = self.orchestrator.auto_assign(self.task.id, "balanced")
        self.assertEqual(result.assignee, self.light)

    def test_ties_go_to_lowest_user_id(self):
        team = make_team("Fresh")
        first = make_user("first", team=team)
        make_user("second", team=team)
        for strategy in ("balanced", "min-load"):
            task = make_task(first, team)
            result = self.orchestrator.auto_assign(task.id, strategy)
            self.assertEqual(result.assignee, first)

    def test_creates_pending_approval_requested_by_assignee(self):
        result = self.orchestrator.auto_assign(self.task.id, "min-load")
        self.task.refresh_from_db()

        self.assertEqual(self.task.assigned_to, self.light)
        self.assertEqual(self.task.status, TaskStatus.DRAFT)
        approval = result.approval_request
        self.assertEqual(approval.status, ApprovalStatus.PENDING)
        self.assertEqual(approval.requested_by, self.light)
        self.assertTrue(approval.reason.startswith('Auto-assignment request for task "Write release notes" to light'))

    def test_override_approval_starts_work(self):
        result = self.orchestrator.auto_assign(self.task.id, "min-load", override_approval=True)
        self.task.refresh_from_db()

        self.assertIsNone(result.approval_request)
        self.assertEqual(self.task.status, TaskStatus.IN_PROGRESS)
        self.assertFalse(self.task.approval_requests.exists())

    def test_ai_failure_falls_back_to_balanced(self):
        result = self.orchestrator.auto_assign(self.task.id, "ai")

        self.assertTrue(result.fallback_used)
        self.assertEqual(result.assignee, self.light)
        self.assertTrue(result.rationale.startswith("AI fallback"))

    def test_ai_recommendation_is_used(self):
        reply = json.dumps({
            "recommendations": [{"userId": self.heavy.id, "score": 92, "reason": "Wrote the last notes"}],
            "suggestedPriority": "LOW",
            "suggestedEstimatedHours": 2,
        })
        orchestrator = AssignmentOrchestrator(generator=FakeGenerator(reply), clock=fixed_clock)

        result = orchestrator.auto_assign(self.task.id, "ai")

        self.assertFalse(result.fallback_used)
        self.assertEqual(result.assignee, self.heavy)
        self.assertIn("Wrote the last notes", result.rationale)

    def test_records_history(self):
        self.orchestrator.auto_assign(self.task.id, "min-load")

        actions = set(self.task.history.values_list("action", flat=True))
        self.assertEqual(actions, {TaskAction.ASSIGNED, TaskAction.APPROVAL_REQUESTED})

    def test_events_published_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            self.orchestrator.auto_assign(self.task.id, "min-load")

        publisher = EventPublisherFactory.get_publisher()
        self.assertEqual(publisher.get_events(TASK_EVENTS_TOPIC)[0]["event_type"], "task_assigned")
        self.assertEqual(publisher.get_events(APPROVAL_EVENTS_TOPIC)[0]["event_type"], "approval_requested")

    def test_member_leaving_between_read_and_write(self):
        original = AssignmentOrchestrator.choose

        def choose_then_leave(orchestrator, task, snapshot, strategy):
            chosen = original(orchestrator, task, snapshot, strategy)
            User.objects.filter(pk=chosen[0].user_id).update(team=None)
            return chosen

        with mock.patch.object(AssignmentOrchestrator, "choose", choose_then_leave):
            with self.assertRaises(InvalidSelection):
                self.orchestrator.auto_assign(self.task.id, "min-load")

        self.task.refresh_from_db()
        self.assertIsNone(self.task.assigned_to)

    def test_unknown_strategy(self):
        with self.assertRaises(InvalidStrategy):
            self.orchestrator.auto_assign(self.task.id, "random")

    def test_unknown_task(self):
        with self.assertRaises(TaskNotFound):
            self.orchestrator.auto_assign(999999, "balanced")

    def test_task_without_team(self):
        task = make_task(self.leader, team=None)
        with self.assertRaises(TeamNotAssigned):
            self.orchestrator.auto_assign(task.id, "balanced")

    def test_team_without_members(self):
        empty = make_team("Empty")
        task = make_task(self.leader, team=empty)
        with self.assertRaises(NoTeamMembers):
            self.orchestrator.auto_assign(task.id, "balanced")


class ManualAssignTest(TestCase):
    """Manual assignment by an actor"""

    def setUp(self):
        self.team = make_team()
        self.other_team = make_team("Other")
        self.admin = make_user("admin", role=UserRole.ADMIN)
        self.leader = make_user("leader", team=self.team, role=UserRole.TEAM_LEADER)
        self.member = make_user("member", team=self.team)
        self.outsider = make_user("outsider", team=self.other_team)
        self.task = make_task(self.leader, self.team, title="Patch server")
        self.orchestrator = AssignmentOrchestrator()

    def test_leader_assigns_directly(self):
        result = self.orchestrator.manual_assign(self.task.id, self.member.id, self.leader.id)

        self.assertFalse(result.needs_approval)
        self.assertIsNone(result.approval_request)
        self.assertEqual(result.task.status, TaskStatus.IN_PROGRESS)
        self.assertEqual(result.task.assigned_to, self.member)

    def test_direct_assignment_keeps_non_draft_status(self):
        self.task.status = TaskStatus.REJECTED
        self.task.save()

        result = self.orchestrator.manual_assign(self.task.id, self.member.id, self.leader.id)

        self.assertEqual(result.task.status, TaskStatus.REJECTED)

    def test_member_needs_approval(self):
        result = self.orchestrator.manual_assign(self.task.id, self.member.id, self.member.id)

        self.assertTrue(result.needs_approval)
        self.assertEqual(result.approval_request.requested_by, self.member)
        self.assertEqual(result.task.status, TaskStatus.DRAFT)
        self.assertEqual(
            result.approval_request.reason,
            'Manual assignment request for task "Patch server" to member by member',
        )

    def test_requested_approval_with_message(self):
        result = self.orchestrator.manual_assign(
            self.task.id, self.member.id, self.leader.id, request_approval=True, message="Please check"
        )

        self.assertTrue(result.needs_approval)
        self.assertEqual(result.approval_request.reason, "Please check")

    def test_assignee_must_be_in_team(self):
        with self.assertRaises(NotTeamMember):
            self.orchestrator.manual_assign(self.task.id, self.outsider.id, self.leader.id)

    def test_admin_cannot_assign_outside_team(self):
        """Test that the team check applies to admins too"""
        with self.assertRaises(NotTeamMember):
            self.orchestrator.manual_assign(self.task.id, self.outsider.id, self.admin.id)

        self.task.refresh_from_db()
        self.assertIsNone(self.task.assigned_to)
        self.assertFalse(self.task.history.filter(action=TaskAction.ASSIGNED).exists())

    def test_task_without_team_cannot_be_assigned(self):
        teamless = make_task(self.admin, title="Loose end")
        with self.assertRaises(NotTeamMember):
            self.orchestrator.manual_assign(teamless.id, self.member.id, self.admin.id)

    def test_unknown_actor(self):
        with self.assertRaises(UserNotFound):
            self.orchestrator.manual_assign(self.task.id, self.member.id, 999999)

    def test_previous_assignee_is_reported(self):
        self.orchestrator.manual_assign(self.task.id, self.leader.id, self.leader.id)
        result = self.orchestrator.manual_assign(self.task.id, self.member.id, self.leader.id)
        self.assertEqual(result.previous_assignee, self.leader)

    def test_assignment_history_lists_requests(self):
        self.orchestrator.manual_assign(self.task.id, self.member.id, self.member.id)
        self.orchestrator.manual_assign(self.task.id, self.leader.id, self.member.id)

        task, requests = assignment_history(self.task.id)

        self.assertEqual(task, self.task)
        self.assertEqual(len(requests), 2)
        self.assertGreater(requests[0].id, requests[1].id)

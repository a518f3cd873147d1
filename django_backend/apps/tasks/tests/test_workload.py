from django.test import TestCase

from apps.common.exceptions import TeamNotFound
from apps.tasks.models import TaskStatus
from apps.tasks.services.snapshot import build_team_snapshot, to_hours
from apps.tasks.services.workload import (
    WorkloadScore,
    compute_workload,
    get_overloaded_members,
    get_workload_stats,
    least_loaded,
    round_half_up,
    score_snapshot,
    workload_score,
    workload_stats,
)
from .factories import NOW, TOMORROW, YESTERDAY, fixed_clock, make_task, make_team, make_user


class WorkloadScoreFormulaTest(TestCase):
    """Pure scoring rules"""

    def test_score_formula(self):
        self.assertEqual(workload_score(12, 1), 70)
        self.assertEqual(workload_score(0, 0), 0)

    def test_score_is_capped_at_100(self):
        self.assertEqual(workload_score(30, 0), 100)
        self.assertEqual(workload_score(0, 11), 100)

    def test_rounding_is_half_up(self):
        self.assertEqual(workload_score(0.5, 0), 3)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(1.005, 2), 1.01)

    def test_to_hours_treats_missing_values_as_zero(self):
        self.assertEqual(to_hours(None), 0.0)
        self.assertEqual(to_hours("abc"), 0.0)
        self.assertEqual(to_hours(True), 0.0)
        self.assertEqual(to_hours("2.5"), 2.5)

    def test_least_loaded_breaks_ties_by_user_id(self):
        scores = [
            WorkloadScore(user_id=7, user_name="b", open_estimated_hours=0, overdue_count=0, score=10),
            WorkloadScore(user_id=3, user_name="a", open_estimated_hours=0, overdue_count=0, score=10),
            WorkloadScore(user_id=5, user_name="c", open_estimated_hours=0, overdue_count=0, score=40),
        ]
        self.assertEqual(least_loaded(scores).user_id, 3)


class ComputeWorkloadTest(TestCase):
    """Workload scores computed from stored tasks"""

    def setUp(self):
        self.team = make_team()
        self.alice = make_user("alice", team=self.team)
        self.bob = make_user("bob", team=self.team)

    def test_open_tasks_with_one_overdue(self):
        """8h overdue in progress plus 4h future pending approval scores 70"""
        make_task(self.alice, self.team, self.alice, TaskStatus.IN_PROGRESS, hours=8, scheduled_at=YESTERDAY)
        make_task(self.alice, self.team, self.alice, TaskStatus.PENDING_APPROVAL, hours=4, scheduled_at=TOMORROW)

        scores = {s.user_id: s for s in compute_workload(self.team.id, clock=fixed_clock)}
        alice = scores[self.alice.id]

        self.assertEqual(alice.open_estimated_hours, 12)
        self.assertEqual(alice.overdue_count, 1)
        self.assertEqual(alice.score, 70)

    def test_completed_tasks_are_excluded(self):
        make_task(self.alice, self.team, self.alice, TaskStatus.COMPLETED, hours=20, scheduled_at=YESTERDAY)

        scores = {s.user_id: s for s in compute_workload(self.team.id, clock=fixed_clock)}
        self.assertEqual(scores[self.alice.id].open_estimated_hours, 0)
        self.assertEqual(scores[self.alice.id].overdue_count, 0)
        self.assertEqual(scores[self.alice.id].score, 0)

    def test_tasks_without_estimate_count_as_zero_hours(self):
        make_task(self.alice, self.team, self.alice, TaskStatus.IN_PROGRESS, hours=None)

        scores = {s.user_id: s for s in compute_workload(self.team.id, clock=fixed_clock)}
        self.assertEqual(scores[self.alice.id].score, 0)

    def test_sorted_by_score_with_ties_in_user_id_order(self):
        carol = make_user("carol", team=self.team)
        make_task(carol, self.team, carol, TaskStatus.IN_PROGRESS, hours=2)

        scores = compute_workload(self.team.id, clock=fixed_clock)

        self.assertEqual([s.user_id for s in scores], [carol.id, self.alice.id, self.bob.id])

    def test_computation_is_idempotent(self):
        make_task(self.alice, self.team, self.alice, TaskStatus.IN_PROGRESS, hours=3, scheduled_at=YESTERDAY)
        snapshot = build_team_snapshot(self.team)

        self.assertEqual(score_snapshot(snapshot, NOW), score_snapshot(snapshot, NOW))

    def test_unknown_team(self):
        with self.assertRaises(TeamNotFound):
            compute_workload(999999, clock=fixed_clock)

    def test_team_without_members_has_empty_report(self):
        empty = make_team("Empty")
        self.assertEqual(compute_workload(empty.id, clock=fixed_clock), [])
        self.assertEqual(get_workload_stats(empty.id, clock=fixed_clock)["total_members"], 0)


class WorkloadStatsTest(TestCase):
    """Team level aggregates"""

    def test_stats_for_three_members(self):
        scores = [
            WorkloadScore(user_id=1, user_name="a", open_estimated_hours=25, overdue_count=0, score=100),
            WorkloadScore(user_id=2, user_name="b", open_estimated_hours=12, overdue_count=1, score=70),
            WorkloadScore(user_id=3, user_name="c", open_estimated_hours=0, overdue_count=0, score=0),
        ]

        stats = workload_stats(scores)

        self.assertEqual(stats["total_members"], 3)
        self.assertEqual(stats["total_estimated_hours"], 37)
        self.assertEqual(stats["highest_score"], 100)
        self.assertEqual(stats["lowest_score"], 0)
        self.assertEqual(stats["average_score"], 56.67)
        self.assertEqual(stats["total_overdue_tasks"], 1)

    def test_overloaded_members(self):
        team = make_team()
        busy = make_user("busy", team=team)
        idle = make_user("idle", team=team)
        make_task(busy, team, busy, TaskStatus.IN_PROGRESS, hours=11)
        make_task(idle, team, idle, TaskStatus.IN_PROGRESS, hours=1)

        overloaded = get_overloaded_members(team.id, clock=fixed_clock)

        self.assertEqual([m.user_id for m in overloaded], [busy.id])

    def test_overloaded_by_hours_threshold(self):
        team = make_team()
        member = make_user("member", team=team)
        make_task(member, team, member, TaskStatus.IN_PROGRESS, hours=8)

        overloaded = get_overloaded_members(team.id, score_threshold=100, hours_threshold=8, clock=fixed_clock)

        self.assertEqual([m.user_id for m in overloaded], [member.id])

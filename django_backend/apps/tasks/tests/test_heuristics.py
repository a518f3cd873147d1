from django.test import TestCase

from apps.common.exceptions import NoTeamMembers
from apps.tasks.models import TaskPriority, TaskStatus
from apps.tasks.services.heuristics import (
    HeuristicAssignmentRecommender,
    analyze_task,
    confidence_level,
    keyword_hits,
)
from apps.tasks.services.snapshot import build_team_snapshot
from apps.users.models import UserRole
from .factories import YESTERDAY, fixed_clock, make_task, make_team, make_user


class TaskAnalysisTest(TestCase):
    """Keyword based inference from the task text"""

    def test_keywords_match_whole_words_only(self):
        self.assertEqual(keyword_hits("Build the UI", ["ui"]), ["ui"])
        self.assertEqual(keyword_hits("Fix the build", ["ui"]), [])
        self.assertEqual(keyword_hits("Set up CI/CD", ["ci/cd"]), ["ci/cd"])

    def test_detects_skills_and_priority(self):
        analysis = analyze_task("Urgent hotfix: production api down", "")

        self.assertIn("backend", analysis.skills_required)
        self.assertEqual(analysis.suggested_priority, TaskPriority.URGENT)

    def test_defaults_without_keywords(self):
        analysis = analyze_task("Something vague", "")

        self.assertEqual(analysis.skills_required, ())
        self.assertEqual(analysis.complexity, "medium")
        self.assertEqual(analysis.suggested_priority, TaskPriority.MEDIUM)
        self.assertEqual(analysis.estimated_hours, 8)

    def test_specialized_skills_increase_estimate(self):
        analysis = analyze_task("Fix encryption of tokens", "")

        self.assertIn("security", analysis.skills_required)
        self.assertEqual(analysis.complexity, "simple")
        self.assertEqual(analysis.estimated_hours, 3)

    def test_estimate_is_clamped(self):
        analysis = analyze_task(
            "Platform infrastructure security overhaul",
            "machine learning api with react frontend and postgres database"
        )

        self.assertEqual(analysis.estimated_hours, 40)

    def test_confidence_levels(self):
        self.assertEqual(confidence_level(85), "HIGH")
        self.assertEqual(confidence_level(84), "MEDIUM")
        self.assertEqual(confidence_level(60), "MEDIUM")
        self.assertEqual(confidence_level(59), "LOW")


class HeuristicRecommenderTest(TestCase):
    """Ranking of team members"""

    def setUp(self):
        self.team = make_team()
        self.leader = make_user("leader", team=self.team, role=UserRole.TEAM_LEADER)
        self.free = make_user("free", team=self.team)
        self.busy = make_user("busy", team=self.team)
        self.recommender = HeuristicAssignmentRecommender(clock=fixed_clock)

    def test_ranks_every_member(self):
        suggestion = self.recommender.suggest("Vague task", "", build_team_snapshot(self.team))

        self.assertEqual(
            sorted(r.user_id for r in suggestion.recommendations),
            sorted([self.leader.id, self.free.id, self.busy.id]),
        )
        self.assertFalse(suggestion.fallback)
        scores = [r.score for r in suggestion.recommendations]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_busy_member_ranks_below_free_member(self):
        make_task(self.busy, self.team, self.busy, TaskStatus.IN_PROGRESS, hours=36,
                  scheduled_at=YESTERDAY, priority=TaskPriority.URGENT)

        suggestion = self.recommender.suggest("Vague task", "", build_team_snapshot(self.team))
        ranking = [r.user_id for r in suggestion.recommendations]

        self.assertLess(ranking.index(self.free.id), ranking.index(self.busy.id))
        busy = next(r for r in suggestion.recommendations if r.user_id == self.busy.id)
        self.assertEqual(busy.workload_score, 10)
        self.assertEqual(busy.availability_score, 65)

    def test_neutral_skill_score_without_detected_skills(self):
        suggestion = self.recommender.suggest("Vague task", "", build_team_snapshot(self.team))
        free = next(r for r in suggestion.recommendations if r.user_id == self.free.id)

        # 50 * 0.40 + 100 * 0.35 + 100 * 0.25
        self.assertEqual(free.skill_match, 50)
        self.assertEqual(free.score, 80)
        self.assertEqual(free.confidence_level, "MEDIUM")

    def test_experience_and_role_raise_skill_score(self):
        make_task(self.free, self.team, None, TaskStatus.COMPLETED, title="Build react component")

        suggestion = self.recommender.suggest("Create react dashboard", "", build_team_snapshot(self.team))
        by_user = {r.user_id: r for r in suggestion.recommendations}

        self.assertEqual(by_user[self.free.id].skill_match, 80)
        self.assertEqual(by_user[self.leader.id].skill_match, 10)
        self.assertEqual(by_user[self.busy.id].skill_match, 0)

    def test_empty_roster_fails(self):
        empty = make_team("Empty")
        with self.assertRaises(NoTeamMembers):
            self.recommender.suggest("Task", "", build_team_snapshot(empty))

"""
Rule based assignment recommender.

Scores every candidate on skill match, workload and availability and
combines them with fixed weights. It has no external dependencies, which is
what lets it stand in whenever the model assisted recommender fails.
"""
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Callable, Dict, List, Tuple

from django.utils import timezone

from apps.common.exceptions import NoTeamMembers
from apps.tasks.models import TaskPriority
from apps.users.models import UserRole
from .snapshot import MemberSnapshot, TeamSnapshot
from .workload import is_overdue, round_half_up

logger = logging.getLogger(__name__)

SKILL_WEIGHT = 0.40
WORKLOAD_WEIGHT = 0.35
AVAILABILITY_WEIGHT = 0.25

CAPACITY_HOURS = 40
MIN_WORKLOAD_SCORE = 10
MIN_AVAILABILITY_SCORE = 20
OVERDUE_DEDUCTION = 25
HIGH_PRIORITY_DEDUCTION = 10
SKILL_BASE_WEIGHT = 80
MAX_SKILL_SCORE = 95
NEUTRAL_SKILL_SCORE = 50

MIN_ESTIMATED_HOURS = 1
MAX_ESTIMATED_HOURS = 40

ROLE_SKILL_BONUS = {
    UserRole.TEAM_LEADER: 10,
    UserRole.ADMIN: 8,
    UserRole.TEAM_MEMBER: 0,
}

SKILL_KEYWORDS = {
    "frontend": ["react", "vue", "angular", "javascript", "typescript", "css", "html", "ui", "ux",
                 "component", "interface", "responsive"],
    "backend": ["api", "server", "database", "node", "express", "python", "java", "authentication",
                "auth", "endpoint", "microservice"],
    "database": ["sql", "mongodb", "postgres", "mysql", "redis", "database", "schema", "migration",
                 "query", "data"],
    "devops": ["docker", "kubernetes", "aws", "deploy", "deployment", "infrastructure", "ci/cd",
               "pipeline", "monitoring"],
    "security": ["authentication", "authorization", "security", "encryption", "jwt", "oauth", "ssl",
                 "vulnerability"],
    "testing": ["test", "testing", "unit", "integration", "e2e", "jest", "cypress", "automation", "qa"],
    "mobile": ["mobile", "ios", "android", "react native", "flutter", "swift", "kotlin", "app"],
    "ai_ml": ["ai", "machine learning", "ml", "nlp", "recommendation", "algorithm", "data science",
              "neural"],
}

PRIORITY_KEYWORDS = {
    TaskPriority.URGENT: ["urgent", "critical", "emergency", "asap", "immediate", "hotfix",
                          "production", "down", "broken"],
    TaskPriority.HIGH: ["important", "high", "priority", "deadline", "release", "milestone", "launch",
                        "client", "customer"],
    TaskPriority.MEDIUM: ["feature", "enhancement", "improvement", "optimize", "refactor", "update"],
    TaskPriority.LOW: ["nice to have", "future", "documentation", "cleanup", "minor", "cosmetic",
                       "polish"],
}

COMPLEXITY_KEYWORDS = {
    "simple": ["fix", "update", "change", "minor", "simple", "quick", "small"],
    "medium": ["implement", "create", "add", "build", "develop", "integrate"],
    "complex": ["architecture", "system", "framework", "migration", "redesign", "refactor",
                "optimization"],
    "very_complex": ["platform", "infrastructure", "security overhaul", "complete rewrite",
                     "microservices"],
}

COMPLEXITY_HOURS = {
    "simple": 2,
    "medium": 8,
    "complex": 20,
    "very_complex": 40,
}

SPECIALIZED_SKILLS = ("ai_ml", "security")


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str):
    return re.compile(r"(?<![\w/])" + re.escape(keyword) + r"(?![\w/])")


def keyword_hits(text: str, keywords: List[str]) -> List[str]:
    """Keywords that appear in text as whole words or phrases"""
    text = text.lower()
    return [k for k in keywords if _keyword_pattern(k).search(text)]


def _best_match(text: str, vocabulary: Dict, default):
    best, best_hits = default, 0
    for label, keywords in vocabulary.items():
        hits = len(keyword_hits(text, keywords))
        if hits > best_hits:
            best, best_hits = label, hits
    return best


@dataclass(frozen=True)
class TaskAnalysis:
    skills_required: Tuple[str, ...]
    complexity: str
    suggested_priority: str
    estimated_hours: int
    insights: Tuple[str, ...] = ()


def analyze_task(title: str, description: str = "") -> TaskAnalysis:
    """Infer required skills, complexity, priority and an hour estimate from the text"""
    content = f"{title} {description or ''}"
    insights = []

    skills = []
    for skill, keywords in SKILL_KEYWORDS.items():
        hits = keyword_hits(content, keywords)
        if hits:
            skills.append(skill)
            insights.append(f"Requires {skill} skills (detected: {', '.join(hits)})")

    complexity = _best_match(content, COMPLEXITY_KEYWORDS, "medium")
    priority = _best_match(content, PRIORITY_KEYWORDS, TaskPriority.MEDIUM)

    hours = float(COMPLEXITY_HOURS[complexity])
    if any(s in skills for s in SPECIALIZED_SKILLS):
        hours *= 1.5
        insights.append("Time adjusted upward for specialized domain")
    if len(skills) > 2:
        hours *= 1.2
        insights.append("Multi-disciplinary task requires additional coordination time")
    hours = min(MAX_ESTIMATED_HOURS, max(MIN_ESTIMATED_HOURS, round_half_up(hours)))

    return TaskAnalysis(
        skills_required=tuple(skills),
        complexity=complexity,
        suggested_priority=str(priority),
        estimated_hours=hours,
        insights=tuple(insights),
    )


def skill_match(required: Tuple[str, ...], member: MemberSnapshot) -> Tuple[float, str]:
    if not required:
        return NEUTRAL_SKILL_SCORE, "No specific skills detected"

    experience = " ".join(member.experience_titles())
    matched = [s for s in required if keyword_hits(experience, SKILL_KEYWORDS[s])]

    base = len(matched) / len(required) * SKILL_BASE_WEIGHT
    score = min(MAX_SKILL_SCORE, base + ROLE_SKILL_BONUS.get(member.role, 0))

    if matched:
        explanation = f"Strong match: has experience with {', '.join(matched)}"
    else:
        explanation = f"Limited evidence of required skills ({', '.join(required)})"
    return score, explanation


def workload_fit(member: MemberSnapshot) -> Tuple[int, str]:
    hours = member.open_hours
    utilization = hours / CAPACITY_HOURS
    score = max(MIN_WORKLOAD_SCORE, round_half_up((1 - utilization) * 100))

    if utilization > 0.8:
        label = "Overloaded"
    elif utilization > 0.6:
        label = "Busy"
    else:
        label = "Available"
    return score, f"{label}: {hours:g}h of {CAPACITY_HOURS}h capacity used"


def availability(member: MemberSnapshot, now: datetime) -> Tuple[int, str]:
    overdue = sum(1 for t in member.open_tasks if is_overdue(t, now))
    urgent = sum(1 for t in member.open_tasks if t.priority in (TaskPriority.HIGH, TaskPriority.URGENT))
    score = max(MIN_AVAILABILITY_SCORE, 100 - overdue * OVERDUE_DEDUCTION - urgent * HIGH_PRIORITY_DEDUCTION)

    if overdue:
        explanation = f"{overdue} overdue task(s) may impact availability"
    elif urgent:
        explanation = f"{urgent} high-priority task(s) in queue"
    else:
        explanation = "Fully available"
    return score, explanation


def confidence_level(score: int) -> str:
    if score >= 85:
        return "HIGH"
    if score < 60:
        return "LOW"
    return "MEDIUM"


@dataclass(frozen=True)
class Recommendation:
    user_id: int
    score: int
    reason: str
    confidence_level: str = "MEDIUM"
    skill_match: float = 0
    workload_score: int = 0
    availability_score: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Suggestion:
    recommendations: List[Recommendation]
    suggested_priority: str
    suggested_estimated_hours: float
    insights: List[str] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> Dict:
        return {
            "recommendations": [r.to_dict() for r in self.recommendations],
            "suggested_priority": self.suggested_priority,
            "suggested_estimated_hours": self.suggested_estimated_hours,
            "insights": list(self.insights),
            "fallback": self.fallback,
        }


class HeuristicAssignmentRecommender:
    def __init__(self, clock: Callable[[], datetime] = timezone.now):
        self.clock = clock

    def recommend_member(self, analysis: TaskAnalysis, member: MemberSnapshot, now: datetime) -> Recommendation:
        skill, skill_reason = skill_match(analysis.skills_required, member)
        workload, workload_reason = workload_fit(member)
        avail, avail_reason = availability(member, now)

        final = round_half_up(
            skill * SKILL_WEIGHT + workload * WORKLOAD_WEIGHT + avail * AVAILABILITY_WEIGHT
        )
        return Recommendation(
            user_id=member.user_id,
            score=final,
            reason=f"{skill_reason}. {workload_reason}. {avail_reason}",
            confidence_level=confidence_level(final),
            skill_match=round(skill, 2),
            workload_score=workload,
            availability_score=avail,
        )

    def suggest(self, title: str, description: str, snapshot: TeamSnapshot) -> Suggestion:
        """
        Rank every member of the snapshot for the task.

        Raises NoTeamMembers for an empty roster instead of returning an
        empty ranking.
        """
        if not snapshot.members:
            raise NoTeamMembers(snapshot.team.name)

        now = self.clock()
        analysis = analyze_task(title, description)
        ranked = sorted(
            (self.recommend_member(analysis, m, now) for m in snapshot.members),
            key=lambda r: r.score,
            reverse=True,
        )

        insights = list(analysis.insights) + [
            f"Analyzed {len(snapshot.members)} team members",
            f"Task complexity: {analysis.complexity}",
            f"Top recommendation confidence: {ranked[0].confidence_level}",
        ]
        logger.info(
            f"Heuristic ranking for '{title}' in team {snapshot.team.id}: "
            f"top user {ranked[0].user_id} ({ranked[0].score})"
        )
        return Suggestion(
            recommendations=ranked,
            suggested_priority=analysis.suggested_priority,
            suggested_estimated_hours=analysis.estimated_hours,
            insights=insights,
        )

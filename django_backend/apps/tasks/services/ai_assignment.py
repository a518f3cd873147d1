"""
Model assisted assignment recommender.

The language model is treated as an untrusted collaborator: its reply goes
through a staged parser and a validator before anything downstream sees it,
and every failure is reported as ExternalServiceFailure so callers can fall
back to the heuristic recommender.
"""
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from numbers import Real
from typing import Any, Callable, Dict, List, Optional, Union

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone

from apps.common.exceptions import (
    DegradedServiceError,
    ExternalServiceFailure,
    InvalidState,
    InvalidSuggestion,
    NoTeamMembers,
    UnparsableResponse,
)
from apps.tasks.models import SuggestionSource, TaskAssignmentSuggestion, TaskPriority
from .heuristics import HeuristicAssignmentRecommender, Recommendation, Suggestion
from .snapshot import TeamSnapshot, load_team_snapshot
from .workload import is_overdue, round_half_up

logger = logging.getLogger(__name__)

MIN_SUGGESTED_HOURS = 1
MAX_SUGGESTED_HOURS = 40
FALLBACK_MEMBERS = 3
FALLBACK_TOP_SCORE = 80
FALLBACK_SCORE_STEP = 10
MAX_HISTORY = 50


class TextGenerator:
    """Anything that turns a system and user prompt into free text"""

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError


class OpenAITextGenerator(TextGenerator):
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None, temperature: float = 0.3, max_tokens: int = 1000):
        self.api_key = api_key if api_key is not None else getattr(settings, "OPENAI_API_KEY", "")
        self.model = model or getattr(settings, "OPENAI_MODEL", "gpt-4o-mini")
        self.timeout = timeout or getattr(settings, "OPENAI_TIMEOUT_SECONDS", 20)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = None

    def _get_client(self):
        if self._client is None:
            import openai
            self._client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=1)
        return self._client

    def generate(self, system_prompt: str, user_prompt: str) -> str:
        if not self.api_key:
            raise ExternalServiceFailure("OpenAI API key is not configured")

        import openai
        try:
            completion = self._get_client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            raise ExternalServiceFailure(f"OpenAI request failed: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ExternalServiceFailure("No response content from OpenAI")
        return content


# Response parsing

@dataclass(frozen=True)
class Parsed:
    payload: Dict[str, Any]
    stage: str


@dataclass(frozen=True)
class Unparsable:
    reason: str


ParseResult = Union[Parsed, Unparsable]

_OBJECT_SPAN = re.compile(r"\{[\s\S]*\}")
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")


def _load_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (TypeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def parse_model_response(text: str) -> ParseResult:
    """
    Pull a JSON object out of a model reply.

    Tries the whole reply, then the outermost {...} span, then a fenced
    ```json block. Never raises; odd replies come back as Unparsable.
    """
    if not text or not text.strip():
        return Unparsable("empty response")

    payload = _load_object(text.strip())
    if payload is not None:
        return Parsed(payload, "direct")

    span = _OBJECT_SPAN.search(text)
    if span:
        payload = _load_object(span.group(0))
        if payload is not None:
            return Parsed(payload, "object_span")

    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        payload = _load_object(fenced.group(1))
        if payload is not None:
            return Parsed(payload, "code_block")

    return Unparsable("no valid JSON object found in response")


# Validation

def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and value == value


def fallback_recommendations(snapshot: TeamSnapshot) -> List[Recommendation]:
    return [
        Recommendation(
            user_id=m.user_id,
            score=FALLBACK_TOP_SCORE - index * FALLBACK_SCORE_STEP,
            reason=f"Team member available for assignment. Role: {m.role}.",
        )
        for index, m in enumerate(snapshot.members[:FALLBACK_MEMBERS])
    ]


def validate_suggestion(payload: Dict[str, Any], snapshot: TeamSnapshot) -> Suggestion:
    recommendations = payload.get("recommendations")
    if not isinstance(recommendations, list):
        raise InvalidSuggestion("Invalid recommendations format")

    priority = payload.get("suggestedPriority")
    if priority not in TaskPriority.values:
        raise InvalidSuggestion(f"Invalid priority value: {priority}")

    hours = payload.get("suggestedEstimatedHours")
    if not _is_number(hours) or not MIN_SUGGESTED_HOURS <= hours <= MAX_SUGGESTED_HOURS:
        raise InvalidSuggestion(f"Invalid estimated hours: {hours}")

    validated = []
    for rec in recommendations:
        if not isinstance(rec, dict):
            raise InvalidSuggestion("Recommendation entries must be objects")
        member = snapshot.member(rec.get("userId"))
        if member is None:
            logger.warning(f"Dropping recommendation for unknown user id {rec.get('userId')!r}")
            continue

        score = rec.get("score")
        if not _is_number(score) or not 0 <= score <= 100:
            raise InvalidSuggestion(f"Invalid score for user {member.user_id}: {score}")
        reason = rec.get("reason")
        if not isinstance(reason, str) or not reason.strip():
            raise InvalidSuggestion(f"Invalid reason for user {member.user_id}")

        validated.append(Recommendation(user_id=member.user_id, score=round_half_up(score), reason=reason.strip()))

    if not validated:
        logger.warning("No usable recommendations from model, synthesizing fallback ranking")
        validated = fallback_recommendations(snapshot)

    return Suggestion(
        recommendations=sorted(validated, key=lambda r: r.score, reverse=True),
        suggested_priority=priority,
        suggested_estimated_hours=round_half_up(hours, 1),
    )


# Prompting

def build_system_prompt(snapshot: TeamSnapshot, now: datetime) -> str:
    members = [
        {
            "userId": str(m.user_id),
            "name": m.name,
            "role": m.role,
            "currentWorkload": {
                "totalHours": round(m.open_hours, 2),
                "activeTasks": len(m.open_tasks),
                "overdueCount": sum(1 for t in m.open_tasks if is_overdue(t, now)),
                "recentTasks": [
                    {"title": t.title, "priority": t.priority, "status": t.status}
                    for t in m.open_tasks[:3]
                ],
            },
        }
        for m in snapshot.members
    ]
    user_ids = ", ".join(m["userId"] for m in members)

    return f"""You are a task assignment assistant for a project management system. Analyze the team members and suggest the best assignment for a new task.

TEAM: {snapshot.team.name}
TEAM MEMBERS DATA:
{json.dumps(members, indent=2)}

SCORING CRITERIA:
- Skills/Experience match (40 points)
- Current workload (35 points), lower workload = higher score
- Availability (25 points), fewer overdue and high-priority tasks = higher score

PRIORITY GUIDELINES:
- LOW: nice-to-have features, documentation, cleanup
- MEDIUM: regular features, bug fixes, standard improvements
- HIGH: critical features, deadline-driven work
- URGENT: production incidents, emergencies

RESPONSE FORMAT:
Respond with ONLY valid JSON in exactly this format:
{{
  "recommendations": [
    {{"userId": "exact_user_id_from_team_data", "score": 85, "reason": "Why this member fits"}}
  ],
  "suggestedPriority": "MEDIUM",
  "suggestedEstimatedHours": 8
}}

RULES:
- Use EXACT userIds from the team data: {user_ids}
- Include ALL team members in recommendations
- Scores are numbers between 0 and 100
- suggestedPriority is exactly "LOW", "MEDIUM", "HIGH" or "URGENT"
- suggestedEstimatedHours is a number between 1 and 40
- Do not include any text outside the JSON response"""


def build_user_prompt(title: str, description: str) -> str:
    return (
        "TASK TO ASSIGN:\n"
        f"Title: {title}\n"
        f"Description: {description or 'No description provided'}\n\n"
        "Please analyze this task and provide assignment recommendations for the team members."
    )


class ModelAssistedRecommender:
    def __init__(self, generator: Optional[TextGenerator] = None,
                 clock: Callable[[], datetime] = timezone.now):
        self.generator = generator or OpenAITextGenerator()
        self.clock = clock

    def suggest(self, title: str, description: str, snapshot: TeamSnapshot) -> Suggestion:
        """
        Ask the model for a ranking of the snapshot's members.

        Raises NoTeamMembers for an empty roster and ExternalServiceFailure
        (or a subclass) for anything the model gets wrong.
        """
        if not snapshot.members:
            raise NoTeamMembers(snapshot.team.name)

        logger.info(f"Requesting model suggestion for '{title}' ({len(snapshot.members)} members)")
        reply = self.generator.generate(
            build_system_prompt(snapshot, self.clock()),
            build_user_prompt(title, description),
        )

        parsed = parse_model_response(reply)
        if isinstance(parsed, Unparsable):
            raise UnparsableResponse(f"Failed to parse JSON from model response: {parsed.reason}")

        suggestion = validate_suggestion(parsed.payload, snapshot)
        logger.info(
            f"Validated {len(suggestion.recommendations)} recommendations "
            f"(parsed via {parsed.stage})"
        )
        return suggestion


def record_suggestion(title: str, description: str, snapshot: TeamSnapshot, suggestion: Suggestion,
                      candidate_user_ids=None, requested_by=None, source=SuggestionSource.AI):
    """Persist an audit record of a suggestion; failures are logged, never raised"""
    try:
        return TaskAssignmentSuggestion.objects.create(
            title=title,
            description=description or "",
            team=snapshot.team,
            recommendations=[r.to_dict() for r in suggestion.recommendations],
            suggested_priority=suggestion.suggested_priority,
            suggested_estimated_hours=suggestion.suggested_estimated_hours,
            candidate_user_ids=list(candidate_user_ids) if candidate_user_ids else None,
            requested_by=requested_by,
            source=source,
        )
    except DatabaseError as e:
        logger.warning(f"Could not store assignment suggestion for '{title}': {e}")
        return None


def suggest_assignment(title: str, description: str, team_id, candidate_user_ids=None,
                       requested_by=None, generator: Optional[TextGenerator] = None,
                       clock: Callable[[], datetime] = timezone.now) -> Suggestion:
    """
    Suggest assignees for a task that may not exist yet.

    The model is tried first; when it fails the heuristic ranking is returned
    with fallback=True. Only when both fail does DegradedServiceError reach
    the caller.
    """
    snapshot = load_team_snapshot(team_id, candidate_user_ids)
    if not snapshot.members:
        raise NoTeamMembers(snapshot.team.name)

    try:
        suggestion = ModelAssistedRecommender(generator, clock).suggest(title, description, snapshot)
        source = SuggestionSource.AI
    except ExternalServiceFailure as e:
        logger.warning(f"Model suggestion failed, using heuristic ranking: {e.message}")
        try:
            suggestion = HeuristicAssignmentRecommender(clock).suggest(title, description, snapshot)
        except InvalidState:
            raise
        except Exception as fallback_error:
            logger.exception("Heuristic fallback failed")
            raise DegradedServiceError(
                "Assignment suggestions are temporarily unavailable"
            ) from fallback_error
        suggestion.fallback = True
        source = SuggestionSource.HEURISTIC

    record_suggestion(title, description, snapshot, suggestion, candidate_user_ids, requested_by, source)
    return suggestion


def suggestion_history(team_id, limit: int = 10):
    if not 1 <= limit <= MAX_HISTORY:
        raise InvalidState(f"Limit must be a number between 1 and {MAX_HISTORY}")
    return list(
        TaskAssignmentSuggestion.objects.filter(team_id=team_id)
        .select_related("requested_by")[:limit]
    )

"""
Error taxonomy for the assignment and approval services.

Services raise these; the DRF exception handler at the bottom of the module
turns them into JSON responses. Each kind carries its HTTP status so views
never have to inspect error messages.
"""
import logging
from typing import Any, Dict, Optional

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class TaskServiceError(Exception):
    """Base class for every error raised by the task services"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "internal_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, **self.extra}


# Not found

class NotFound(TaskServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class TaskNotFound(NotFound):
    def __init__(self, task_id):
        super().__init__(f"Task with ID {task_id} not found", task_id=task_id)


class ApprovalNotFound(NotFound):
    def __init__(self, approval_id):
        super().__init__(
            f"Approval request with ID {approval_id} not found", approval_id=approval_id
        )


class UserNotFound(NotFound):
    def __init__(self, user_id):
        super().__init__(f"User with ID {user_id} not found", user_id=user_id)


class TeamNotFound(NotFound):
    def __init__(self, team_id):
        super().__init__(f"Team with ID {team_id} not found", team_id=team_id)


# Invalid request or state

class InvalidState(TaskServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "invalid_state"


class AlreadyResolved(InvalidState):
    def __init__(self, approval_id, current_status: str):
        super().__init__(
            f"Approval request {approval_id} is already {current_status.lower()}",
            current_status=current_status,
        )
        self.current_status = current_status


class TeamNotAssigned(InvalidState):
    def __init__(self, task_id):
        super().__init__(f"Task {task_id} is not associated with a team")


class NoTeamMembers(InvalidState):
    def __init__(self, team_name: str):
        super().__init__(f"Team {team_name} has no members available for assignment")


class NotTeamMember(InvalidState):
    def __init__(self, user_id, team_name: Optional[str]):
        super().__init__(f"User {user_id} is not a member of team {team_name or 'Unknown'}")


class InvalidSelection(InvalidState):
    def __init__(self, user_id, team_name: str):
        super().__init__(f"Selected user {user_id} not found in team {team_name}")


class InvalidRange(InvalidState):
    pass


class InvalidDuration(InvalidState):
    pass


class MissingReason(InvalidState):
    def __init__(self):
        super().__init__("rejection_reason or comments is required for rejection")


class InvalidStrategy(InvalidState):
    def __init__(self, strategy):
        super().__init__(
            f"Unsupported assignment mode: {strategy}. Mode must be one of: ai, balanced, min-load"
        )


# Authorization

class Unauthorized(TaskServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "unauthorized"


class InsufficientRole(Unauthorized):
    pass


class CrossTeamApproval(Unauthorized):
    pass


class NotAllowedToLogTime(Unauthorized):
    pass


# External collaborators

class ExternalServiceFailure(TaskServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    kind = "external_service_failure"


class UnparsableResponse(ExternalServiceFailure):
    pass


class InvalidSuggestion(ExternalServiceFailure):
    pass


class DegradedServiceError(TaskServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = "degraded_service"


# Store

class TransientError(TaskServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = "transient"


def exception_handler(exc, context):
    """DRF exception handler that understands TaskServiceError"""
    if isinstance(exc, TaskServiceError):
        view = context.get("view")
        logger.warning(
            f"{exc.__class__.__name__} in {view.__class__.__name__ if view else 'unknown view'}: {exc.message}"
        )
        headers = {}
        if isinstance(exc, TransientError):
            headers["Retry-After"] = "1"
        return Response(exc.to_dict(), status=exc.status_code, headers=headers)
    return drf_exception_handler(exc, context)

import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.exceptions import InvalidState
from apps.common.ratelimit import ai_suggestions_rate_limiter
from apps.tasks.models import ApprovalRequest, Task
from apps.tasks.services.ai_assignment import suggest_assignment, suggestion_history
from apps.tasks.services.approvals import APPROVE, REJECT, ApprovalStateMachine
from apps.tasks.services.assignment import AssignmentOrchestrator, assignment_history
from apps.tasks.services.time_ledger import TimeLedger
from apps.tasks.services.workload import (
    DEFAULT_HOURS_THRESHOLD,
    DEFAULT_SCORE_THRESHOLD,
    compute_workload,
    get_overloaded_members,
    get_workload_stats,
)
from apps.users.api.serializers import UserSerializer
from .filters import ApprovalRequestFilter, TaskFilter
from .serializers import (
    ApprovalCreateSerializer,
    ApprovalDecisionSerializer,
    ApprovalRequestSerializer,
    AutoAssignSerializer,
    LogTimeSerializer,
    ManualAssignSerializer,
    SuggestAssignmentSerializer,
    SuggestionHistoryQuerySerializer,
    TaskAssignmentSuggestionSerializer,
    TaskHistorySerializer,
    TaskSerializer,
    TimeLogEntrySerializer,
)

logger = logging.getLogger(__name__)


def _approval_data(approval):
    return ApprovalRequestSerializer(approval).data if approval else None


class TaskViewSet(mixins.CreateModelMixin,
                  mixins.RetrieveModelMixin,
                  mixins.UpdateModelMixin,
                  mixins.ListModelMixin,
                  viewsets.GenericViewSet):
    queryset = Task.objects.select_related("created_by", "team", "assigned_to")
    serializer_class = TaskSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_class = TaskFilter
    search_fields = ["title", "description"]
    ordering_fields = ["scheduled_at", "priority", "created_at", "updated_at"]
    ordering = ["-created_at"]

    @action(detail=True, methods=["post"], url_path="auto-assign")
    def auto_assign(self, request, pk=None):
        ser = AutoAssignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = AssignmentOrchestrator().auto_assign(
            pk,
            strategy=ser.validated_data["mode"],
            override_approval=ser.validated_data["override_approval"],
            actor=request.user,
        )
        return Response({
            "task": TaskSerializer(result.task).data,
            "assignee": UserSerializer(result.assignee).data,
            "approval_request": _approval_data(result.approval_request),
            "rationale": result.rationale,
            "strategy": result.strategy,
            "fallback_used": result.fallback_used,
        })

    @action(detail=True, methods=["post"])
    def assign(self, request, pk=None):
        ser = ManualAssignSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = AssignmentOrchestrator().manual_assign(
            pk,
            assigned_to_id=ser.validated_data["assigned_to"],
            actor_id=request.user.id,
            request_approval=ser.validated_data["request_approval"],
            message=ser.validated_data["message"],
        )
        return Response({
            "task": TaskSerializer(result.task).data,
            "assignee": UserSerializer(result.assignee).data,
            "actor": UserSerializer(result.actor).data,
            "approval_request": _approval_data(result.approval_request),
            "needs_approval": result.needs_approval,
            "previous_assignee": UserSerializer(result.previous_assignee).data if result.previous_assignee else None,
        })

    @action(detail=True, methods=["get"], url_path="assignment-history")
    def assignment_history(self, request, pk=None):
        task, approvals = assignment_history(pk)
        return Response({
            "task": TaskSerializer(task).data,
            "approval_requests": ApprovalRequestSerializer(approvals, many=True).data,
        })

    @action(detail=True, methods=["get"])
    def history(self, request, pk=None):
        task = self.get_object()
        qs = task.history.select_related("user").order_by("-created_at", "-id")
        return Response(TaskHistorySerializer(qs, many=True).data)

    @action(detail=True, methods=["post"], url_path="log-time")
    def log_time(self, request, pk=None):
        ser = LogTimeSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        result = TimeLedger().log_time(
            pk,
            request.user.id,
            start=data.get("start_time"),
            end=data.get("end_time"),
            duration_hours=data.get("duration_hours"),
            notes=data["notes"],
            complete_if_done=data["complete_if_done"],
            auto_detected=data["auto_detected"],
        )
        return Response({
            "time_log": TimeLogEntrySerializer(result.entry).data,
            "task": TaskSerializer(result.task).data,
            "logged_by": UserSerializer(result.user).data,
            "summary": result.summary.to_dict(),
        }, status=status.HTTP_201_CREATED)


class ApprovalViewSet(mixins.ListModelMixin,
                      mixins.RetrieveModelMixin,
                      viewsets.GenericViewSet):
    queryset = ApprovalRequest.objects.select_related("task", "requested_by", "approved_by")
    serializer_class = ApprovalRequestSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_class = ApprovalRequestFilter
    ordering = ["-created_at", "-id"]

    def create(self, request):
        ser = ApprovalCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        approval = ApprovalStateMachine().create_approval(
            ser.validated_data["task"], request.user.id, ser.validated_data["reason"]
        )
        return Response(ApprovalRequestSerializer(approval).data, status=status.HTTP_201_CREATED)

    def _decide(self, request, pk, decision, reason):
        result = ApprovalStateMachine().decide_approval(pk, request.user.id, decision, reason)
        return Response({
            "approval": ApprovalRequestSerializer(result.approval).data,
            "task": TaskSerializer(result.task).data,
        })

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        ser = ApprovalDecisionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return self._decide(request, pk, APPROVE, ser.validated_data["comments"])

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        ser = ApprovalDecisionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        reason = ser.validated_data["rejection_reason"] or ser.validated_data["comments"]
        return self._decide(request, pk, REJECT, reason)


class WorkloadViewSet(viewsets.ViewSet):
    """Workload scores of a team's members, addressed by team id"""

    permission_classes = [permissions.IsAuthenticated]

    def retrieve(self, request, pk=None):
        scores = compute_workload(pk)
        return Response([s.to_dict() for s in scores])

    @action(detail=True, methods=["get"])
    def stats(self, request, pk=None):
        return Response(get_workload_stats(pk))

    @action(detail=True, methods=["get"])
    def overloaded(self, request, pk=None):
        try:
            score_threshold = float(request.query_params.get("score_threshold", DEFAULT_SCORE_THRESHOLD))
            hours_threshold = float(request.query_params.get("hours_threshold", DEFAULT_HOURS_THRESHOLD))
        except ValueError:
            raise InvalidState("score_threshold and hours_threshold must be numbers")
        members = get_overloaded_members(pk, score_threshold, hours_threshold)
        return Response([m.to_dict() for m in members])


class RateLimitedMixin:
    """Applies a FixedWindowRateLimiter to POST requests, keyed by actor"""

    rate_limiter_factory = staticmethod(ai_suggestions_rate_limiter)

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.rate_limit = None
        if request.method == "POST":
            identifier = request.user.id if request.user.is_authenticated else request.META.get("REMOTE_ADDR")
            self.rate_limit = self.rate_limiter_factory().check(str(identifier))

    def handle_rate_limit(self):
        if self.rate_limit is not None and not self.rate_limit.allowed:
            return Response(
                {
                    "error": "rate_limited",
                    "message": "Too many requests. Please try again later.",
                    "retry_after": self.rate_limit.retry_after(),
                },
                status=status.HTTP_429_TOO_MANY_REQUESTS,
                headers={"Retry-After": str(self.rate_limit.retry_after())},
            )
        return None

    def finalize_response(self, request, response, *args, **kwargs):
        response = super().finalize_response(request, response, *args, **kwargs)
        if getattr(self, "rate_limit", None) is not None:
            for header, value in self.rate_limit.headers().items():
                response[header] = value
        return response


class SuggestAssignmentView(RateLimitedMixin, APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        limited = self.handle_rate_limit()
        if limited is not None:
            return limited

        ser = SuggestAssignmentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        suggestion = suggest_assignment(
            data["title"],
            data["description"],
            data["team_id"],
            candidate_user_ids=data.get("candidate_user_ids"),
            requested_by=request.user,
        )
        return Response(suggestion.to_dict())


class SuggestionHistoryView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        ser = SuggestionHistoryQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        records = suggestion_history(ser.validated_data["team_id"], ser.validated_data["limit"])
        return Response(TaskAssignmentSuggestionSerializer(records, many=True).data)

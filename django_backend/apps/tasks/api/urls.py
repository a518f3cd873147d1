from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    ApprovalViewSet,
    SuggestAssignmentView,
    SuggestionHistoryView,
    TaskViewSet,
    WorkloadViewSet,
)

router = DefaultRouter()
router.register(r"tasks", TaskViewSet, basename="tasks")
router.register(r"approvals", ApprovalViewSet, basename="approvals")
router.register(r"workload", WorkloadViewSet, basename="workload")

urlpatterns = [
    path("", include(router.urls)),
    path("ai/suggest-assignment/", SuggestAssignmentView.as_view(), name="ai-suggest-assignment"),
    path("ai/suggest-assignment/history/", SuggestionHistoryView.as_view(), name="ai-suggestion-history"),
]

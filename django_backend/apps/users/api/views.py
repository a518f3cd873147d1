import logging

from django.contrib.auth import get_user_model
from rest_framework import mixins, permissions, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.users.models import Team
from .permissions import IsAdminRoleOrReadOnly
from .serializers import TeamCreateSerializer, TeamSerializer, UserCreateSerializer, UserSerializer

logger = logging.getLogger(__name__)

User = get_user_model()


class UserViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    queryset = User.objects.select_related("team").filter(is_active=True).order_by("id")
    permission_classes = [permissions.IsAuthenticated, IsAdminRoleOrReadOnly]
    filterset_fields = ["team", "role"]

    def get_serializer_class(self):
        if self.action == "create":
            return UserCreateSerializer
        return UserSerializer

    def perform_create(self, serializer):
        user = serializer.save()
        logger.info(f"User {user.id} ({user.role}) created by {self.request.user.id}")

    @action(detail=False, methods=["get"])
    def me(self, request):
        return Response(UserSerializer(request.user).data)


class TeamViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    queryset = Team.objects.prefetch_related("members").order_by("name")
    permission_classes = [permissions.IsAuthenticated, IsAdminRoleOrReadOnly]

    def get_serializer_class(self):
        if self.action == "create":
            return TeamCreateSerializer
        return TeamSerializer

    def perform_create(self, serializer):
        team = serializer.save()
        logger.info(f"Team {team.id} '{team.name}' created by {self.request.user.id}")

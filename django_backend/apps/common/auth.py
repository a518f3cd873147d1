import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework import authentication, exceptions

logger = logging.getLogger(__name__)

User = get_user_model()


class ActorHeaderAuthentication(authentication.BaseAuthentication):
    """
    Resolves the acting user from a trusted request header.

    Identity is established upstream (gateway or SSO), so the header value is
    taken as given. Requests without the header stay anonymous and are
    rejected by IsAuthenticated.
    """

    def header_name(self):
        return getattr(settings, "ACTOR_HEADER", "HTTP_X_ACTOR_ID")

    def authenticate(self, request):
        raw = request.META.get(self.header_name())
        if not raw:
            return None
        try:
            user_id = int(raw)
        except (TypeError, ValueError):
            raise exceptions.AuthenticationFailed("Actor header must be a user id")
        try:
            user = User.objects.select_related("team").get(pk=user_id, is_active=True)
        except User.DoesNotExist:
            logger.warning(f"Request with unknown actor id {user_id}")
            raise exceptions.AuthenticationFailed(f"Actor with ID {user_id} not found")
        return user, None

    def authenticate_header(self, request):
        return "X-Actor-Id"

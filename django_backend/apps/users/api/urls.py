from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import TeamViewSet, UserViewSet

router = DefaultRouter()
router.register(r"users", UserViewSet, basename="users")
router.register(r"teams", TeamViewSet, basename="teams")

urlpatterns = [
    path("", include(router.urls)),
]

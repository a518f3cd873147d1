from django.contrib import admin
from django.urls import include, path

from apps.common.views import healthz

urlpatterns = [
    path("admin/", admin.site.urls),
    path("healthz/", healthz),
    path(
        "api/",
        include([
            path("", include("apps.users.api.urls")),
            path("", include("apps.tasks.api.urls")),
        ])
    ),
]

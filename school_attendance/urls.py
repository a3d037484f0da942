"""
Main URL configuration for the school attendance project.

Everything except the Django admin lives under ``/api/v1/`` and speaks JSON.
"""

from django.contrib import admin
from django.urls import include, path

from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/auth/login/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/v1/auth/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/v1/", include("recognition.api.urls")),
    path("api/v1/", include("school.api.urls")),
]

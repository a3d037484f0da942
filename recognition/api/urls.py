from django.urls import path

from .views import (
    MetricsView,
    SessionCameraView,
    SessionDetailView,
    SessionListView,
    SessionScanView,
    SessionStopView,
)

urlpatterns = [
    path("sessions/", SessionListView.as_view(), name="session-list"),
    path("sessions/<str:session_id>/", SessionDetailView.as_view(), name="session-detail"),
    path("sessions/<str:session_id>/camera/", SessionCameraView.as_view(), name="session-camera"),
    path("sessions/<str:session_id>/scan/", SessionScanView.as_view(), name="session-scan"),
    path("sessions/<str:session_id>/stop/", SessionStopView.as_view(), name="session-stop"),
    path("monitoring/metrics/", MetricsView.as_view(), name="monitoring-metrics"),
]

from django.urls import include, path

from rest_framework.routers import DefaultRouter

from .views import (
    AnnouncementViewSet,
    ClassViewSet,
    MarkAttendanceView,
    NotificationListView,
    StudentViewSet,
)

router = DefaultRouter()
router.register(r"classes", ClassViewSet, basename="class")
router.register(r"students", StudentViewSet, basename="student")
router.register(r"announcements", AnnouncementViewSet, basename="announcement")

urlpatterns = [
    path("attendance/mark/", MarkAttendanceView.as_view(), name="attendance-mark"),
    path("notifications/", NotificationListView.as_view(), name="notifications"),
    path("", include(router.urls)),
]

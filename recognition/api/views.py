"""REST endpoints that drive attendance scanning sessions."""

from __future__ import annotations

import logging

from django.http import HttpResponse

from asgiref.sync import async_to_sync
from rest_framework import permissions, status
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.views import APIView

from recognition import config, monitoring
from recognition.errors import CLIENT_CAMERA_ERRORS
from recognition.images import frame_from_payload
from recognition.reconciler import RosterMode
from recognition.registry import get_session_registry
from school.api.common import DomainErrorsMixin, rate_limited
from school.repository import DjangoSchoolRepository
from users.models import Role
from users.permissions import IsAdmin, IsAdminOrTeacher, can_manage_class, role_of

from .serializers import (
    CameraSerializer,
    ScanSerializer,
    StartSessionSerializer,
    scan_payload,
    snapshot_payload,
)

logger = logging.getLogger(__name__)


class SessionView(DomainErrorsMixin, APIView):
    permission_classes = [permissions.IsAuthenticated, IsAdminOrTeacher]

    def get_session(self, session_id: str):
        session = get_session_registry().get(session_id)
        user = self.request.user
        if session.owner_id != user.id and role_of(user) != Role.ADMIN:
            raise PermissionDenied("This session belongs to another user.")
        return session


class SessionListView(SessionView):
    def post(self, request):
        serializer = StartSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        school_class = DjangoSchoolRepository().get_class(serializer.validated_data["class_id"])
        if not can_manage_class(request.user, school_class):
            raise PermissionDenied("You cannot take attendance for this class.")

        registry = get_session_registry()
        session = registry.create(
            school_class.id,
            owner_id=request.user.id,
            mode=RosterMode(serializer.validated_data["mode"]),
            threshold=serializer.validated_data.get("threshold"),
        )
        snapshot = async_to_sync(session.start)()
        return Response(snapshot_payload(snapshot), status=status.HTTP_201_CREATED)


class SessionDetailView(SessionView):
    def get(self, request, session_id):
        return Response(snapshot_payload(self.get_session(session_id).snapshot()))


class SessionCameraView(SessionView):
    def post(self, request, session_id):
        session = self.get_session(session_id)
        serializer = CameraSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        code = serializer.validated_data.get("error")
        reported = CLIENT_CAMERA_ERRORS[code]() if code else None
        snapshot = async_to_sync(session.start_camera)(reported)
        return Response(snapshot_payload(snapshot))


class SessionScanView(SessionView):
    @rate_limited("recognition.scan", config.scan_rate_limit)
    def post(self, request, session_id):
        session = self.get_session(session_id)
        serializer = ScanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        frame = frame_from_payload(
            uploaded=request.FILES.get("image"), raw_image=serializer.validated_data.get("image")
        )
        report = async_to_sync(session.scan)(frame)
        payload = scan_payload(report)
        payload["session"] = snapshot_payload(session.snapshot())
        return Response(payload)


class SessionStopView(SessionView):
    def post(self, request, session_id):
        session = self.get_session(session_id)
        snapshot = async_to_sync(session.stop)()
        get_session_registry().discard(session.id)
        return Response(snapshot_payload(snapshot))


class MetricsView(APIView):
    """Prometheus exposition of the kiosk metrics."""

    permission_classes = [permissions.IsAuthenticated, IsAdmin]

    def get(self, request):
        return HttpResponse(
            monitoring.export_metrics(), content_type=monitoring.prometheus_content_type()
        )

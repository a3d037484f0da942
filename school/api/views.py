"""REST endpoints for rosters, attendance, reports and school notices."""

from __future__ import annotations

import logging

from django.utils import timezone

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from recognition import config as recognition_config
from recognition.descriptors import DescriptorStore
from recognition.images import frame_from_payload
from recognition.vision import get_vision_backend
from school.attendance import AttendanceWriter
from school.notifications import broadcast_announcement, send_absence_notifications
from school.reports import attendance_trend, class_day_summary, student_month_calendar
from school.repository import DjangoSchoolRepository
from users.models import Role
from users.permissions import (
    IsAdmin,
    IsSchoolMember,
    can_manage_class,
    can_view_student,
    linked_student_ids,
    role_of,
)

from .common import DomainErrorsMixin, rate_limited
from .serializers import (
    AnnouncementSerializer,
    AttendanceEntrySerializer,
    ClassSerializer,
    DateQuerySerializer,
    DateRangeQuerySerializer,
    DayCountsSerializer,
    EnrollFaceSerializer,
    MarkAttendanceSerializer,
    MonthQuerySerializer,
    NotificationSerializer,
    StudentSerializer,
)

logger = logging.getLogger(__name__)


def _student_payload(student) -> dict:
    return StudentSerializer(student).data


def _query(serializer_class, request):
    serializer = serializer_class(data=request.query_params)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class SchoolViewSet(DomainErrorsMixin, viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated, IsSchoolMember]

    def get_repository(self) -> DjangoSchoolRepository:
        return DjangoSchoolRepository()

    def managed_class(self, class_id):
        """Return the class record or raise 403 unless the user may manage it."""

        school_class = self.get_repository().get_class(int(class_id))
        if not can_manage_class(self.request.user, school_class):
            raise PermissionDenied("You cannot manage this class.")
        return school_class


class ClassViewSet(SchoolViewSet):
    def list(self, request):
        repository = self.get_repository()
        role = role_of(request.user)
        if role == Role.ADMIN:
            classes = repository.list_classes()
        elif role == Role.TEACHER:
            classes = repository.list_classes(teacher_id=request.user.id)
        else:
            class_ids = {
                student.class_id
                for student in repository.students_by_ids(linked_student_ids(request.user))
            }
            classes = [repository.get_class(class_id) for class_id in sorted(class_ids)]
        return Response(ClassSerializer(classes, many=True).data)

    def create(self, request):
        if role_of(request.user) != Role.ADMIN:
            raise PermissionDenied("Only admins can create classes.")
        serializer = ClassSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        school_class = self.get_repository().add_class(
            serializer.validated_data["name"], serializer.validated_data.get("teacher_id")
        )
        return Response(ClassSerializer(school_class).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        return Response(ClassSerializer(self.managed_class(pk)).data)

    @action(detail=True, methods=["get"])
    def students(self, request, pk=None):
        school_class = self.managed_class(pk)
        students = self.get_repository().students_for_class(school_class.id)
        return Response([_student_payload(student) for student in students])

    @action(detail=True, methods=["get"])
    def attendance(self, request, pk=None):
        school_class = self.managed_class(pk)
        day = _query(DateQuerySerializer, request).get("date") or timezone.localdate()
        entries = self.get_repository().attendance_for_class_on(school_class.id, day)
        return Response(AttendanceEntrySerializer(entries, many=True).data)

    @action(detail=True, methods=["get"], url_path="attendance-range")
    def attendance_range(self, request, pk=None):
        school_class = self.managed_class(pk)
        params = _query(DateRangeQuerySerializer, request)
        entries = self.get_repository().attendance_for_class_between(
            school_class.id, params["start"], params["end"]
        )
        return Response(AttendanceEntrySerializer(entries, many=True).data)

    @action(detail=True, methods=["get"])
    def summary(self, request, pk=None):
        school_class = self.managed_class(pk)
        day = _query(DateQuerySerializer, request).get("date") or timezone.localdate()
        summary = class_day_summary(self.get_repository(), school_class.id, day)
        return Response(
            {
                "class_id": summary.class_id,
                "date": summary.date.isoformat(),
                "present": summary.present,
                "late": summary.late,
                "absent": summary.absent,
                "total": summary.total,
                "students": [
                    {"id": student.id, "name": student.name, "status": attendance_status.value}
                    for student, attendance_status in summary.statuses
                ],
            }
        )

    @action(detail=True, methods=["get"])
    def trend(self, request, pk=None):
        school_class = self.managed_class(pk)
        params = _query(DateRangeQuerySerializer, request)
        counts = attendance_trend(
            self.get_repository(), school_class.id, params["start"], params["end"]
        )
        return Response(DayCountsSerializer(counts, many=True).data)

    @action(detail=True, methods=["post"], url_path="absence-alerts")
    def absence_alerts(self, request, pk=None):
        school_class = self.managed_class(pk)
        absent = send_absence_notifications(
            self.get_repository(), school_class.id, timezone.localdate()
        )
        return Response({"class_id": school_class.id, "absent": absent})


class StudentViewSet(SchoolViewSet):
    def _visible_student(self, pk):
        repository = self.get_repository()
        student = repository.get_student(int(pk))
        school_class = repository.get_class(student.class_id)
        if not can_view_student(self.request.user, student, school_class):
            raise PermissionDenied("You cannot view this student.")
        return student, school_class

    def list(self, request):
        repository = self.get_repository()
        class_id = request.query_params.get("class_id")
        if class_id:
            if not class_id.isdigit():
                raise ValidationError({"class_id": "Must be an integer."})
            school_class = self.managed_class(class_id)
            students = repository.students_for_class(school_class.id)
        elif role_of(request.user) in (Role.STUDENT, Role.PARENT):
            students = repository.students_by_ids(linked_student_ids(request.user))
        else:
            raise ValidationError({"class_id": "This query parameter is required."})
        return Response([_student_payload(student) for student in students])

    def create(self, request):
        serializer = StudentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        school_class = self.managed_class(fields.pop("class_id"))
        student = self.get_repository().add_student(fields.pop("name"), school_class.id, **fields)
        return Response(_student_payload(student), status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        student, _ = self._visible_student(pk)
        return Response(_student_payload(student))

    def partial_update(self, request, pk=None):
        repository = self.get_repository()
        student = repository.get_student(int(pk))
        self.managed_class(student.class_id)
        serializer = StudentSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        if "class_id" in changes:
            self.managed_class(changes["class_id"])
        student = repository.update_student(student.id, **changes)
        return Response(_student_payload(student))

    @action(detail=True, methods=["post"], url_path="enroll-face")
    @rate_limited("school.enroll_face", recognition_config.enroll_rate_limit)
    def enroll_face(self, request, pk=None):
        repository = self.get_repository()
        student = repository.get_student(int(pk))
        self.managed_class(student.class_id)

        serializer = EnrollFaceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        store = DescriptorStore(repository)
        if serializer.validated_data.get("descriptor"):
            student = store.set_descriptor(student.id, serializer.validated_data["descriptor"])
        else:
            frame = frame_from_payload(raw_image=serializer.validated_data["image"])
            if frame is None:
                raise ValidationError({"image": "Image payload is empty."})
            student = store.enroll_from_frame(student.id, frame, get_vision_backend())

        logger.info(
            "Face enrolled for student %s",
            student.id,
            extra={"event": "enroll", "student_id": student.id, "user_id": request.user.id},
        )
        return Response(_student_payload(student))

    @action(detail=True, methods=["get"])
    def calendar(self, request, pk=None):
        student, _ = self._visible_student(pk)
        params = _query(MonthQuerySerializer, request)
        month = student_month_calendar(
            self.get_repository(), student.id, params["year"], params["month"]
        )
        return Response(
            {
                "student_id": student.id,
                "year": month.year,
                "month": month.month,
                "attendance_rate": month.attendance_rate,
                "days": {
                    day.isoformat(): (day_status.value if day_status else None)
                    for day, day_status in month.days.items()
                },
            }
        )


class MarkAttendanceView(DomainErrorsMixin, APIView):
    """Manual attendance entry by a teacher or admin."""

    permission_classes = [permissions.IsAuthenticated, IsSchoolMember]

    def post(self, request):
        serializer = MarkAttendanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        repository = DjangoSchoolRepository()
        student = repository.get_student(serializer.validated_data["student_id"])
        if not can_manage_class(request.user, repository.get_class(student.class_id)):
            raise PermissionDenied("You cannot mark attendance for this class.")
        entry = AttendanceWriter(repository).mark_attendance(
            student.id, student.class_id, serializer.validated_data["status"]
        )
        return Response(AttendanceEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


class NotificationListView(DomainErrorsMixin, APIView):
    permission_classes = [permissions.IsAuthenticated, IsSchoolMember]

    def get(self, request):
        notifications = DjangoSchoolRepository().notifications_for_user(request.user.id)
        return Response(NotificationSerializer(notifications, many=True).data)


class AnnouncementViewSet(SchoolViewSet):
    def get_permissions(self):
        if self.action == "create":
            return [permissions.IsAuthenticated(), IsAdmin()]
        return super().get_permissions()

    def list(self, request):
        announcements = self.get_repository().announcements()
        return Response(AnnouncementSerializer(announcements, many=True).data)

    def create(self, request):
        serializer = AnnouncementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        sender = request.user.get_full_name() or request.user.get_username()
        announcement = broadcast_announcement(
            self.get_repository(),
            serializer.validated_data["message"],
            serializer.validated_data["audience"],
            sender,
        )
        return Response(AnnouncementSerializer(announcement).data, status=status.HTTP_201_CREATED)

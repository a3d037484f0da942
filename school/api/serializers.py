from rest_framework import serializers

from school.domain import AttendanceStatus
from school.notifications import VALID_AUDIENCES

STATUS_CHOICES = [status.value for status in AttendanceStatus]


class ClassSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    name = serializers.CharField(max_length=128)
    teacher_id = serializers.IntegerField(required=False, allow_null=True)
    teacher_name = serializers.CharField(read_only=True)


class StudentSerializer(serializers.Serializer):
    """Student roster data. The face descriptor itself is never exposed."""

    id = serializers.IntegerField(read_only=True)
    name = serializers.CharField(max_length=128)
    class_id = serializers.IntegerField()
    roll_number = serializers.CharField(max_length=32, required=False, allow_blank=True)
    photo_url = serializers.URLField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    parent_id = serializers.IntegerField(required=False, allow_null=True)
    has_descriptor = serializers.BooleanField(read_only=True)


class AttendanceEntrySerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    student_id = serializers.IntegerField()
    class_id = serializers.IntegerField()
    date = serializers.DateField()
    status = serializers.SerializerMethodField()
    timestamp = serializers.DateTimeField()

    def get_status(self, obj):
        return obj.status.value


class MarkAttendanceSerializer(serializers.Serializer):
    student_id = serializers.IntegerField()
    status = serializers.ChoiceField(choices=STATUS_CHOICES)


class EnrollFaceSerializer(serializers.Serializer):
    """Either a captured image (base64 or data URL) or a ready-made descriptor."""

    image = serializers.CharField(required=False, allow_blank=False)
    descriptor = serializers.ListField(
        child=serializers.FloatField(), required=False, allow_empty=False
    )

    def validate(self, attrs):
        if not attrs.get("image") and not attrs.get("descriptor"):
            raise serializers.ValidationError("Provide either 'image' or 'descriptor'.")
        return attrs


class DateQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)


class DateRangeQuerySerializer(serializers.Serializer):
    start = serializers.DateField()
    end = serializers.DateField()

    def validate(self, attrs):
        if attrs["end"] < attrs["start"]:
            raise serializers.ValidationError("'end' must not be before 'start'.")
        return attrs


class MonthQuerySerializer(serializers.Serializer):
    year = serializers.IntegerField(min_value=1970, max_value=9999)
    month = serializers.IntegerField(min_value=1, max_value=12)


class DayCountsSerializer(serializers.Serializer):
    date = serializers.DateField()
    present = serializers.IntegerField()
    absent = serializers.IntegerField()
    late = serializers.IntegerField()


class NotificationSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    message = serializers.CharField()
    kind = serializers.SerializerMethodField()
    timestamp = serializers.DateTimeField()
    is_read = serializers.BooleanField()

    def get_kind(self, obj):
        return obj.kind.value


class AnnouncementSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    message = serializers.CharField()
    audience = serializers.ChoiceField(choices=list(VALID_AUDIENCES))
    timestamp = serializers.DateTimeField(read_only=True)
    sent_by = serializers.CharField(read_only=True)

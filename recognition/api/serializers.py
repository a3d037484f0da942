from rest_framework import serializers

from recognition.errors import CLIENT_CAMERA_ERRORS
from recognition.reconciler import RosterMode


class StartSessionSerializer(serializers.Serializer):
    class_id = serializers.IntegerField()
    mode = serializers.ChoiceField(
        choices=[mode.value for mode in RosterMode], default=RosterMode.KIOSK.value
    )
    threshold = serializers.FloatField(required=False, min_value=0.0)


class CameraSerializer(serializers.Serializer):
    """Browser kiosks report why they could not open their camera."""

    error = serializers.ChoiceField(choices=sorted(CLIENT_CAMERA_ERRORS), required=False)


class ScanSerializer(serializers.Serializer):
    """A frame captured by the kiosk page; omitted when a server-side webcam is used."""

    image = serializers.CharField(required=False, allow_blank=False)


def snapshot_payload(snapshot) -> dict:
    return {
        "id": snapshot.id,
        "class_id": snapshot.class_id,
        "mode": snapshot.mode.value,
        "state": snapshot.state.value,
        "status": snapshot.status,
        "error": snapshot.error_kind.value if snapshot.error_kind else None,
        "retryable": snapshot.retryable,
        "complete": snapshot.complete,
        "pending": snapshot.pending,
        "resolved": snapshot.resolved,
        "log": [
            {
                "student_id": entry.student_id,
                "student_name": entry.student_name,
                "timestamp": entry.timestamp.isoformat(),
            }
            for entry in snapshot.log
        ],
    }


def scan_payload(report) -> dict:
    return {
        "status": report.status,
        "faces": report.faces,
        "recognized": report.committed,
        "outcomes": [
            {
                "outcome": result.outcome.value,
                "student_id": result.student.id if result.student else None,
            }
            for result in report.results
        ],
        "discarded": report.discarded,
        "complete": report.complete,
    }

"""Tests for roster construction and at-most-once attendance writes."""

import datetime as dt

import pytest

from recognition import monitoring
from recognition.matcher import UNKNOWN_LABEL, MatchResult
from recognition.reconciler import ReconcileOutcome, RosterMode, RosterReconciler, SessionRoster
from school.domain import AttendanceStatus
from tests.fakes import FIXED_NOW, RecordingWriter, SchoolFixture, fixed_clock


def _match(student_id) -> MatchResult:
    return MatchResult(str(student_id), 0.2)


@pytest.fixture
def school():
    return SchoolFixture(enrolled=3, unenrolled=1)


def _reconciler(school, *, mode=RosterMode.KIOSK, failures=0, log_size=None):
    roster = SessionRoster.build(
        school.repo.students_for_class(school.class_id),
        school.repo.attendance_for_class_on(school.class_id, FIXED_NOW.date()),
        mode,
    )
    writer = RecordingWriter(school.repo, failures=failures)
    return RosterReconciler(roster, writer, log_size=log_size, clock=fixed_clock), writer


def test_kiosk_roster_only_waits_for_enrolled_students(school):
    reconciler, _ = _reconciler(school)

    pending_names = sorted(student.name for student in reconciler.roster.pending.values())

    assert pending_names == ["Student 1", "Student 2", "Student 3"]
    assert reconciler.roster.resolved == {}


def test_live_roster_includes_students_without_descriptor(school):
    reconciler, _ = _reconciler(school, mode=RosterMode.LIVE)

    assert len(reconciler.roster.pending) == 4


def test_students_with_any_record_today_start_resolved(school):
    first, second = school.students[0], school.students[1]
    school.repo.replace_attendance(
        first.id, school.class_id, FIXED_NOW.date(), AttendanceStatus.LATE, FIXED_NOW
    )
    school.repo.replace_attendance(
        second.id,
        school.class_id,
        FIXED_NOW.date() - dt.timedelta(days=1),
        AttendanceStatus.PRESENT,
        FIXED_NOW,
    )

    reconciler, _ = _reconciler(school)

    assert str(first.id) in reconciler.roster.resolved
    assert str(second.id) in reconciler.roster.pending


def test_commit_writes_present_and_logs_student(school):
    reconciler, writer = _reconciler(school)
    student = school.students[0]

    result = reconciler.apply(_match(student.id))

    assert result.outcome is ReconcileOutcome.COMMITTED
    assert result.status == f"Recognized: {student.name}"
    assert writer.calls == [student.id]
    [entry] = school.repo.attendance_for_class_on(school.class_id, FIXED_NOW.date())
    assert entry.status is AttendanceStatus.PRESENT
    assert [log.student_name for log in reconciler.log] == [student.name]
    assert reconciler.log[0].timestamp == FIXED_NOW
    assert monitoring.metric_value(
        "kiosk_reconcile_outcomes_total", {"outcome": "committed"}
    ) == 1.0


def test_second_match_reports_already_present_without_writing(school):
    reconciler, writer = _reconciler(school)
    student = school.students[0]

    reconciler.apply(_match(student.id))
    result = reconciler.apply(_match(student.id))

    assert result.outcome is ReconcileOutcome.ALREADY_PRESENT
    assert result.status == f"{student.name} is already marked present."
    assert writer.calls == [student.id]
    assert len(reconciler.log) == 1


def test_unknown_and_foreign_labels_are_ignored(school):
    reconciler, writer = _reconciler(school)

    unknown = reconciler.apply(MatchResult(UNKNOWN_LABEL, 0.9))
    foreign = reconciler.apply(_match(999))
    unenrolled = reconciler.apply(_match(school.students[3].id))

    assert unknown.outcome is ReconcileOutcome.UNKNOWN
    assert foreign.outcome is ReconcileOutcome.NOT_IN_ROSTER
    assert unenrolled.outcome is ReconcileOutcome.NOT_IN_ROSTER
    assert unknown.status is None
    assert writer.calls == []


def test_failed_write_keeps_student_pending_for_retry(school):
    reconciler, writer = _reconciler(school, failures=1)
    student = school.students[0]

    failed = reconciler.apply(_match(student.id))

    assert failed.outcome is ReconcileOutcome.WRITE_FAILED
    assert failed.status == f"Could not save attendance for {student.name}. Please scan again."
    assert str(student.id) in reconciler.roster.pending
    assert reconciler.log == []

    retried = reconciler.apply(_match(student.id))

    assert retried.outcome is ReconcileOutcome.COMMITTED
    assert writer.calls == [student.id, student.id]


def test_log_is_newest_first_and_capped():
    school = SchoolFixture(enrolled=4)
    reconciler, _ = _reconciler(school, log_size=2)

    for student in school.students:
        reconciler.apply(_match(student.id))

    assert [entry.student_name for entry in reconciler.log] == ["Student 4", "Student 3"]
    assert reconciler.roster.complete


def test_log_size_defaults_to_setting(settings):
    settings.RECOGNITION_KIOSK_LOG_SIZE = 1
    school = SchoolFixture(enrolled=2)
    reconciler, _ = _reconciler(school)

    for student in school.students:
        reconciler.apply(_match(student.id))

    assert [entry.student_name for entry in reconciler.log] == ["Student 2"]


def test_roster_keeps_pending_and_resolved_disjoint(school):
    student = school.students[0]

    roster = SessionRoster(pending=[student], resolved=[student])

    assert roster.pending == {}
    assert list(roster.resolved) == [str(student.id)]
    assert roster.complete

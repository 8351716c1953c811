"""Tests for attendance resolution and the score entries it produces."""

import pytest

from letsmeet.db.models import AttendanceOutcome, MeetingStatus, ScoreReason
from letsmeet.errors import ConflictError, ForbiddenError, ValidationFailed
from letsmeet.services.application_service import application_service
from letsmeet.services.attendance_service import attendance_service
from letsmeet.services.meeting_service import meeting_service
from letsmeet.services.score_service import score_service
from letsmeet.services.user_service import user_service


@pytest.fixture
def completed_meeting(db, make_user, make_past_meeting):
    """Factory for a completed meeting with the given approved participants."""
    def _completed(host_id, participants):
        meeting = make_past_meeting(host_id, max_participants=max(2, len(participants)))
        for uid in participants:
            application = application_service.apply(db, meeting.id, uid)
            application_service.approve(db, application.id, host_id)
        return meeting_service.transition(db, meeting.id, MeetingStatus.completed, actor_id=host_id)
    return _completed


class TestScoreChangeFor:
    def test_attended_below_sample_gives_nothing(self):
        assert attendance_service.score_change_for(AttendanceOutcome.attended, 0, 0) == 0
        assert attendance_service.score_change_for(AttendanceOutcome.attended, 1, 0) == 0

    def test_third_attendance_unlocks_rate_score(self):
        assert attendance_service.score_change_for(AttendanceOutcome.attended, 2, 0) == 40

    def test_first_no_show(self):
        assert attendance_service.score_change_for(AttendanceOutcome.no_show, 0, 0) == -10

    def test_no_show_after_history_includes_rate_drop(self):
        # rate 3/3 -> 3/4: 40 -> 30, penalty 0 -> -10
        assert attendance_service.score_change_for(AttendanceOutcome.no_show, 3, 0) == -20

    def test_no_show_penalty_capped(self):
        # rate 0/3 -> 0/4 stays 0, penalty already -30
        assert attendance_service.score_change_for(AttendanceOutcome.no_show, 0, 3) == 0


class TestRecordAttendance:
    def test_attended_creates_single_entry(self, db, make_user, completed_meeting):
        make_user("host")
        make_user("a")
        meeting = completed_meeting("host", ["a"])

        result = attendance_service.record_attendance(
            db, meeting.id, "a", "attended", host_id="host"
        )

        assert result["attendance"].outcome == AttendanceOutcome.attended
        assert result["score_entry"].reason == ScoreReason.attendance
        assert result["score_entry"].score_change == 0
        assert result["score_entry"].related_meeting_id == meeting.id
        assert len(score_service.get_history(db, "a")) == 2

    def test_no_show_penalised(self, db, make_user, completed_meeting):
        make_user("host")
        make_user("a", score=70)
        meeting = completed_meeting("host", ["a"])

        result = attendance_service.record_attendance(db, meeting.id, "a", "no_show")

        assert result["score_entry"].reason == ScoreReason.no_show
        assert result["score_entry"].score_change == -10
        assert user_service.get_profile(db, "a").trust_score == 60

    def test_third_attendance_pays_out(self, db, make_user, completed_meeting):
        make_user("host")
        make_user("a", score=50)
        for _ in range(3):
            meeting = completed_meeting("host", ["a"])
            attendance_service.record_attendance(db, meeting.id, "a", "attended", host_id="host")

        assert user_service.get_profile(db, "a").trust_score == 90
        assert score_service.recompute_from_ledger(db, "a") == 90

    def test_recorded_only_once(self, db, make_user, completed_meeting):
        make_user("host")
        make_user("a")
        meeting = completed_meeting("host", ["a"])
        attendance_service.record_attendance(db, meeting.id, "a", "attended")

        with pytest.raises(ConflictError):
            attendance_service.record_attendance(db, meeting.id, "a", "no_show")

    def test_meeting_must_be_completed(self, db, make_user, make_meeting, approved_participant):
        make_user("host")
        make_user("a")
        meeting = make_meeting("host")
        approved_participant(meeting, "a")

        with pytest.raises(ConflictError):
            attendance_service.record_attendance(db, meeting.id, "a", "attended")

    def test_only_host_records(self, db, make_user, completed_meeting):
        make_user("host")
        make_user("a")
        meeting = completed_meeting("host", ["a"])
        with pytest.raises(ForbiddenError):
            attendance_service.record_attendance(db, meeting.id, "a", "attended", host_id="a")

    def test_requires_approved_participant(self, db, make_user, completed_meeting):
        make_user("host")
        make_user("a")
        make_user("outsider")
        meeting = completed_meeting("host", ["a"])
        with pytest.raises(ConflictError):
            attendance_service.record_attendance(db, meeting.id, "outsider", "attended")

    @pytest.mark.parametrize("outcome", ["maybe", "cancelled"])
    def test_invalid_outcome(self, db, outcome):
        with pytest.raises(ValidationFailed) as exc:
            attendance_service.record_attendance(db, 1, "a", outcome)
        assert exc.value.field == "outcome"


class TestWithdraw:
    def test_withdraw_twice_conflicts(self, db, make_user, make_meeting, approved_participant):
        make_user("host")
        make_user("a")
        meeting = make_meeting("host")
        approved_participant(meeting, "a")

        attendance_service.withdraw(db, meeting.id, "a")
        with pytest.raises(ConflictError):
            attendance_service.withdraw(db, meeting.id, "a")

    def test_pending_applicant_cannot_withdraw(self, db, make_user, make_meeting):
        make_user("host")
        make_user("a")
        meeting = make_meeting("host")
        application_service.apply(db, meeting.id, "a")

        with pytest.raises(ConflictError):
            attendance_service.withdraw(db, meeting.id, "a")

    def test_withdraw_after_completion_conflicts(self, db, make_user, completed_meeting):
        make_user("host")
        make_user("a")
        meeting = completed_meeting("host", ["a"])
        with pytest.raises(ConflictError):
            attendance_service.withdraw(db, meeting.id, "a")

    def test_history_counts_include_cancellations(self, db, make_user, make_meeting, approved_participant):
        make_user("host")
        make_user("a")
        meeting = make_meeting("host")
        approved_participant(meeting, "a")
        attendance_service.withdraw(db, meeting.id, "a")

        counts = attendance_service.history_counts(db, "a")
        assert counts == {"attended": 0, "no_show": 0, "cancelled": 1}

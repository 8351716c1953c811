"""
Attendance Service - Resolves attendance outcomes into score changes

Every attendance record feeds exactly one ledger entry. Component scores
from the score engine are functions of the user's whole history, so each
event contributes the difference it makes to those components:

- attended:  change in attendance rate score
- no_show:   change in attendance rate score + change in no-show penalty
- cancelled: late cancellation penalty for the notice given

Hosts earn the change in host experience score when a meeting completes.
"""
import logging
from datetime import datetime
from typing import Dict, Any, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from letsmeet.db.models import (
    User, Meeting, Application, Attendance, MeetingStatus,
    ApplicationStatus, AttendanceOutcome, ScoreReason, ScoreHistory
)
from letsmeet.errors import (
    ForbiddenError, NotFoundError, ValidationFailed, ConflictError, InternalError
)
from letsmeet.services import score_engine
from letsmeet.services.score_service import score_service
from letsmeet.timeutils import utcnow

logger = logging.getLogger(__name__)


class AttendanceService:
    """Service for attendance resolution and the score events it produces"""

    def history_counts(self, db: Session, user_id: str) -> Dict[str, int]:
        """Resolved attendance counts for a user"""
        rows = db.query(
            Attendance.outcome,
            func.count(Attendance.id)
        ).filter(
            Attendance.user_id == user_id
        ).group_by(Attendance.outcome).all()

        counts = {outcome.value: 0 for outcome in AttendanceOutcome}
        for outcome, count in rows:
            counts[AttendanceOutcome(outcome).value] = count
        return counts

    def score_change_for(
        self,
        outcome: AttendanceOutcome,
        attended: int,
        no_shows: int
    ) -> int:
        """Delta produced by one more attended/no_show on top of the given history"""
        resolved = attended + no_shows
        before = score_engine.attendance_rate_score(attended, resolved)
        if outcome == AttendanceOutcome.attended:
            return score_engine.attendance_rate_score(attended + 1, resolved + 1) - before

        rate_delta = score_engine.attendance_rate_score(attended, resolved + 1) - before
        penalty_delta = (
            score_engine.no_show_penalty(no_shows + 1) - score_engine.no_show_penalty(no_shows)
        )
        return rate_delta + penalty_delta

    def record_attendance(
        self,
        db: Session,
        meeting_id: int,
        user_id: str,
        outcome: str,
        host_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Record whether an approved participant showed up.

        Rules:
        - Meeting must be completed
        - Only the host (or the system, host_id None) records outcomes
        - User must hold an approved application
        - One record per participant per meeting
        """
        try:
            outcome = AttendanceOutcome(outcome)
        except ValueError:
            raise ValidationFailed("outcome", "Outcome must be 'attended' or 'no_show'")
        if outcome == AttendanceOutcome.cancelled:
            raise ValidationFailed("outcome", "Use withdrawal to record a cancellation")

        now = now or utcnow()

        meeting = db.query(Meeting).filter(Meeting.id == meeting_id).first()
        if not meeting:
            raise NotFoundError("Meeting not found")
        if host_id is not None and meeting.host_id != host_id:
            raise ForbiddenError("Only the host can record attendance")
        if meeting.status != MeetingStatus.completed:
            raise ConflictError("Attendance can only be recorded for completed meetings")

        # History is read under the lock so concurrent outcomes see each other
        user = self._lock_participant(db, meeting_id, user_id)
        counts = self.history_counts(db, user_id)
        score_change = self.score_change_for(
            outcome,
            counts[AttendanceOutcome.attended.value],
            counts[AttendanceOutcome.no_show.value]
        )
        reason = (
            ScoreReason.attendance if outcome == AttendanceOutcome.attended
            else ScoreReason.no_show
        )

        attendance = Attendance(
            meeting_id=meeting_id,
            user_id=user_id,
            outcome=outcome,
            confirmed_at=now
        )
        entry = self._persist(db, attendance, user, score_change, reason, meeting_id)
        logger.info(
            f"Attendance for user {user_id} at meeting {meeting_id}: {outcome.value} "
            f"({score_change:+d})"
        )
        return {"attendance": attendance, "score_entry": entry}

    def withdraw(
        self,
        db: Session,
        meeting_id: int,
        user_id: str,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        An approved participant pulls out before the meeting completes.

        The application stays approved; the withdrawal is an attendance
        record with a late cancellation penalty by hours of notice.
        """
        now = now or utcnow()

        meeting = db.query(Meeting).filter(Meeting.id == meeting_id).first()
        if not meeting:
            raise NotFoundError("Meeting not found")
        if meeting.status not in (MeetingStatus.open, MeetingStatus.closed):
            raise ConflictError("Meeting is no longer active")

        user = self._lock_participant(db, meeting_id, user_id)

        score_change = score_engine.cancellation_penalty(now, meeting.meeting_date)
        attendance = Attendance(
            meeting_id=meeting_id,
            user_id=user_id,
            outcome=AttendanceOutcome.cancelled,
            cancelled_at=now
        )
        entry = self._persist(
            db, attendance, user, score_change, ScoreReason.late_cancel, meeting_id
        )
        logger.info(
            f"User {user_id} withdrew from meeting {meeting_id} ({score_change:+d})"
        )
        return {"attendance": attendance, "score_entry": entry}

    def credit_host_experience(self, db: Session, meeting: Meeting) -> Optional[ScoreHistory]:
        """
        Fold one more completed meeting into the host's experience score.

        Runs inside the caller's transaction, after the meeting has been
        marked completed. The host row is locked before the hosted count is
        read, so meetings of one host completing together are counted in turn.
        """
        try:
            host = score_service.lock_user(db, meeting.host_id)
        except NotFoundError:
            logger.warning(f"Host {meeting.host_id} of meeting {meeting.id} no longer exists")
            return None

        hosted_before = db.query(func.count(Meeting.id)).filter(
            and_(
                Meeting.host_id == meeting.host_id,
                Meeting.status == MeetingStatus.completed,
                Meeting.id != meeting.id
            )
        ).scalar() or 0

        score_change = (
            score_engine.host_experience_score(hosted_before + 1)
            - score_engine.host_experience_score(hosted_before)
        )
        return score_service.record_change(
            db, meeting.host_id, score_change, ScoreReason.host_experience,
            related_meeting_id=meeting.id,
            description=f"Hosted meeting #{hosted_before + 1}",
            user=host
        )

    def _lock_participant(self, db: Session, meeting_id: int, user_id: str) -> User:
        """Lock the participant's row and check the approval under the lock"""
        try:
            user = score_service.lock_user(db, user_id)
            self._require_approved(db, meeting_id, user_id)
        except (NotFoundError, ConflictError):
            db.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Could not lock user {user_id}: {e}")
            db.rollback()
            raise InternalError() from e
        return user

    def _require_approved(self, db: Session, meeting_id: int, user_id: str) -> Application:
        application = db.query(Application).filter(
            and_(
                Application.meeting_id == meeting_id,
                Application.user_id == user_id
            )
        ).first()
        if not application or application.status != ApplicationStatus.approved:
            raise ConflictError("User is not an approved participant of this meeting")
        return application

    def _persist(
        self,
        db: Session,
        attendance: Attendance,
        user: User,
        score_change: int,
        reason: ScoreReason,
        meeting_id: int
    ) -> ScoreHistory:
        try:
            db.add(attendance)
            db.flush()
            entry = score_service.record_change(
                db, user.id, score_change, reason,
                related_meeting_id=meeting_id,
                user=user
            )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Attendance already recorded for this participant") from e
        except SQLAlchemyError as e:
            logger.error(f"Attendance persistence failed for user {user.id}: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(attendance)
        db.refresh(entry)
        return entry


# Singleton instance
attendance_service = AttendanceService()

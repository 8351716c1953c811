"""
Celery Tasks for async processing

Tasks fail fast: domain errors are reported in the result, storage errors
propagate. None of them retry automatically.
"""
import logging
from datetime import timedelta
from typing import Dict, Any, Optional
from celery import shared_task
from sqlalchemy import and_

from letsmeet.config import settings
from letsmeet.db.database import SessionLocal
from letsmeet.db.models import Meeting, MeetingStatus
from letsmeet.errors import LetsMeetError
from letsmeet.services.meeting_service import meeting_service
from letsmeet.services.attendance_service import attendance_service
from letsmeet.services.score_service import score_service
from letsmeet.timeutils import utcnow

logger = logging.getLogger(__name__)


def get_db_session():
    """Get database session for tasks"""
    return SessionLocal()


@shared_task(bind=True)
def complete_past_meetings(self) -> Dict[str, Any]:
    """
    Complete open/closed meetings that started long enough ago.

    Runs as the system actor, so hosts are credited their experience score
    without having to complete meetings by hand.
    """
    db = get_db_session()
    completed = []
    failed = {}
    try:
        cutoff = utcnow() - timedelta(hours=settings.MEETING_AUTO_COMPLETE_HOURS)
        meeting_ids = [
            meeting_id for (meeting_id,) in db.query(Meeting.id).filter(
                and_(
                    Meeting.status.in_([MeetingStatus.open, MeetingStatus.closed]),
                    Meeting.meeting_date <= cutoff
                )
            ).order_by(Meeting.meeting_date.asc()).all()
        ]

        for meeting_id in meeting_ids:
            try:
                meeting_service.transition(db, meeting_id, MeetingStatus.completed)
                completed.append(meeting_id)
            except LetsMeetError as e:
                logger.warning(f"Could not complete meeting {meeting_id}: {e.message}")
                failed[meeting_id] = e.kind
    finally:
        db.close()

    logger.info(f"Completed {len(completed)} past meetings")
    return {"completed": completed, "failed": failed}


@shared_task(bind=True)
def resolve_attendance(
    self,
    meeting_id: int,
    outcomes: Dict[str, str],
    host_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Record attendance for many participants of one meeting.

    outcomes maps user id to 'attended' or 'no_show'. Each participant is
    resolved in its own transaction; failures are reported per user.
    """
    db = get_db_session()
    results = {}
    try:
        for user_id, outcome in outcomes.items():
            try:
                result = attendance_service.record_attendance(
                    db, meeting_id, user_id, outcome, host_id=host_id
                )
                results[user_id] = {
                    "status": "recorded",
                    "score_change": result["score_entry"].score_change,
                    "trust_score": result["score_entry"].score_after
                }
            except LetsMeetError as e:
                logger.warning(
                    f"Attendance for {user_id} at meeting {meeting_id} not recorded: {e.message}"
                )
                results[user_id] = {"status": "failed", "error": e.kind, "detail": e.message}
    finally:
        db.close()

    return {"meeting_id": meeting_id, "results": results}


@shared_task(bind=True)
def verify_trust_score(self, user_id: str) -> Dict[str, Any]:
    """Check a user's cached score against the ledger and repair drift."""
    db = get_db_session()
    try:
        return score_service.verify_and_repair(db, user_id)
    finally:
        db.close()

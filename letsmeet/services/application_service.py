"""
Application Service - Apply / approve / reject workflow

Status machine per (meeting, applicant):
    pending -> approved | rejected | cancelled
approved, rejected and cancelled are terminal.

Concurrency:
- One application per (meeting, applicant) is a unique constraint; a racing
  duplicate insert surfaces as a conflict, not a second row.
- A seat is claimed by a single conditional UPDATE on the meeting's
  approved_count (approved_count < max_participants AND status = open), so
  two approvals racing for the last seat cannot both succeed.
- Terminal transitions are conditional on status = pending.
"""
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from letsmeet.db.models import (
    User, Meeting, Application, MeetingStatus, ApplicationStatus
)
from letsmeet.errors import (
    ForbiddenError, NotFoundError, ConflictError, CapacityExceeded, InternalError,
    LetsMeetError
)
from letsmeet.services.trust_gate import trust_gate
from letsmeet.services.meeting_service import meeting_service
from letsmeet.services.attendance_service import attendance_service
from letsmeet.timeutils import utcnow

logger = logging.getLogger(__name__)


class ApplicationService:
    """Service for the application workflow"""

    def apply(
        self,
        db: Session,
        meeting_id: int,
        applicant_id: str,
        answers: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Application:
        """
        Apply to an open meeting.

        Checks, in order: meeting exists, meeting open, no earlier
        application, a seat is still free, applicant passes the trust gate.
        """
        now = now or utcnow()

        meeting = (
            db.query(Meeting)
            .filter(Meeting.id == meeting_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not meeting:
            raise NotFoundError("Meeting not found")

        if meeting.status != MeetingStatus.open:
            raise ConflictError("Meeting is not open for applications")

        existing = db.query(Application.id).filter(
            and_(
                Application.meeting_id == meeting_id,
                Application.user_id == applicant_id
            )
        ).first()
        if existing:
            raise ConflictError("Already applied to this meeting")

        if meeting_service.count_approved(db, meeting_id) >= meeting.max_participants:
            raise CapacityExceeded("Meeting is full")

        if not trust_gate.can_apply(db, applicant_id):
            raise ForbiddenError("Insufficient trust score to apply")

        application = Application(
            meeting_id=meeting_id,
            user_id=applicant_id,
            status=ApplicationStatus.pending,
            answers=answers,
            applied_at=now
        )
        try:
            db.add(application)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.info(f"Duplicate application by {applicant_id} to meeting {meeting_id}")
            raise ConflictError("Already applied to this meeting") from e
        except SQLAlchemyError as e:
            logger.error(f"Application insert failed for meeting {meeting_id}: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(application)
        logger.info(f"User {applicant_id} applied to meeting {meeting_id} (application {application.id})")
        return application

    def approve(
        self,
        db: Session,
        application_id: int,
        host_id: str,
        now: Optional[datetime] = None
    ) -> Application:
        """
        Approve a pending application.

        The seat claim, the status change and the close-if-full check
        commit together.
        """
        now = now or utcnow()
        application, meeting = self._load_for_review(db, application_id, host_id)

        try:
            claimed = db.execute(
                update(Meeting)
                .where(and_(
                    Meeting.id == meeting.id,
                    Meeting.status == MeetingStatus.open,
                    Meeting.approved_count < Meeting.max_participants
                ))
                .values(approved_count=Meeting.approved_count + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                db.rollback()
                raise self._no_seat_error(db, meeting.id)

            transitioned = db.execute(
                update(Application)
                .where(and_(
                    Application.id == application_id,
                    Application.status == ApplicationStatus.pending
                ))
                .values(status=ApplicationStatus.approved, reviewed_at=now)
                .execution_options(synchronize_session=False)
            )
            if transitioned.rowcount == 0:
                db.rollback()
                raise ConflictError("Application has already been reviewed")

            meeting_service.close_if_full(db, meeting.id)
            db.commit()
        except LetsMeetError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Approval of application {application_id} failed: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(application)
        logger.info(f"Application {application_id} approved for meeting {meeting.id}")
        return application

    def reject(
        self,
        db: Session,
        application_id: int,
        host_id: str,
        now: Optional[datetime] = None
    ) -> Application:
        """Reject a pending application. No capacity interaction."""
        now = now or utcnow()
        application, meeting = self._load_for_review(db, application_id, host_id)

        try:
            transitioned = db.execute(
                update(Application)
                .where(and_(
                    Application.id == application_id,
                    Application.status == ApplicationStatus.pending
                ))
                .values(status=ApplicationStatus.rejected, reviewed_at=now)
                .execution_options(synchronize_session=False)
            )
            if transitioned.rowcount == 0:
                db.rollback()
                raise ConflictError("Application has already been reviewed")
            db.commit()
        except LetsMeetError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Rejection of application {application_id} failed: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(application)
        logger.info(f"Application {application_id} rejected for meeting {meeting.id}")
        return application

    def cancel(
        self,
        db: Session,
        application_id: int,
        applicant_id: str,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Applicant withdraws.

        A pending application becomes cancelled. An approved one stays
        approved and the withdrawal is resolved through attendance, which
        applies the late cancellation penalty.
        """
        now = now or utcnow()

        application = db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise NotFoundError("Application not found")
        if application.user_id != applicant_id:
            raise ForbiddenError("Only the applicant can cancel this application")

        if application.status == ApplicationStatus.approved:
            result = attendance_service.withdraw(
                db, application.meeting_id, applicant_id, now=now
            )
            db.refresh(application)
            return {"application": application, "score_entry": result["score_entry"]}

        try:
            transitioned = db.execute(
                update(Application)
                .where(and_(
                    Application.id == application_id,
                    Application.status == ApplicationStatus.pending
                ))
                .values(status=ApplicationStatus.cancelled, reviewed_at=now)
                .execution_options(synchronize_session=False)
            )
            if transitioned.rowcount == 0:
                db.rollback()
                raise ConflictError("Application is no longer pending")
            db.commit()
        except LetsMeetError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Cancellation of application {application_id} failed: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(application)
        logger.info(f"Application {application_id} cancelled by applicant")
        return {"application": application, "score_entry": None}

    def list_applications(
        self,
        db: Session,
        meeting_id: int,
        host_id: str
    ) -> List[Dict[str, Any]]:
        """Applications for a meeting, newest first. Host only."""
        meeting = db.query(Meeting).filter(Meeting.id == meeting_id).first()
        if not meeting:
            raise NotFoundError("Meeting not found")
        if meeting.host_id != host_id:
            raise ForbiddenError("Only the host can view applications")

        rows = db.query(Application, User).outerjoin(
            User, User.id == Application.user_id
        ).filter(
            Application.meeting_id == meeting_id
        ).order_by(Application.applied_at.desc(), Application.id.desc()).all()

        return [
            {
                "application": application,
                "applicant": {
                    "id": application.user_id,
                    "nickname": user.nickname if user else "",
                    "profile_image_url": user.profile_image_url if user else None,
                    "trust_score": user.trust_score if user else None
                }
            }
            for application, user in rows
        ]

    def _load_for_review(self, db: Session, application_id: int, host_id: str):
        application = (
            db.query(Application)
            .filter(Application.id == application_id)
            .populate_existing()
            .first()
        )
        if not application:
            raise NotFoundError("Application not found")

        meeting = (
            db.query(Meeting)
            .filter(Meeting.id == application.meeting_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not meeting or meeting.host_id != host_id:
            raise ForbiddenError("Only the host can review applications")

        if application.status != ApplicationStatus.pending:
            raise ConflictError("Application has already been reviewed")

        return application, meeting

    def _no_seat_error(self, db: Session, meeting_id: int) -> ConflictError:
        meeting = db.query(Meeting).filter(Meeting.id == meeting_id).populate_existing().first()
        if meeting.approved_count >= meeting.max_participants:
            logger.info(f"Approval refused, meeting {meeting_id} is full")
            return CapacityExceeded("Meeting is full")
        return ConflictError("Meeting is not open")


# Singleton instance
application_service = ApplicationService()

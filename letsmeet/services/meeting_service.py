"""
Meeting Service - Meeting creation, validation and status transitions

Status machine:
    open   -> closed | cancelled | completed
    closed -> completed | cancelled
completed and cancelled are terminal. An open meeting closes on its own
once the approved applicant count reaches capacity.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, func, update
from sqlalchemy.exc import SQLAlchemyError

from letsmeet.db.models import (
    User, Meeting, Application, MeetingStatus, ApplicationStatus,
    GenderRestriction, can_transition_meeting
)
from letsmeet.errors import (
    ForbiddenError, NotFoundError, ValidationFailed, ConflictError, InternalError
)
from letsmeet.services.trust_gate import trust_gate
from letsmeet.services.attendance_service import attendance_service
from letsmeet.timeutils import utcnow, to_naive_utc

logger = logging.getLogger(__name__)


class MeetingService:
    """Service for meeting lifecycle operations"""

    MAX_TITLE_LENGTH = 40
    MIN_DESCRIPTION_LENGTH = 20
    MAX_DESCRIPTION_LENGTH = 500
    MIN_PARTICIPANTS = 2
    MAX_PARTICIPANTS = 20
    MAX_INTERESTS = 2
    # Numeric(10, 2)
    MAX_PARTICIPATION_FEE = Decimal("99999999.99")

    def create_meeting(
        self,
        db: Session,
        host_id: str,
        title: Optional[str],
        meeting_date: Optional[datetime],
        location: Optional[str],
        max_participants: Optional[int],
        interests: Optional[List[str]] = None,
        description: Optional[str] = None,
        location_detail: Optional[str] = None,
        category: Optional[str] = None,
        participation_fee: Any = 0,
        gender_restriction: Optional[str] = None,
        age_range_min: Optional[int] = None,
        age_range_max: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Meeting:
        """
        Create an open meeting.

        Rules:
        - Host must pass the hosting trust threshold
        - Title required, 40 characters or less
        - Description, if given, 20-500 characters
        - Date strictly in the future
        - 2-20 participants, at most 2 interests, fee >= 0
        - Age range min <= max when both are given
        """
        if not trust_gate.can_host(db, host_id):
            raise ForbiddenError("Insufficient trust score to create meeting")

        now = now or utcnow()
        interests = interests if interests is not None else []

        if not title or not title.strip():
            raise ValidationFailed("title", "Title is required")
        if len(title) > self.MAX_TITLE_LENGTH:
            raise ValidationFailed(
                "title", f"Title must be {self.MAX_TITLE_LENGTH} characters or less"
            )

        if description:
            if not (self.MIN_DESCRIPTION_LENGTH <= len(description) <= self.MAX_DESCRIPTION_LENGTH):
                raise ValidationFailed(
                    "description",
                    f"Description must be between {self.MIN_DESCRIPTION_LENGTH} "
                    f"and {self.MAX_DESCRIPTION_LENGTH} characters"
                )

        if meeting_date is None:
            raise ValidationFailed("meeting_date", "Meeting date is required")
        meeting_date = to_naive_utc(meeting_date)
        if meeting_date <= now:
            raise ValidationFailed("meeting_date", "Meeting date must be in the future")

        if not location or not location.strip():
            raise ValidationFailed("location", "Location is required")

        if max_participants is None:
            raise ValidationFailed("max_participants", "Max participants is required")
        if not (self.MIN_PARTICIPANTS <= max_participants <= self.MAX_PARTICIPANTS):
            raise ValidationFailed(
                "max_participants",
                f"Max participants must be between {self.MIN_PARTICIPANTS} "
                f"and {self.MAX_PARTICIPANTS}"
            )

        if len(interests) > self.MAX_INTERESTS:
            raise ValidationFailed(
                "interests", f"Maximum {self.MAX_INTERESTS} interests allowed"
            )

        fee = self._parse_fee(participation_fee)

        if age_range_min is not None and age_range_max is not None:
            if age_range_min > age_range_max:
                raise ValidationFailed(
                    "age_range", "Age range min must be less than or equal to max"
                )

        try:
            restriction = GenderRestriction(gender_restriction or GenderRestriction.all.value)
        except ValueError:
            raise ValidationFailed(
                "gender_restriction",
                f"Gender restriction must be one of {[g.value for g in GenderRestriction]}"
            )

        meeting = Meeting(
            host_id=host_id,
            title=title,
            description=description,
            meeting_date=meeting_date,
            location=location,
            location_detail=location_detail,
            category=category,
            max_participants=max_participants,
            interests=list(interests),
            participation_fee=fee,
            gender_restriction=restriction,
            age_range_min=age_range_min,
            age_range_max=age_range_max,
            status=MeetingStatus.open,
            approved_count=0
        )

        try:
            db.add(meeting)
            db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Meeting creation failed for host {host_id}: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(meeting)
        logger.info(f"Meeting {meeting.id} created by host {host_id} (capacity {max_participants})")
        return meeting

    def get_meeting(
        self,
        db: Session,
        meeting_id: int,
        viewer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Meeting with host nickname and the viewer's own application.

        Anonymous viewers (viewer_id None) see the meeting without
        application status.
        """
        meeting = db.query(Meeting).filter(Meeting.id == meeting_id).first()
        if not meeting:
            raise NotFoundError("Meeting not found")

        host = db.query(User).filter(User.id == meeting.host_id).first()

        user_application = None
        if viewer_id:
            application = db.query(Application).filter(
                and_(
                    Application.meeting_id == meeting_id,
                    Application.user_id == viewer_id
                )
            ).first()
            if application:
                user_application = {
                    "id": application.id,
                    "status": application.status
                }

        return {
            "meeting": meeting,
            "host_nickname": host.nickname if host else "",
            "user_application": user_application
        }

    def list_open_meetings(
        self,
        db: Session,
        interests: Optional[List[str]] = None,
        now: Optional[datetime] = None
    ) -> List[Meeting]:
        """Open, upcoming meetings ordered by date; must carry every requested tag"""
        now = now or utcnow()
        meetings = db.query(Meeting).filter(
            and_(
                Meeting.status == MeetingStatus.open,
                Meeting.meeting_date >= now
            )
        ).order_by(Meeting.meeting_date.asc(), Meeting.id.asc()).all()

        if interests:
            wanted = set(interests)
            # JSON containment is not portable across backends
            meetings = [m for m in meetings if wanted.issubset(set(m.interests or []))]

        return meetings

    def count_approved(self, db: Session, meeting_id: int) -> int:
        return db.query(func.count(Application.id)).filter(
            and_(
                Application.meeting_id == meeting_id,
                Application.status == ApplicationStatus.approved
            )
        ).scalar() or 0

    def close_if_full(self, db: Session, meeting_id: int) -> Meeting:
        """
        Close an open meeting once approvals reach capacity.

        Idempotent. Runs inside the caller's transaction; the caller commits.
        """
        meeting = (
            db.query(Meeting)
            .filter(Meeting.id == meeting_id)
            .populate_existing()
            .first()
        )
        if not meeting:
            raise NotFoundError("Meeting not found")

        approved = self.count_approved(db, meeting_id)
        if approved >= meeting.max_participants and meeting.status == MeetingStatus.open:
            db.execute(
                update(Meeting)
                .where(and_(Meeting.id == meeting_id, Meeting.status == MeetingStatus.open))
                .values(status=MeetingStatus.closed, updated_at=utcnow())
            )
            db.flush()
            db.refresh(meeting)
            logger.info(f"Meeting {meeting_id} is full ({approved}/{meeting.max_participants}), closed")

        return meeting

    def transition(
        self,
        db: Session,
        meeting_id: int,
        target: MeetingStatus,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Meeting:
        """
        Move a meeting along the status table.

        actor_id None is the system (scheduled jobs, administration) and
        skips the host check. Cancelling also cancels pending applications;
        completing credits the host's experience score.
        """
        target = MeetingStatus(target)
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

        if actor_id is not None and meeting.host_id != actor_id:
            raise ForbiddenError("Only the host can change the meeting status")

        current = MeetingStatus(meeting.status)
        if not can_transition_meeting(current, target):
            raise ConflictError(f"Meeting cannot move from {current.value} to {target.value}")

        if target == MeetingStatus.completed and meeting.meeting_date > now:
            raise ConflictError("Meeting has not taken place yet")

        try:
            result = db.execute(
                update(Meeting)
                .where(and_(Meeting.id == meeting_id, Meeting.status == current))
                .values(status=target, updated_at=now)
            )
            if result.rowcount == 0:
                db.rollback()
                raise ConflictError("Meeting status changed concurrently")

            if target == MeetingStatus.cancelled:
                db.execute(
                    update(Application)
                    .where(and_(
                        Application.meeting_id == meeting_id,
                        Application.status == ApplicationStatus.pending
                    ))
                    .values(status=ApplicationStatus.cancelled, reviewed_at=now)
                )
            elif target == MeetingStatus.completed:
                attendance_service.credit_host_experience(db, meeting)

            db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Meeting {meeting_id} transition to {target.value} failed: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(meeting)
        logger.info(f"Meeting {meeting_id}: {current.value} -> {target.value}")
        return meeting

    def _parse_fee(self, value: Any) -> Decimal:
        try:
            fee = Decimal(str(value if value is not None else 0))
        except (InvalidOperation, ValueError):
            raise ValidationFailed("participation_fee", "Participation fee must be a number")
        if not fee.is_finite():
            raise ValidationFailed("participation_fee", "Participation fee must be a number")
        if fee < 0:
            raise ValidationFailed("participation_fee", "Participation fee must be 0 or greater")
        if fee > self.MAX_PARTICIPATION_FEE:
            raise ValidationFailed(
                "participation_fee",
                f"Participation fee must be {self.MAX_PARTICIPATION_FEE} or less"
            )
        return fee


# Singleton instance
meeting_service = MeetingService()

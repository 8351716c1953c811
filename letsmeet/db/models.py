"""
SQLAlchemy ORM Models for LetsMeet core service
"""
import enum

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime,
    ForeignKey, JSON, Numeric, UniqueConstraint, Index, Enum as SAEnum
)
from sqlalchemy.orm import relationship

from letsmeet.db.database import Base
from letsmeet.timeutils import utcnow


# ============================================================
# STATUS VARIANTS
# ============================================================

class TrustLevel(str, enum.Enum):
    trust = "trust"
    stable = "stable"
    caution = "caution"
    restricted = "restricted"


class MeetingStatus(str, enum.Enum):
    open = "open"
    closed = "closed"
    completed = "completed"
    cancelled = "cancelled"


class ApplicationStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


class AttendanceOutcome(str, enum.Enum):
    attended = "attended"
    no_show = "no_show"
    cancelled = "cancelled"


class ScoreReason(str, enum.Enum):
    initial = "initial"
    attendance = "attendance"
    no_show = "no_show"
    late_cancel = "late_cancel"
    host_experience = "host_experience"
    time_recovery = "time_recovery"
    positive_action = "positive_action"


class GenderRestriction(str, enum.Enum):
    all = "all"
    male = "male"
    female = "female"


# Allowed status transitions; anything absent is illegal
MEETING_TRANSITIONS = {
    MeetingStatus.open: {MeetingStatus.closed, MeetingStatus.cancelled, MeetingStatus.completed},
    MeetingStatus.closed: {MeetingStatus.completed, MeetingStatus.cancelled},
    MeetingStatus.completed: set(),
    MeetingStatus.cancelled: set(),
}

APPLICATION_TRANSITIONS = {
    ApplicationStatus.pending: {
        ApplicationStatus.approved,
        ApplicationStatus.rejected,
        ApplicationStatus.cancelled,
    },
    ApplicationStatus.approved: set(),
    ApplicationStatus.rejected: set(),
    ApplicationStatus.cancelled: set(),
}


def can_transition_meeting(current: MeetingStatus, target: MeetingStatus) -> bool:
    return target in MEETING_TRANSITIONS[MeetingStatus(current)]


def can_transition_application(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in APPLICATION_TRANSITIONS[ApplicationStatus(current)]


def _enum_column(enum_cls, **kwargs):
    # Stored as plain strings, validated against the enum values
    return Column(
        SAEnum(enum_cls, native_enum=False, validate_strings=True, length=20,
               values_callable=lambda e: [m.value for m in e]),
        **kwargs
    )


# ============================================================
# TABLES
# ============================================================

class User(Base):
    __tablename__ = "letsmeet_users"

    # Verified principal id issued by the identity provider
    id = Column(String(128), primary_key=True)
    nickname = Column(String(30), nullable=False)
    email = Column(String(255))
    profile_image_url = Column(Text)
    trust_score = Column(Integer, nullable=False, default=0)
    trust_level = _enum_column(TrustLevel, nullable=False, default=TrustLevel.restricted)
    interests = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    meetings_hosted = relationship("Meeting", back_populates="host")
    applications = relationship("Application", back_populates="user")
    score_history = relationship("ScoreHistory", back_populates="user")


class Meeting(Base):
    __tablename__ = "letsmeet_meetings"

    id = Column(Integer, primary_key=True, index=True)
    host_id = Column(String(128), ForeignKey("letsmeet_users.id"), nullable=False, index=True)
    title = Column(String(40), nullable=False)
    description = Column(Text)
    meeting_date = Column(DateTime, nullable=False, index=True)
    location = Column(Text, nullable=False)
    location_detail = Column(Text)
    category = Column(String(50))
    max_participants = Column(Integer, nullable=False)
    interests = Column(JSON, nullable=False, default=list)
    participation_fee = Column(Numeric(10, 2), nullable=False, default=0)
    gender_restriction = _enum_column(
        GenderRestriction, nullable=False, default=GenderRestriction.all
    )
    age_range_min = Column(Integer)
    age_range_max = Column(Integer)
    status = _enum_column(MeetingStatus, nullable=False, default=MeetingStatus.open, index=True)
    # Seats claimed by approvals; only ever moved by a conditional update
    approved_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    host = relationship("User", back_populates="meetings_hosted")
    applications = relationship("Application", back_populates="meeting")
    attendances = relationship("Attendance", back_populates="meeting")

    __table_args__ = (
        Index("idx_meeting_status_date", "status", "meeting_date"),
    )


class Application(Base):
    __tablename__ = "letsmeet_applications"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("letsmeet_meetings.id"), nullable=False, index=True)
    user_id = Column(String(128), ForeignKey("letsmeet_users.id"), nullable=False, index=True)
    status = _enum_column(ApplicationStatus, nullable=False, default=ApplicationStatus.pending)
    answers = Column(Text)
    applied_at = Column(DateTime, nullable=False, default=utcnow)
    reviewed_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint("meeting_id", "user_id", name="uq_application_meeting_user"),
        Index("idx_application_meeting_status", "meeting_id", "status"),
    )

    # Relationships
    meeting = relationship("Meeting", back_populates="applications")
    user = relationship("User", back_populates="applications")


class Attendance(Base):
    __tablename__ = "letsmeet_attendances"

    id = Column(Integer, primary_key=True, index=True)
    meeting_id = Column(Integer, ForeignKey("letsmeet_meetings.id"), nullable=False, index=True)
    user_id = Column(String(128), ForeignKey("letsmeet_users.id"), nullable=False, index=True)
    outcome = _enum_column(AttendanceOutcome, nullable=False)
    cancelled_at = Column(DateTime)
    confirmed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("meeting_id", "user_id", name="uq_attendance_meeting_user"),
    )

    # Relationships
    meeting = relationship("Meeting", back_populates="attendances")


class ScoreHistory(Base):
    __tablename__ = "letsmeet_user_score_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(128), ForeignKey("letsmeet_users.id"), nullable=False, index=True)
    score_change = Column(Integer, nullable=False)
    score_after = Column(Integer, nullable=False)
    reason = _enum_column(ScoreReason, nullable=False)
    related_meeting_id = Column(Integer, ForeignKey("letsmeet_meetings.id"))
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="score_history")

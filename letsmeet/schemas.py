"""
Pydantic schemas shared by the LetsMeet API routers.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from letsmeet.db.models import (
    ApplicationStatus, AttendanceOutcome, GenderRestriction,
    MeetingStatus, ScoreReason, TrustLevel
)


# ============================================
# USERS
# ============================================
class ProfileRequest(BaseModel):
    """Complete (first call) or update the caller's profile."""
    nickname: Optional[str] = Field(None, description="Display name, required on first completion")
    email: Optional[str] = None
    profile_image_url: Optional[str] = None
    interests: Optional[List[str]] = Field(None, description="Up to 3 interest tags")


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    nickname: str
    email: Optional[str] = None
    profile_image_url: Optional[str] = None
    trust_score: int
    trust_level: TrustLevel
    interests: List[str]
    is_active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


class ScoreAdjustmentRequest(BaseModel):
    score_change: int
    reason: ScoreReason = Field(
        ScoreReason.positive_action,
        description="positive_action or time_recovery; other reasons come from their own events"
    )
    description: Optional[str] = Field(None, max_length=500)


class ScoreHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    score_change: int
    score_after: int
    reason: ScoreReason
    related_meeting_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime


# ============================================
# MEETINGS
# ============================================
class MeetingCreateRequest(BaseModel):
    """
    Ranges are checked by the meeting service so every violation comes
    back as a field-level validation error.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    meeting_date: Optional[datetime] = None
    location: Optional[str] = None
    location_detail: Optional[str] = None
    category: Optional[str] = None
    max_participants: Optional[int] = None
    interests: List[str] = Field(default_factory=list)
    participation_fee: float = 0
    gender_restriction: Optional[str] = None
    age_range_min: Optional[int] = None
    age_range_max: Optional[int] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Sunday board games",
            "description": "Casual strategy games at the corner cafe, beginners welcome.",
            "meeting_date": "2030-05-12T14:00:00Z",
            "location": "Seoul, Mapo-gu",
            "max_participants": 6,
            "interests": ["board_games"],
            "participation_fee": 5000
        }
    })


class MeetingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    host_id: str
    title: str
    description: Optional[str] = None
    meeting_date: datetime
    location: str
    location_detail: Optional[str] = None
    category: Optional[str] = None
    max_participants: int
    approved_count: int
    interests: List[str]
    participation_fee: float
    gender_restriction: GenderRestriction
    age_range_min: Optional[int] = None
    age_range_max: Optional[int] = None
    status: MeetingStatus
    created_at: datetime
    updated_at: Optional[datetime] = None


class ViewerApplication(BaseModel):
    id: int
    status: ApplicationStatus


class MeetingDetailResponse(MeetingResponse):
    host_nickname: str = ""
    user_application: Optional[ViewerApplication] = None


# ============================================
# APPLICATIONS
# ============================================
class ApplyRequest(BaseModel):
    answers: Optional[str] = Field(None, max_length=2000)


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    user_id: str
    status: ApplicationStatus
    answers: Optional[str] = None
    applied_at: datetime
    reviewed_at: Optional[datetime] = None


class ApplicantSummary(BaseModel):
    id: str
    nickname: str
    profile_image_url: Optional[str] = None
    trust_score: Optional[int] = None


class ApplicationWithApplicant(ApplicationResponse):
    applicant: ApplicantSummary


class ApplicationCancelResponse(BaseModel):
    application: ApplicationResponse
    score_entry: Optional[ScoreHistoryResponse] = None


# ============================================
# ATTENDANCE
# ============================================
class AttendanceRequest(BaseModel):
    user_id: str
    outcome: str = Field(..., description="'attended' or 'no_show'")


class AttendanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    user_id: str
    outcome: AttendanceOutcome
    cancelled_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime


class AttendanceResult(BaseModel):
    attendance: AttendanceResponse
    score_entry: ScoreHistoryResponse

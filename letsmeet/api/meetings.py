"""
Meetings Router - Meeting lifecycle, applications and attendance

Provides:
- POST /meetings: Create a meeting (trust score >= 30)
- GET /meetings: Open upcoming meetings, optional interest filter
- GET /meetings/{meeting_id}: Meeting detail, anonymous allowed
- POST /meetings/{meeting_id}/close|cancel|complete: Host transitions
- POST /meetings/{meeting_id}/applications: Apply (trust score >= 10)
- GET /meetings/{meeting_id}/applications: Host view, newest first
- POST /meetings/{meeting_id}/attendance: Host records attendance
- POST /meetings/{meeting_id}/withdraw: Approved participant withdraws
"""
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from letsmeet.dependencies import get_db, get_current_user, get_optional_user
from letsmeet.db.models import MeetingStatus
from letsmeet.schemas import (
    MeetingCreateRequest, MeetingResponse, MeetingDetailResponse,
    ApplyRequest, ApplicationResponse, ApplicationWithApplicant,
    AttendanceRequest, AttendanceResult
)
from letsmeet.services.meeting_service import meeting_service
from letsmeet.services.application_service import application_service
from letsmeet.services.attendance_service import attendance_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=MeetingResponse, status_code=201)
def create_meeting(
    request: MeetingCreateRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Create a meeting hosted by the caller.

    Each invalid field is reported as its own validation error.
    """
    return meeting_service.create_meeting(
        db=db,
        host_id=user_id,
        title=request.title,
        meeting_date=request.meeting_date,
        location=request.location,
        max_participants=request.max_participants,
        interests=request.interests,
        description=request.description,
        location_detail=request.location_detail,
        category=request.category,
        participation_fee=request.participation_fee,
        gender_restriction=request.gender_restriction,
        age_range_min=request.age_range_min,
        age_range_max=request.age_range_max
    )


@router.get("", response_model=List[MeetingResponse])
def list_meetings(
    interests: Optional[str] = Query(None, description="Comma separated interest tags"),
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Open meetings that have not started yet, soonest first."""
    tags = [t.strip() for t in interests.split(",") if t.strip()] if interests else None
    return meeting_service.list_open_meetings(db, interests=tags)


@router.get("/{meeting_id}", response_model=MeetingDetailResponse)
def get_meeting(
    meeting_id: int,
    viewer_id: Optional[str] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """
    Meeting detail.

    Visible without authentication; signed-in viewers also get the status
    of their own application.
    """
    result = meeting_service.get_meeting(db, meeting_id, viewer_id=viewer_id)
    base = MeetingResponse.model_validate(result["meeting"]).model_dump()
    return MeetingDetailResponse(
        **base,
        host_nickname=result["host_nickname"],
        user_application=result["user_application"]
    )


@router.post("/{meeting_id}/close", response_model=MeetingResponse)
def close_meeting(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Host stops accepting applications."""
    return meeting_service.transition(db, meeting_id, MeetingStatus.closed, actor_id=user_id)


@router.post("/{meeting_id}/cancel", response_model=MeetingResponse)
def cancel_meeting(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Host cancels the meeting; pending applications are cancelled too."""
    return meeting_service.transition(db, meeting_id, MeetingStatus.cancelled, actor_id=user_id)


@router.post("/{meeting_id}/complete", response_model=MeetingResponse)
def complete_meeting(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Host marks a meeting that has taken place as completed."""
    return meeting_service.transition(db, meeting_id, MeetingStatus.completed, actor_id=user_id)


@router.post("/{meeting_id}/applications", response_model=ApplicationResponse, status_code=201)
def apply_to_meeting(
    meeting_id: int,
    request: Optional[ApplyRequest] = None,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Apply to an open meeting. One application per user per meeting."""
    answers = request.answers if request else None
    return application_service.apply(db, meeting_id, user_id, answers=answers)


@router.get("/{meeting_id}/applications", response_model=List[ApplicationWithApplicant])
def list_applications(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """All applications of the caller's meeting, newest first."""
    rows = application_service.list_applications(db, meeting_id, user_id)
    return [
        ApplicationWithApplicant(
            **ApplicationResponse.model_validate(row["application"]).model_dump(),
            applicant=row["applicant"]
        )
        for row in rows
    ]


@router.post("/{meeting_id}/attendance", response_model=AttendanceResult, status_code=201)
def record_attendance(
    meeting_id: int,
    request: AttendanceRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Record whether an approved participant attended a completed meeting.

    The outcome is folded into the participant's trust score.
    """
    return attendance_service.record_attendance(
        db,
        meeting_id=meeting_id,
        user_id=request.user_id,
        outcome=request.outcome,
        host_id=user_id
    )


@router.post("/{meeting_id}/withdraw", response_model=AttendanceResult, status_code=201)
def withdraw_from_meeting(
    meeting_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Approved participant withdraws; penalty depends on hours of notice."""
    return attendance_service.withdraw(db, meeting_id, user_id)

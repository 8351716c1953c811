"""
Users Router - Caller profile and trust score ledger
"""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from letsmeet.dependencies import get_db, get_current_user, verify_api_key
from letsmeet.schemas import (
    ProfileRequest, UserResponse, ScoreAdjustmentRequest, ScoreHistoryResponse
)
from letsmeet.services.user_service import user_service
from letsmeet.services.score_service import score_service

router = APIRouter()


@router.get("/me", response_model=UserResponse)
def get_me(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Caller's profile. 404 until the profile has been completed."""
    return user_service.get_profile(db, user_id)


@router.put("/me", response_model=UserResponse)
def save_me(
    request: ProfileRequest,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Complete or update the caller's profile.

    The first call creates the profile with the initial trust score and
    requires a nickname. Later calls update only the fields sent.
    """
    return user_service.save_profile(
        db,
        user_id,
        nickname=request.nickname,
        email=request.email,
        profile_image_url=request.profile_image_url,
        interests=request.interests
    )


@router.delete("/me", response_model=UserResponse)
def deactivate_me(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft delete the caller's account."""
    return user_service.deactivate(db, user_id)


@router.get("/me/score-history", response_model=List[ScoreHistoryResponse])
def get_my_score_history(
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Trust score ledger, newest first."""
    user_service.get_profile(db, user_id)
    return score_service.get_history(db, user_id)


@router.post(
    "/{user_id}/score-adjustments",
    response_model=ScoreHistoryResponse,
    status_code=201,
    dependencies=[Depends(verify_api_key)]
)
def adjust_score(
    user_id: str,
    request: ScoreAdjustmentRequest,
    db: Session = Depends(get_db)
):
    """Administrative ledger entry (internal, API key required)."""
    return score_service.adjust(
        db,
        user_id,
        request.score_change,
        request.reason,
        description=request.description
    )

"""
Applications Router - Host review and applicant withdrawal
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from letsmeet.dependencies import get_db, get_current_user
from letsmeet.schemas import ApplicationResponse, ApplicationCancelResponse
from letsmeet.services.application_service import application_service

router = APIRouter()


@router.put("/{application_id}/approve", response_model=ApplicationResponse)
def approve_application(
    application_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Approve a pending application.

    Fails with `capacity` when the meeting has no free seat; the meeting
    closes automatically when the last seat is taken.
    """
    return application_service.approve(db, application_id, user_id)


@router.put("/{application_id}/reject", response_model=ApplicationResponse)
def reject_application(
    application_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Reject a pending application."""
    return application_service.reject(db, application_id, user_id)


@router.put("/{application_id}/cancel", response_model=ApplicationCancelResponse)
def cancel_application(
    application_id: int,
    user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Applicant withdraws their application."""
    return application_service.cancel(db, application_id, user_id)

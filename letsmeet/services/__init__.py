"""
Services package - Business logic layer
"""
from letsmeet.services.trust_gate import trust_gate
from letsmeet.services.score_service import score_service
from letsmeet.services.user_service import user_service
from letsmeet.services.attendance_service import attendance_service
from letsmeet.services.meeting_service import meeting_service
from letsmeet.services.application_service import application_service

__all__ = [
    "trust_gate",
    "score_service",
    "user_service",
    "attendance_service",
    "meeting_service",
    "application_service"
]

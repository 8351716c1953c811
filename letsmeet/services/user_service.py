"""
User Service - Profile completion, updates and soft deletion
"""
import logging
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from letsmeet.config import settings
from letsmeet.db.models import User, ScoreReason, TrustLevel
from letsmeet.errors import ConflictError, NotFoundError, ValidationFailed, InternalError
from letsmeet.services.score_service import score_service

logger = logging.getLogger(__name__)


class UserService:
    """Service for user profile operations"""

    MAX_INTERESTS = 3
    MAX_NICKNAME_LENGTH = 30

    def get_profile(self, db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found")
        return user

    def complete_profile(
        self,
        db: Session,
        user_id: str,
        nickname: Optional[str],
        email: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        interests: Optional[List[str]] = None,
        initial_score: Optional[int] = None
    ) -> User:
        """
        Create the profile on first completion.

        The starting score is written as the first ledger entry so the
        cached score and the ledger agree from the start.
        """
        nickname = self._validate_nickname(nickname)
        interests = self._validate_interests(interests or [])
        if initial_score is None:
            initial_score = settings.INITIAL_TRUST_SCORE

        if db.query(User.id).filter(User.id == user_id).first():
            raise ConflictError("Profile already completed")

        try:
            user = User(
                id=user_id,
                nickname=nickname,
                email=email,
                profile_image_url=profile_image_url,
                interests=interests,
                trust_score=0,
                trust_level=TrustLevel.restricted,
                is_active=True
            )
            db.add(user)
            db.flush()
            score_service.record_change(
                db, user_id, initial_score, ScoreReason.initial,
                description="Profile completed"
            )
            db.commit()
        except IntegrityError as e:
            db.rollback()
            logger.info(f"Profile for {user_id} already exists: {e.orig}")
            raise ConflictError("Profile already completed") from e
        except SQLAlchemyError as e:
            logger.error(f"Profile creation failed for {user_id}: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(user)
        logger.info(f"Created profile for {user_id} with score {user.trust_score}")
        return user

    def update_profile(
        self,
        db: Session,
        user_id: str,
        nickname: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        interests: Optional[List[str]] = None
    ) -> User:
        """Partial update; fields left as None are untouched"""
        user = self.get_profile(db, user_id)

        if nickname is not None:
            user.nickname = self._validate_nickname(nickname)
        if profile_image_url is not None:
            user.profile_image_url = profile_image_url
        if interests is not None:
            user.interests = self._validate_interests(interests)

        try:
            db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Profile update failed for {user_id}: {e}")
            db.rollback()
            raise InternalError() from e

        db.refresh(user)
        return user

    def save_profile(
        self,
        db: Session,
        user_id: str,
        nickname: Optional[str] = None,
        email: Optional[str] = None,
        profile_image_url: Optional[str] = None,
        interests: Optional[List[str]] = None
    ) -> User:
        """Complete the profile if missing, otherwise update it"""
        existing = db.query(User).filter(User.id == user_id).first()
        if existing is None:
            return self.complete_profile(
                db, user_id, nickname,
                email=email,
                profile_image_url=profile_image_url,
                interests=interests
            )
        return self.update_profile(
            db, user_id,
            nickname=nickname,
            profile_image_url=profile_image_url,
            interests=interests
        )

    def deactivate(self, db: Session, user_id: str) -> User:
        """Soft delete; history and hosted meetings are kept"""
        user = self.get_profile(db, user_id)
        user.is_active = False
        db.commit()
        db.refresh(user)
        logger.info(f"Deactivated user {user_id}")
        return user

    def _validate_nickname(self, nickname: Optional[str]) -> str:
        nickname = (nickname or "").strip()
        if not nickname:
            raise ValidationFailed("nickname", "Nickname is required")
        if len(nickname) > self.MAX_NICKNAME_LENGTH:
            raise ValidationFailed(
                "nickname", f"Nickname must be {self.MAX_NICKNAME_LENGTH} characters or less"
            )
        return nickname

    def _validate_interests(self, interests: List[str]) -> List[str]:
        if len(interests) > self.MAX_INTERESTS:
            raise ValidationFailed(
                "interests", f"Maximum {self.MAX_INTERESTS} interests allowed"
            )
        return list(interests)


# Singleton instance
user_service = UserService()

"""
Trust Gate - Threshold checks for hosting and applying
"""
import logging
from typing import Optional
from sqlalchemy.orm import Session

from letsmeet.config import settings
from letsmeet.db.models import User

logger = logging.getLogger(__name__)


class TrustGate:
    """Read-only authorization predicates over the persisted trust score"""

    def _score(self, db: Session, user_id: str) -> Optional[int]:
        user = db.query(User).filter(User.id == user_id).first()
        if not user or not user.is_active:
            return None
        return user.trust_score

    def can_host(self, db: Session, user_id: str) -> bool:
        score = self._score(db, user_id)
        allowed = score is not None and score >= settings.HOST_MIN_TRUST_SCORE
        if not allowed:
            logger.info(f"User {user_id} below hosting threshold (score={score})")
        return allowed

    def can_apply(self, db: Session, user_id: str) -> bool:
        score = self._score(db, user_id)
        allowed = score is not None and score >= settings.APPLY_MIN_TRUST_SCORE
        if not allowed:
            logger.info(f"User {user_id} below applying threshold (score={score})")
        return allowed


# Singleton instance
trust_gate = TrustGate()

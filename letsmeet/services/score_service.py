"""
Score Service - Append-only trust score ledger

The cached ``trust_score`` on a user is always the bounded running sum of
that user's ledger: each entry moves the score by ``score_change`` and the
result is clamped to [SCORE_MIN, SCORE_MAX]. Appending an entry and updating
the cached score happen in one transaction with the user row locked.
"""
import logging
from typing import Dict, Any, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from letsmeet.db.models import User, ScoreHistory, ScoreReason
from letsmeet.errors import NotFoundError, InternalError, ValidationFailed
from letsmeet.services.score_engine import clamp_score, trust_level
from letsmeet.timeutils import utcnow

logger = logging.getLogger(__name__)


class ScoreService:
    """Service for score ledger appends and score recomputation"""

    ADJUSTABLE_REASONS = (ScoreReason.positive_action, ScoreReason.time_recovery)

    def lock_user(self, db: Session, user_id: str) -> User:
        """
        Take the user's row lock for the rest of the caller's transaction.

        The row is written before it is read so the lock also holds on
        backends that ignore FOR UPDATE. Anything that derives a score
        change from the user's history must read it after this call.
        """
        locked = db.execute(
            update(User)
            .where(User.id == user_id)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if locked.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")

        return (
            db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def record_change(
        self,
        db: Session,
        user_id: str,
        score_change: int,
        reason: ScoreReason,
        related_meeting_id: Optional[int] = None,
        description: Optional[str] = None,
        user: Optional[User] = None
    ) -> ScoreHistory:
        """
        Append a ledger entry and fold it into the cached score.

        Runs inside the caller's transaction; the caller commits. Pass the
        user returned by lock_user when the change was computed under it.
        """
        if user is None:
            user = self.lock_user(db, user_id)

        score_after = clamp_score(user.trust_score + score_change)
        entry = ScoreHistory(
            user_id=user_id,
            score_change=score_change,
            score_after=score_after,
            reason=reason,
            related_meeting_id=related_meeting_id,
            description=description
        )
        db.add(entry)

        user.trust_score = score_after
        user.trust_level = trust_level(score_after)
        db.flush()

        logger.info(
            f"Score change for user {user_id}: {score_change:+d} ({ScoreReason(reason).value}) "
            f"-> {score_after}"
        )
        return entry

    def adjust(
        self,
        db: Session,
        user_id: str,
        score_change: int,
        reason: ScoreReason,
        description: Optional[str] = None
    ) -> ScoreHistory:
        """
        Administrative ledger credit/debit, committed on its own.

        Only reasons without an event of their own may be used here.
        """
        if reason not in self.ADJUSTABLE_REASONS:
            raise ValidationFailed(
                "reason",
                f"Reason must be one of {[r.value for r in self.ADJUSTABLE_REASONS]}"
            )

        try:
            entry = self.record_change(
                db, user_id, score_change, reason, description=description
            )
            db.commit()
            db.refresh(entry)
            return entry
        except SQLAlchemyError as e:
            logger.error(f"Score adjustment failed for user {user_id}: {e}")
            db.rollback()
            raise InternalError() from e
        except NotFoundError:
            db.rollback()
            raise

    def recompute_from_ledger(self, db: Session, user_id: str) -> int:
        """Fold the full ledger into the bounded running sum"""
        entries = (
            db.query(ScoreHistory)
            .filter(ScoreHistory.user_id == user_id)
            .order_by(ScoreHistory.id.asc())
            .all()
        )
        score = 0
        for entry in entries:
            score = clamp_score(score + entry.score_change)
        return score

    def verify_and_repair(self, db: Session, user_id: str) -> Dict[str, Any]:
        """Compare the cached score with the ledger and fix any drift"""
        try:
            user = self.lock_user(db, user_id)
        except NotFoundError:
            db.rollback()
            raise

        expected = self.recompute_from_ledger(db, user_id)
        cached = user.trust_score
        repaired = cached != expected
        if repaired:
            logger.warning(
                f"Cached trust score drifted for user {user_id}: cached={cached} ledger={expected}"
            )
            user.trust_score = expected
            user.trust_level = trust_level(expected)
        db.commit()

        return {
            "user_id": user_id,
            "cached_score": cached,
            "ledger_score": expected,
            "repaired": repaired
        }

    def get_history(self, db: Session, user_id: str) -> List[ScoreHistory]:
        """Ledger entries, newest first"""
        return (
            db.query(ScoreHistory)
            .filter(ScoreHistory.user_id == user_id)
            .order_by(ScoreHistory.created_at.desc(), ScoreHistory.id.desc())
            .all()
        )


# Singleton instance
score_service = ScoreService()

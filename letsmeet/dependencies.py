"""
FastAPI dependencies for LetsMeet core service

End-user credentials are verified upstream by the identity gateway, which
forwards the verified principal id in ``X-User-Id`` together with the
shared ``X-API-Key``. A principal is only trusted when the key matches.
"""
import hmac
import logging
from typing import Generator, Optional
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from letsmeet.db.database import SessionLocal
from letsmeet.config import settings
from letsmeet.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _api_key_valid(x_api_key: Optional[str]) -> bool:
    return bool(x_api_key) and hmac.compare_digest(x_api_key, settings.API_KEY)


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key for internal endpoints"""
    if not _api_key_valid(x_api_key):
        raise UnauthorizedError("Invalid or missing API key")
    return x_api_key


async def get_optional_user(
    x_user_id: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None)
) -> Optional[str]:
    """Verified principal id, or None for anonymous callers"""
    if not x_user_id:
        return None
    if not _api_key_valid(x_api_key):
        logger.debug("Principal header without a valid gateway key, treating as anonymous")
        return None
    return x_user_id


async def get_current_user(
    user_id: Optional[str] = Depends(get_optional_user)
) -> str:
    """Verified principal id; anonymous callers are rejected"""
    if not user_id:
        raise UnauthorizedError("Authentication required")
    return user_id

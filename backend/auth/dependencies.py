"""
FastAPI dependencies for authentication.

Resolves the bearer credential on each request to the authenticated User.
Authorization (who may touch which list, task or team) lives in auth.permissions.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db
from errors import Unauthenticated
from models import User
from auth.security import verify_token

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: Optional[str], db: Session) -> User:
    """
    Map a bearer token to its user.

    Raises:
        Unauthenticated: token missing, failing verification, carrying a malformed
            subject, or referring to a user that no longer exists
    """
    if not token or not token.strip():
        logger.info("No authentication credentials provided")
        raise Unauthenticated()

    payload = verify_token(token.strip())
    if payload is None:
        logger.info("JWT token verification failed")
        raise Unauthenticated()

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise Unauthenticated()

    # Parse user_id safely (malformed tokens should return 401, not 500)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.info(f"Invalid user_id format in token: {payload.get('sub')}")
        raise Unauthenticated()

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.info(f"User not found for id: {user_id}")
        raise Unauthenticated()

    logger.debug(f"User authenticated via JWT: {user.email}")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Extract and validate the current user from the Authorization header.

    Example:
        @app.get("/api/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    token = credentials.credentials if credentials else None
    return resolve_user_from_token(token, db)

"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration
- Login (JWT access token)
- Current user lookup
- Logout (stateless acknowledgement)
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import schemas
from database import get_db
from errors import Conflict, Unauthenticated, EMAIL_IN_USE
from models import User
from auth.security import hash_password, verify_password, create_access_token
from auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

INVALID_CREDENTIALS = "INVALID_CREDENTIALS"


@router.post("/register", response_model=schemas.UserEnvelope, status_code=status.HTTP_201_CREATED)
def register(payload: Any = Body(None), db: Session = Depends(get_db)):
    """
    Register a new user account.

    Raises:
        ValidationError: invalid email, short password or blank names (all reported together)
        Conflict(EMAIL_IN_USE): email already registered
    """
    command = schemas.parse_payload(schemas.RegisterRequest, payload)
    logger.info(f"Registration attempt for email: {command.email}")

    if db.query(User).filter(User.email == command.email).first():
        logger.info(f"Registration failed: email already exists: {command.email}")
        raise Conflict("Email already in use", code=EMAIL_IN_USE)

    user = User(
        email=command.email,
        password_hash=hash_password(command.password),
        first_name=command.first_name,
        last_name=command.last_name,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent registration of the same email won the unique constraint
        db.rollback()
        logger.info(f"Registration failed: email registered concurrently: {command.email}")
        raise Conflict("Email already in use", code=EMAIL_IN_USE)
    db.refresh(user)

    logger.info(f"User registered successfully: {user.email} (ID: {user.id})")
    return {"user": user}


@router.post("/login", response_model=schemas.LoginResponse)
def login(payload: Any = Body(None), db: Session = Depends(get_db)):
    """
    Authenticate with email and password.

    Unknown email and wrong password give the same 401 so accounts cannot be enumerated.
    """
    command = schemas.parse_payload(schemas.LoginRequest, payload)
    logger.info(f"Login attempt for email: {command.email}")

    user = db.query(User).filter(User.email == command.email).first()
    if not user or not verify_password(command.password, user.password_hash):
        logger.info(f"Login failed for email: {command.email}")
        raise Unauthenticated("Invalid credentials", code=INVALID_CREDENTIALS)

    token = create_access_token(user.id)
    logger.info(f"User logged in successfully: {user.email} (ID: {user.id})")
    return {"token": token, "user": user}


@router.get("/me", response_model=schemas.UserEnvelope)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current authenticated user information."""
    logger.debug(f"Getting user info for: {current_user.email}")
    return {"user": current_user}


@router.post("/logout", response_model=schemas.OkResponse)
def logout():
    """Tokens are stateless; the client discards its copy."""
    return {"ok": True}

"""
Authentication

Password hashing, bearer JWT access tokens and the current-user
dependency. Logout bumps the user's token_version, which invalidates every
token issued before it.
"""
from datetime import datetime, timedelta
from typing import Optional
import logging

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from checkin.config import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from checkin.database import async_session_maker
from checkin.models import UserDB
from checkin.repository import UserRepository

logger = logging.getLogger(__name__)

pwd_ctx = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

STEP_AUTH = "auth"
STEP_FACE = "face"
STEP_BLINK = "blink"
STEP_COMPLETE = "complete"


async def get_db() -> AsyncSession:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def hash_password(password: str) -> str:
    return pwd_ctx.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_ctx.verify(password, password_hash)


def create_access_token(user: UserDB, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes)
    payload = {"sub": str(user.id), "ver": user.token_version, "exp": expire}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Claims of a valid token, None if invalid or expired."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


def registration_step(has_face: bool, has_blink: bool) -> str:
    """Next enrolment step: face first, then blink."""
    if not has_face:
        return STEP_FACE
    if not has_blink:
        return STEP_BLINK
    return STEP_COMPLETE


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db)
) -> UserDB:
    """Resolve the bearer token to an active user."""
    credentials_error = HTTPException(
        status_code=401,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(token)
    if payload is None:
        raise credentials_error

    user = await UserRepository.get_by_id(db, payload["sub"])
    if user is None or not user.is_active:
        raise credentials_error
    if payload.get("ver") != user.token_version:
        logger.info(f"Rejected revoked token for user {user.id}")
        raise credentials_error

    return user

"""Survey password gate and admin token checks."""

import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, status
from jose import JWTError, jwt

from .periods import current_period

logger = logging.getLogger(__name__)

# Example .env:
# SURVEY_PASSWORD="secret"
# SESSION_SECRET="change-me"
# ADMIN_USERNAME="admin"
# ADMIN_PASSWORD="password"
SURVEY_PASSWORD = os.getenv("SURVEY_PASSWORD", "secret")
SESSION_SECRET = os.getenv("SESSION_SECRET")
if not SESSION_SECRET:
    logger.warning("SESSION_SECRET not set, using an insecure development secret.")
    SESSION_SECRET = "dev-session-secret-change-me"

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = 7

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "secret")
EXPECTED_ADMIN_TOKEN = f"static-admin-token-for-{ADMIN_USERNAME}"


def verify(candidate: str) -> bool:
    return secrets.compare_digest(
        (candidate or "").encode("utf-8"), SURVEY_PASSWORD.encode("utf-8")
    )


def verify_admin_credentials(username: str, password: str) -> bool:
    return secrets.compare_digest(
        username.encode("utf-8"), ADMIN_USERNAME.encode("utf-8")
    ) and secrets.compare_digest(password.encode("utf-8"), ADMIN_PASSWORD.encode("utf-8"))


def current_period_label(now: Optional[datetime] = None) -> str:
    return current_period(now).label


def create_access_token(now: Optional[datetime] = None) -> str:
    """Token for the survey gate, bound to the month it was issued in."""
    issued = now or datetime.now(timezone.utc)
    claims = {
        "sub": "survey",
        "period": current_period_label(issued),
        "exp": issued + timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS),
    }
    return jwt.encode(claims, SESSION_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str, now: Optional[datetime] = None) -> dict:
    """
    Returns the token's claims. Raises JWTError when the signature or
    expiry is invalid, or when the token was issued for another month.
    """
    claims = jwt.decode(token, SESSION_SECRET, algorithms=[ALGORITHM])
    if claims.get("period") != current_period_label(now):
        raise JWTError("token was issued for a previous period")
    return claims


def _bearer_token(authorization: Optional[str]) -> str:
    if authorization is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated: token required.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format. Expected: 'Bearer <token>'",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return parts[1]


async def require_survey_access(authorization: Optional[str] = Header(None)):
    token = _bearer_token(authorization)
    try:
        return decode_access_token(token)
    except JWTError as e:
        logger.info("Survey access denied: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def verify_admin_token(authorization: Optional[str] = Header(None)):
    """
    Checks the admin token in the Authorization header. A single static
    token derived from ADMIN_USERNAME is expected.
    """
    token = _bearer_token(authorization)
    if not secrets.compare_digest(token.encode("utf-8"), EXPECTED_ADMIN_TOKEN.encode("utf-8")):
        logger.warning("Admin access denied: invalid token received")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return {"username": ADMIN_USERNAME, "token_status": "verified"}

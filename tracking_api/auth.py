# path: tracking_api/auth.py
"""Authentication utilities using JWT and Argon2.

This module encapsulates password hashing, token creation for tooling and
tests, and the FastAPI dependency that verifies bearer tokens. Failures are
raised as `Unauthorized` and rendered as 401 by the exception handler in
`main.py`.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from .config import Settings
from .errors import Unauthorized


pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(
    settings: Settings,
    *,
    subject: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed JWT for the given subject and role.

    :param settings: Settings providing the signing key and default lifetime.
    :param subject: Unique identifier of the user (the uid).
    :param role: The role assigned to the user (admin, operator, viewer).
    :param expires_delta: Duration after which the token expires.
    :return: Encoded JWT string.
    """
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.token_lifetime_hours)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "role": role,
        "exp": now + expires_delta,
        "iat": now,
    }
    return jwt.encode(payload, settings.secret_key, algorithm="HS256")


async def authenticate_token(settings: Settings, users, token: Optional[str]) -> Tuple[str, str]:
    """Verify a JWT and return (uid, role) of the user it was issued for.

    The user referenced by the token must still exist in the credential store.
    """
    if not token:
        raise Unauthorized("Not Authenticated")
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.PyJWTError:
        raise Unauthorized("Invalid token")
    uid = payload.get("sub")
    role = payload.get("role")
    if uid is None or role is None:
        raise Unauthorized("Invalid token payload")
    user = await users.find_user_by_id(uid)
    if user is None:
        raise Unauthorized("User not found")
    return uid, user.role.value


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Tuple[str, str]:
    """FastAPI dependency that extracts and validates a bearer JWT."""
    token = credentials.credentials if credentials else None
    return await authenticate_token(request.app.state.settings, request.app.state.users, token)

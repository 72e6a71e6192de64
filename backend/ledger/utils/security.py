"""
Access token helpers.

Tokens are HS256 JWTs whose ``sub`` claim is the user id. Issuing tokens is
left to the CLI; the API only verifies them.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from .config import AppConfig


def create_access_token(
    user_id: str,
    config: AppConfig,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed access token for a user."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.access_token_expire_minutes)
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"sub": str(user_id), "exp": expire, "type": "access"}
    return jwt.encode(to_encode, config.jwt_secret, algorithm=config.jwt_algorithm)


def decode_access_token(token: str, config: AppConfig) -> Optional[str]:
    """
    Verify a token and return the user id it carries.

    Returns None for a bad signature, an expired token or a token of the
    wrong type.
    """
    try:
        payload = jwt.decode(token, config.jwt_secret, algorithms=[config.jwt_algorithm])
    except JWTError:
        return None
    if payload.get("type") != "access":
        return None
    subject = payload.get("sub")
    return str(subject) if subject else None


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

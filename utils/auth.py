"""
Bearer token helpers. Tokens are issued by the identity service; this
backend only needs to read them (create_access_token exists for local
development and tests).
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from utils.errors import AuthenticationFailure


def create_access_token(user_id: str, role: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: Optional[str]) -> dict:
    """Validate a token and return its claims. Expiry is checked by jose."""
    if not token:
        raise AuthenticationFailure("Not authorized, no token")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationFailure("Not authorized, invalid or expired token")
    if not payload.get("sub"):
        raise AuthenticationFailure("Not authorized, invalid token")
    return payload


def token_from_header(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


async def authenticate(store, token: Optional[str]) -> tuple[dict, dict]:
    """Resolve a token to ``(user, claims)``, rejecting unknown and blocked users."""
    claims = decode_token(token)
    user = await store.find_user_by_id(claims["sub"])
    if not user:
        raise AuthenticationFailure("Not authorized, user not found")
    if user.get("is_blocked"):
        raise AuthenticationFailure("Your account has been blocked")
    return user, claims

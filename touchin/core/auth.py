from typing import Any, Dict, Optional

from fastapi import Header, HTTPException
from jose import jwt, JWTError
from loguru import logger

from touchin.core.config import AUTH_ALLOW_ANONYMOUS, AUTH_JWT_SECRET


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _get_bearer_token(authorization: str) -> str:
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")

    token = parts[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    return token


def _verify_jwt_hs256(token: str, secret: str) -> Dict[str, Any]:
    if not secret:
        raise HTTPException(status_code=500, detail="AUTH_JWT_SECRET not set")

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def resolve_user_id(
    authorization: Optional[str],
    anonymous_id: Optional[str],
    secret: str = AUTH_JWT_SECRET,
    allow_anonymous: bool = AUTH_ALLOW_ANONYMOUS,
) -> str:
    """Resolve the caller from a bearer token, falling back to an anonymous session id."""

    if authorization:
        payload = _verify_jwt_hs256(_get_bearer_token(authorization), secret)
        sub = payload.get("sub")
        if not sub:
            raise HTTPException(status_code=401, detail="Token missing sub claim")
        return str(sub)

    if allow_anonymous and anonymous_id and anonymous_id.strip():
        logger.debug(f"[auth] anonymous session {anonymous_id.strip()}")
        return anonymous_id.strip()

    raise HTTPException(status_code=401, detail="Missing Authorization header")


# ------------------------------------------------------------
# Main Dependency
# ------------------------------------------------------------
def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    x_anonymous_id: Optional[str] = Header(default=None),
) -> str:
    return resolve_user_id(authorization, x_anonymous_id)

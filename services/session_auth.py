# services/session_auth.py
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from config.settings import Settings
from database import get_db
from services.errors import AuthenticationError
from services.user_directory import AuthenticatedUser, UserDirectory

# ========================
# Config
# ========================

ALGORITHM = "HS256"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_expires_in(value: str) -> timedelta:
    """Parse lifetimes like ``7d``, ``12h``, ``30m`` or a bare number of seconds."""
    match = _DURATION_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid token lifetime: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# ========================
# JWT helpers
# ========================

def create_session_token(user_id: str, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    expire = now + parse_expires_in(settings.jwt_expires_in)
    claims = {"sub": str(user_id), "iat": int(now.timestamp()), "exp": int(expire.timestamp())}
    return jwt.encode(claims, settings.jwt_secret, algorithm=ALGORITHM)


def decode_session_token(token: str, settings: Settings) -> Dict[str, Any]:
    """Decode & verify a session JWT. Raises AuthenticationError on failure."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationError(
            "Invalid or expired token",
            code="INVALID_TOKEN",
        )


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        raise AuthenticationError("Access token is required")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise AuthenticationError("Access token is required")
    return token


# ========================
# User dependencies
# ========================

def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    payload = decode_session_token(_get_bearer_token(request), settings)
    sub = payload.get("sub")
    if not sub:
        raise AuthenticationError("Invalid token payload", code="INVALID_TOKEN")

    user = UserDirectory(db).get_user(str(sub))
    if user is None:
        raise AuthenticationError("Token is invalid or user not found", code="INVALID_TOKEN")
    return user

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from config.settings import Settings
from database import get_db
from middleware.rate_limit import rate_limited
from schemas.plaid import LoginRequest
from services.errors import AuthenticationError
from services.session_auth import create_session_token, get_current_user, get_settings
from services.user_directory import AuthenticatedUser, UserDirectory

logger = logging.getLogger(__name__)
router = APIRouter(tags=["auth"])


@router.post("/auth/login")
@router.post("/api/auth/login")
@rate_limited
def login(
    request: Request,
    body: LoginRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = UserDirectory(db).find_user(str(body.userId), body.email)
    if user is None:
        raise AuthenticationError(
            "User not found or invalid credentials",
            code="USER_NOT_FOUND",
        )

    token = create_session_token(user.id, settings)
    logger.info("session_issued")
    return {
        "token": token,
        "user": user.to_dict(),
        "expires_in": settings.jwt_expires_in,
    }


@router.get("/auth/validate")
@router.get("/api/auth/validate")
@rate_limited
def validate(request: Request, user: AuthenticatedUser = Depends(get_current_user)):
    return {"valid": True, "user": user.to_dict()}

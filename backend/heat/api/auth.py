from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field, field_validator
from ..config import Settings
from ..database import get_db
from ..dependencies import get_current_user, get_settings
from ..models import User
from ..services.errors import HeatError, to_http_exception
from ..services.session_manager import (
    create_session,
    create_session_cookie,
    delete_session,
    delete_session_cookie,
)
from ..services.user_service import authenticate_user, create_user_with_password
from ..utils.common import normalize_email
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


# Pydantic models for request bodies
class UserLogin(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return normalize_email(v)


class UserSignup(BaseModel):
    email: str
    password: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return normalize_email(v)


def user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "hasPreferences": bool(user.default_preferences),
    }


def start_session(db: Session, user: User, response: Response, settings: Settings) -> None:
    """Create a session row and attach its cookie to the response"""
    session = create_session(db, user.id, settings.session_expiry_days)
    response.headers.append(
        "set-cookie",
        create_session_cookie(
            session.id,
            session.expires_at,
            secure=settings.secure_cookies,
            cookie_name=settings.session_cookie_name,
        ),
    )


@router.post("/login")
async def login(
    credentials: UserLogin,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Log in with email and password"""
    try:
        user = authenticate_user(db, credentials.email, credentials.password)
        if not user:
            logger.warning(f"Failed login attempt for {credentials.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )

        start_session(db, user, response, settings)
        logger.info(f"User logged in: {user.email}")

        return {"success": True, "user": user_summary(user)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    user_data: UserSignup,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Create an account and log straight in"""
    try:
        user = create_user_with_password(db, user_data.email, user_data.name, user_data.password)
        start_session(db, user, response, settings)
        return {"success": True, "user": user_summary(user)}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Signup error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """End the current session; always clears the cookie"""
    try:
        session_id = request.cookies.get(settings.session_cookie_name)
        if session_id:
            delete_session(db, session_id)
            logger.info("Session deleted at logout")

        response.headers.append(
            "set-cookie",
            delete_session_cookie(secure=settings.secure_cookies, cookie_name=settings.session_cookie_name),
        )
        return {"success": True}
    except Exception as e:
        logger.error(f"Logout error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the logged-in user"""
    data = user_summary(current_user)
    data.update({
        "role": current_user.role,
        "emailVerified": current_user.email_verified,
        "avatarUrl": current_user.avatar_url,
    })
    return {"user": data}

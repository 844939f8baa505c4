from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel, Field, field_validator
from ..config import Settings
from ..database import get_db
from ..dependencies import get_current_user, get_settings
from ..models import User
from ..services.errors import HeatError, to_http_exception
from ..services.session_manager import delete_session_cookie
from ..services.user_service import (
    change_password,
    delete_own_account,
    update_user_preferences,
    update_user_profile,
)
from ..utils.common import normalize_email
from ..utils.preferences import UserPreferences
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return normalize_email(v) if v is not None else v


class PasswordChange(BaseModel):
    currentPassword: str
    newPassword: str = Field(..., min_length=8, max_length=128)


class AccountDelete(BaseModel):
    password: Optional[str] = None


# ============================================================
# PROFILE
# ============================================================

@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return {
        "id": current_user.id,
        "email": current_user.email,
        "name": current_user.name,
        "avatarUrl": current_user.avatar_url,
        "preferences": current_user.default_preferences,
        "emailVerified": current_user.email_verified,
        "role": current_user.role,
        "createdAt": current_user.created_at,
    }


@router.patch("/profile")
async def update_profile(
    profile: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change name and/or email; a new email must be verified again"""
    try:
        user = update_user_profile(db, current_user, name=profile.name, email=profile.email)
        return {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "avatarUrl": user.avatar_url,
        }
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Profile update error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/profile")
async def delete_profile(
    response: Response,
    body: Optional[AccountDelete] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Delete the caller's account and everything it owns"""
    try:
        if body is None or not body.password:
            raise HTTPException(status_code=400, detail="Password required")

        delete_own_account(db, current_user, body.password)
        response.headers.append(
            "set-cookie",
            delete_session_cookie(secure=settings.secure_cookies, cookie_name=settings.session_cookie_name),
        )
        return {"success": True}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Account deletion error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/profile/password")
async def update_password(
    passwords: PasswordChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        change_password(db, current_user, passwords.currentPassword, passwords.newPassword)
        return {"success": True}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Password change error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")


# ============================================================
# PREFERENCES
# ============================================================

@router.get("/preferences")
async def get_preferences(current_user: User = Depends(get_current_user)):
    return {"preferences": current_user.default_preferences or None}


@router.post("/preferences")
async def save_preferences(
    preferences: UserPreferences,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Save the defaults applied to new stories"""
    try:
        stored = preferences.to_stored()
        update_user_preferences(db, current_user, stored)
        return {"success": True, "preferences": stored}
    except Exception as e:
        logger.error(f"Preferences save error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

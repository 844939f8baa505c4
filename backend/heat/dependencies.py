from dataclasses import dataclass
from typing import Iterable, Optional
import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .config import Settings
from .database import get_db
from .models import User, UserRole, UserSession
from .services.scene_generation import SceneGenerator
from .services.session_manager import get_session_from_request, get_user_from_session

logger = logging.getLogger(__name__)

UNAUTHORIZED = "Unauthorized - Please log in"
USER_NOT_FOUND = "Unauthorized - User not found"
FORBIDDEN = "Forbidden - You do not have permission to access this resource"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_scene_generator(request: Request) -> Optional[SceneGenerator]:
    return getattr(request.app.state, "scene_generator", None)


def get_current_session(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UserSession:
    """Session behind the request's cookie, 401 when there is none"""
    session = get_session_from_request(db, request, settings.session_cookie_name)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return session


def get_current_user(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> User:
    user = get_user_from_session(db, session)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


@dataclass
class AuthContext:
    """Who is calling an admin endpoint"""
    user_id: str
    role: UserRole
    user: User


def has_role(role: UserRole, allowed: Iterable[UserRole]) -> bool:
    """Plain membership test; roles do not imply one another"""
    return role in set(allowed)


def require_role(*roles: UserRole):
    """Build a dependency that admits only users holding one of ``roles``"""
    allowed = frozenset(roles)

    def dependency(
        request: Request,
        db: Session = Depends(get_db),
        settings: Settings = Depends(get_settings),
    ) -> AuthContext:
        session = get_session_from_request(db, request, settings.session_cookie_name)
        if session is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=UNAUTHORIZED)

        user = get_user_from_session(db, session)
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=USER_NOT_FOUND)

        if not has_role(user.role, allowed):
            logger.warning(f"User {user.id} ({user.role.value}) denied access to {request.url.path}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=FORBIDDEN)

        return AuthContext(user_id=user.id, role=user.role, user=user)

    return dependency


require_admin = require_role(UserRole.ADMIN)
require_editor_or_admin = require_role(UserRole.EDITOR, UserRole.ADMIN)
require_auth = require_role(UserRole.USER, UserRole.EDITOR, UserRole.ADMIN)

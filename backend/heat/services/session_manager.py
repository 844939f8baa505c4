"""
Session Manager

Issues, validates and expires the opaque session tokens kept in the
HTTP-only ``session_id`` cookie. Each token maps to one row in the
``sessions`` table; a user may hold any number of concurrent sessions.
There is no renewal or rotation: a session lives until it expires or is
deleted at logout.
"""
import logging
import secrets
from datetime import timedelta, timezone
from email.utils import format_datetime
from http.cookies import SimpleCookie
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from ..models import User, UserSession
from ..utils.common import utcnow

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session_id"
SESSION_EXPIRY_DAYS = 30


def generate_session_id() -> str:
    """Cryptographically secure, URL-safe token (32 random bytes)"""
    return secrets.token_urlsafe(32)


def create_session(db: Session, user_id: str, expiry_days: int = SESSION_EXPIRY_DAYS) -> UserSession:
    """Create and persist a new session for a user"""
    # Cookie Expires has one-second resolution, keep the row in step with it
    expires_at = (utcnow() + timedelta(days=expiry_days)).replace(microsecond=0)

    session = UserSession(
        id=generate_session_id(),
        user_id=user_id,
        expires_at=expires_at,
    )
    db.add(session)
    db.commit()
    db.refresh(session)

    logger.info(f"Created session for user {user_id}, expires {expires_at.isoformat()}")
    return session


def get_session(db: Session, session_id: str) -> Optional[UserSession]:
    """Return the session if it exists and has not expired"""
    if not session_id:
        return None

    return db.query(UserSession).filter(
        UserSession.id == session_id,
        UserSession.expires_at > utcnow(),
    ).first()


def get_session_from_request(
    db: Session,
    request: Request,
    cookie_name: str = SESSION_COOKIE_NAME,
) -> Optional[UserSession]:
    """Resolve the request's session cookie. Never raises; ``None`` means unauthenticated."""
    session_id = request.cookies.get(cookie_name)
    if not session_id:
        return None

    return get_session(db, session_id)


def get_user_from_session(db: Session, session: UserSession) -> Optional[User]:
    return db.query(User).filter(User.id == session.user_id).first()


def delete_session(db: Session, session_id: str) -> None:
    """Delete a session (logout)"""
    db.query(UserSession).filter(UserSession.id == session_id).delete(synchronize_session=False)
    db.commit()


def delete_user_sessions(db: Session, user_id: str) -> int:
    """Delete every session a user holds"""
    deleted = db.query(UserSession).filter(UserSession.user_id == user_id).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Deleted {deleted} session(s) for user {user_id}")
    return deleted


def cleanup_expired_sessions(db: Session) -> int:
    """Delete expired sessions; not scheduled, run from the maintenance CLI"""
    deleted = db.query(UserSession).filter(UserSession.expires_at <= utcnow()).delete(synchronize_session=False)
    db.commit()
    return deleted


def _cookie_header(name: str, value: str, secure: bool, **attributes) -> str:
    cookie = SimpleCookie()
    cookie[name] = value
    morsel = cookie[name]
    morsel["path"] = "/"
    morsel["httponly"] = True
    morsel["samesite"] = "Lax"
    if secure:
        morsel["secure"] = True
    for key, attr_value in attributes.items():
        morsel[key] = attr_value
    return morsel.OutputString()


def format_cookie_expires(expires_at) -> str:
    """Format a naive-UTC datetime the way the Expires attribute wants it"""
    return format_datetime(expires_at.replace(tzinfo=timezone.utc), usegmt=True)


def create_session_cookie(
    session_id: str,
    expires_at,
    secure: bool = True,
    cookie_name: str = SESSION_COOKIE_NAME,
) -> str:
    """Build the Set-Cookie header value for a session"""
    return _cookie_header(
        cookie_name,
        session_id,
        secure,
        expires=format_cookie_expires(expires_at),
    )


def delete_session_cookie(secure: bool = True, cookie_name: str = SESSION_COOKIE_NAME) -> str:
    """Build the Set-Cookie header value that clears the session cookie"""
    return _cookie_header(cookie_name, "", secure, **{"max-age": 0})

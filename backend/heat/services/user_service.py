"""
User queries: lookups, signup, profile/preferences updates and the
admin-side user management (every admin mutation is audited).
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..models import AuditEntityType, User, UserRole
from ..utils.common import utcnow
from ..utils.security import hash_password, validate_password_strength, verify_password
from .audit_service import create_audit_log, extract_changes
from .errors import ConflictError, DomainValidationError, NotFoundError, UnauthorizedError
from .session_manager import delete_user_sessions

logger = logging.getLogger(__name__)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_user_with_password(db: Session, email: str, name: str, password: str, role: UserRole = UserRole.USER) -> User:
    """Create an email/password account"""
    if get_user_by_email(db, email):
        raise ConflictError("Email already in use")

    problems = validate_password_strength(password)
    if problems:
        raise DomainValidationError("Password does not meet requirements", details=problems)

    user = User(
        email=email.strip().lower(),
        name=name,
        hashed_password=hash_password(password),
        email_verified=False,
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"New user registered: {user.email} ({user.role.value})")
    return user


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """Return the user when the email/password pair matches, otherwise ``None``"""
    user = get_user_by_email(db, email)
    if not user or not user.hashed_password:
        return None
    if not verify_password(user.hashed_password, password):
        return None
    return user


def update_user_preferences(db: Session, user: User, preferences: Dict[str, Any]) -> User:
    user.default_preferences = preferences
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    return user


def update_user_profile(db: Session, user: User, name: Optional[str] = None, email: Optional[str] = None) -> User:
    """Update name/email; a new email must be unused and resets verification"""
    if name is not None:
        user.name = name

    if email is not None:
        normalized = email.strip().lower()
        if normalized != user.email:
            existing = get_user_by_email(db, normalized)
            if existing and existing.id != user.id:
                raise ConflictError("Email already in use")
            user.email = normalized
            user.email_verified = False

    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not user.hashed_password:
        raise DomainValidationError("This account does not use password authentication")

    if not verify_password(user.hashed_password, current_password):
        raise UnauthorizedError("Current password is incorrect")

    problems = validate_password_strength(new_password)
    if problems:
        raise DomainValidationError("Password does not meet requirements", details=problems)

    user.hashed_password = hash_password(new_password)
    user.updated_at = utcnow()
    db.commit()
    logger.info(f"Password changed for user {user.id}")


def delete_own_account(db: Session, user: User, password: str) -> None:
    """Delete the caller's account; password accounts must confirm with their password"""
    if user.hashed_password and not verify_password(user.hashed_password, password):
        raise UnauthorizedError("Invalid password")

    user_id = user.id
    delete_user_sessions(db, user_id)
    db.delete(user)
    db.commit()
    logger.info(f"User {user_id} deleted their account")


# ============================================================
# ADMIN USER MANAGEMENT
# ============================================================

def _filtered_users(db: Session, role: Optional[UserRole] = None, search: Optional[str] = None):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if search:
        term = f"%{search.lower()}%"
        query = query.filter(or_(func.lower(User.email).like(term), func.lower(User.name).like(term)))
    return query


def get_all_users(
    db: Session,
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[User]:
    query = _filtered_users(db, role, search).order_by(User.created_at.desc())
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def get_user_count(db: Session, role: Optional[UserRole] = None, search: Optional[str] = None) -> int:
    return _filtered_users(db, role, search).count()


def update_user(db: Session, user_id: str, updates: Dict[str, Any], admin_user_id: str) -> User:
    """Admin update of email/name/role"""
    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    if "email" in updates and updates["email"] is not None:
        updates["email"] = updates["email"].strip().lower()
        if updates["email"] != user.email and get_user_by_email(db, updates["email"]):
            raise ConflictError("Email already in use")

    old_values = {key: getattr(user, key) for key in updates}
    for key, value in updates.items():
        setattr(user, key, value)
    user.updated_at = utcnow()

    create_audit_log(
        db,
        user_id=admin_user_id,
        action="update_user",
        entity_type=AuditEntityType.USER,
        entity_id=user.id,
        changes=extract_changes(old_values, updates),
    )
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: str, admin_user_id: str) -> None:
    if user_id == admin_user_id:
        raise DomainValidationError("You cannot delete your own account")

    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    snapshot = {"email": user.email, "name": user.name, "role": user.role.value}
    db.delete(user)
    create_audit_log(
        db,
        user_id=admin_user_id,
        action="delete_user",
        entity_type=AuditEntityType.USER,
        entity_id=user_id,
        changes={"deleted": snapshot},
    )
    db.commit()


def get_user_count_by_role(db: Session) -> Dict[str, int]:
    rows = db.query(User.role, func.count(User.id)).group_by(User.role).all()
    return {role.value: count for role, count in rows}

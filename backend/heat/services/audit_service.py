"""
Audit log helpers.

Every editor/admin mutation appends one ``AuditLog`` row. ``create_audit_log``
only adds the row to the session; the caller commits it together with the
change it describes.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from ..models import AuditEntityType, AuditLog
from ..utils.common import utcnow

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90


def extract_changes(old: Optional[Dict[str, Any]], new: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Field-by-field diff as ``{field: {"old": ..., "new": ...}}``"""
    if old is None:
        return {key: {"old": None, "new": value} for key, value in new.items()}

    return {
        key: {"old": old.get(key), "new": value}
        for key, value in new.items()
        if old.get(key) != value
    }


def create_audit_log(
    db: Session,
    user_id: str,
    action: str,
    entity_type: AuditEntityType,
    entity_id: str,
    changes: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        changes=changes or None,
    )
    db.add(entry)
    logger.info(f"Audit: user {user_id} {action} {entity_type.value}:{entity_id}")
    return entry


def _filtered_query(
    db: Session,
    user_id: Optional[str] = None,
    entity_type: Optional[AuditEntityType] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
):
    query = db.query(AuditLog)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if action:
        query = query.filter(AuditLog.action == action)
    return query


def get_audit_logs(
    db: Session,
    user_id: Optional[str] = None,
    entity_type: Optional[AuditEntityType] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[AuditLog]:
    """Newest first, with the acting user loaded for email/name"""
    query = _filtered_query(db, user_id, entity_type, entity_id, action).options(
        joinedload(AuditLog.user)
    ).order_by(AuditLog.created_at.desc())

    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)

    return query.all()


def get_audit_log_count(
    db: Session,
    user_id: Optional[str] = None,
    entity_type: Optional[AuditEntityType] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
) -> int:
    return _filtered_query(db, user_id, entity_type, entity_id, action).count()


def get_entity_audit_logs(db: Session, entity_type: AuditEntityType, entity_id: str, limit: int = 50) -> List[AuditLog]:
    return get_audit_logs(db, entity_type=entity_type, entity_id=entity_id, limit=limit)


def cleanup_old_audit_logs(db: Session, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
    """Delete audit logs older than the retention period; returns the number removed"""
    if retention_days <= 0:
        raise ValueError("retention_days must be positive")

    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.query(AuditLog).filter(AuditLog.created_at < cutoff).delete(synchronize_session=False)
    db.commit()
    logger.info(f"Deleted {deleted} audit log(s) older than {retention_days} days")
    return deleted

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import AuditEntityType, NovelTemplate, Trope
from ..utils.common import utcnow
from .audit_service import create_audit_log, extract_changes
from .errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def get_all_tropes(db: Session) -> List[Trope]:
    return db.query(Trope).order_by(Trope.label.asc()).all()


def get_trope_by_id(db: Session, trope_id: str) -> Optional[Trope]:
    return db.query(Trope).filter(Trope.id == trope_id).first()


def get_trope_by_key(db: Session, key: str) -> Optional[Trope]:
    return db.query(Trope).filter(Trope.key == key).first()


def get_tropes_by_keys(db: Session, keys: List[str]) -> List[Trope]:
    if not keys:
        return []
    return db.query(Trope).filter(Trope.key.in_(keys)).all()


def validate_trope_keys(db: Session, keys: List[str]) -> Tuple[bool, List[str]]:
    """Check keys against the trope table; returns ``(valid, invalid_keys)``"""
    if not keys:
        return False, []

    known = {trope.key for trope in get_tropes_by_keys(db, keys)}
    invalid = [key for key in keys if key not in known]
    return not invalid, invalid


def _template_trope_counts(db: Session) -> Dict[str, int]:
    # base_tropes is a JSON list, so usage is tallied here rather than in SQL
    counts: Dict[str, int] = {}
    for (base_tropes,) in db.query(NovelTemplate.base_tropes).all():
        for key in base_tropes or []:
            counts[key] = counts.get(key, 0) + 1
    return counts


def get_trope_usage_stats(db: Session) -> List[Dict[str, Any]]:
    counts = _template_trope_counts(db)
    stats = []
    for trope in get_all_tropes(db):
        data = trope.to_dict()
        data["usageCount"] = counts.get(trope.key, 0)
        stats.append(data)
    return stats


def create_trope(db: Session, key: str, label: str, user_id: str, description: Optional[str] = None) -> Trope:
    if get_trope_by_key(db, key):
        raise ConflictError(f'Trope with key "{key}" already exists')

    trope = Trope(key=key, label=label, description=description or None)
    db.add(trope)
    db.flush()

    # Tropes have no audit entity type of their own; they are catalog data like templates
    create_audit_log(
        db,
        user_id=user_id,
        action="create_trope",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=trope.id,
        changes={"created": {"key": key, "label": label, "description": description}},
    )
    db.commit()
    db.refresh(trope)
    return trope


def update_trope(db: Session, trope_id: str, updates: Dict[str, Any], user_id: str) -> Trope:
    trope = get_trope_by_id(db, trope_id)
    if not trope:
        raise NotFoundError("Trope not found")

    new_key = updates.get("key")
    if new_key and new_key != trope.key and get_trope_by_key(db, new_key):
        raise ConflictError(f'Trope with key "{new_key}" already exists')

    old_values = {field: getattr(trope, field) for field in updates}
    for field, value in updates.items():
        setattr(trope, field, value)
    trope.updated_at = utcnow()

    create_audit_log(
        db,
        user_id=user_id,
        action="update_trope",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=trope.id,
        changes=extract_changes(old_values, updates),
    )
    db.commit()
    db.refresh(trope)
    return trope


def delete_trope(db: Session, trope_id: str, user_id: str) -> None:
    trope = get_trope_by_id(db, trope_id)
    if not trope:
        raise NotFoundError("Trope not found")

    in_use = _template_trope_counts(db).get(trope.key, 0)
    if in_use:
        raise ConflictError(
            f'Cannot delete trope "{trope.label}" because it is used by {in_use} template(s)'
        )

    snapshot = {"key": trope.key, "label": trope.label}
    db.delete(trope)
    create_audit_log(
        db,
        user_id=user_id,
        action="delete_trope",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=trope_id,
        changes={"deleted": snapshot},
    )
    db.commit()
    logger.info(f"Trope {snapshot['key']} deleted by {user_id}")

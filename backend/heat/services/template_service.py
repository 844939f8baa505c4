"""
Novel template catalog.

Public reads only ever see ``published`` templates; the editor/admin side sees
every status. Each mutation writes its audit entry in the same commit as the
change itself.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from ..models import AuditEntityType, ChoicePoint, NovelTemplate, TemplateStatus, UserStory
from ..utils.common import utcnow
from .audit_service import create_audit_log, extract_changes
from .errors import ConflictError, DomainValidationError, NotFoundError
from .trope_service import validate_trope_keys

logger = logging.getLogger(__name__)

MIN_ESTIMATED_SCENES = 1
MAX_ESTIMATED_SCENES = 100
MIN_CHOICE_OPTIONS = 2
MAX_CHOICE_OPTIONS = 4
OPTION_FIELDS = ("id", "text", "tone", "impact")

SORTABLE_FIELDS = {
    "title": NovelTemplate.title,
    "status": NovelTemplate.status,
    "estimated_scenes": NovelTemplate.estimated_scenes,
    "created_at": NovelTemplate.created_at,
    "updated_at": NovelTemplate.updated_at,
}


# ============================================================
# READS
# ============================================================

def get_all_templates(db: Session) -> List[NovelTemplate]:
    return db.query(NovelTemplate).order_by(NovelTemplate.created_at.desc()).all()


def get_template_by_id(db: Session, template_id: str) -> Optional[NovelTemplate]:
    return db.query(NovelTemplate).filter(NovelTemplate.id == template_id).first()


def get_template_with_choice_points(db: Session, template_id: str) -> Optional[NovelTemplate]:
    return db.query(NovelTemplate).options(
        selectinload(NovelTemplate.choice_points)
    ).filter(NovelTemplate.id == template_id).first()


def get_templates_by_status(db: Session, status: TemplateStatus) -> List[NovelTemplate]:
    return db.query(NovelTemplate).filter(
        NovelTemplate.status == status
    ).order_by(NovelTemplate.created_at.desc()).all()


def get_published_templates(db: Session) -> List[NovelTemplate]:
    return get_templates_by_status(db, TemplateStatus.PUBLISHED)


def find_published_templates(
    db: Session,
    tropes: Optional[List[str]] = None,
    search: Optional[str] = None,
) -> List[NovelTemplate]:
    """Published templates matching any of ``tropes`` and/or containing ``search``"""
    query = db.query(NovelTemplate).filter(NovelTemplate.status == TemplateStatus.PUBLISHED)

    if search:
        term = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(NovelTemplate.title).like(term),
            func.lower(NovelTemplate.description).like(term),
        ))

    templates = query.order_by(NovelTemplate.created_at.desc()).all()

    if tropes:
        wanted = set(tropes)
        templates = [t for t in templates if wanted.intersection(t.base_tropes or [])]

    return templates


def get_templates_paginated(
    db: Session,
    page: int = 1,
    limit: int = 10,
    status: Optional[TemplateStatus] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Tuple[List[NovelTemplate], int]:
    """One page of templates plus the total matching count"""
    query = db.query(NovelTemplate)
    if status:
        query = query.filter(NovelTemplate.status == status)

    total = query.count()

    column = SORTABLE_FIELDS[sort_by]
    query = query.order_by(column.asc() if sort_order == "asc" else column.desc())
    templates = query.offset((page - 1) * limit).limit(limit).all()

    return templates, total


def get_template_count_by_status(db: Session) -> Dict[str, int]:
    rows = db.query(NovelTemplate.status, func.count(NovelTemplate.id)).group_by(NovelTemplate.status).all()
    counts = {status.value: 0 for status in TemplateStatus}
    for status, count in rows:
        counts[status.value] = count
    counts["total"] = sum(counts.values())
    return counts


# ============================================================
# VALIDATION
# ============================================================

def validate_choice_points(choice_points: List[Dict[str, Any]], estimated_scenes: int) -> None:
    """Raise DomainValidationError unless the choice points fit the template"""
    max_choice_points = estimated_scenes - 1
    if len(choice_points) > max_choice_points:
        raise DomainValidationError(
            f"Too many choice points. Maximum allowed is {max_choice_points} (scenes - 1)"
        )

    seen = set()
    for cp in choice_points:
        scene_number = cp["scene_number"]
        if scene_number in seen:
            raise DomainValidationError(f"Duplicate choice point for scene {scene_number}")
        seen.add(scene_number)

        # the last scene ends the story, so it never carries a choice
        if not 1 <= scene_number <= max_choice_points:
            raise DomainValidationError(
                f"Choice point at scene {scene_number} is outside scenes 1-{max_choice_points}"
            )

        if not str(cp.get("prompt_text", "")).strip():
            raise DomainValidationError("All choice points must have a prompt text")

        options = cp.get("options") or []
        if not MIN_CHOICE_OPTIONS <= len(options) <= MAX_CHOICE_OPTIONS:
            raise DomainValidationError("Each choice point must have 2-4 options")
        for option in options:
            for field in OPTION_FIELDS:
                if field == "id":
                    continue
                if not str(option.get(field, "")).strip():
                    raise DomainValidationError(f"Option {field} is required")


def _validate_template_fields(db: Session, data: Dict[str, Any]) -> None:
    estimated = data.get("estimated_scenes")
    if estimated is not None and not MIN_ESTIMATED_SCENES <= estimated <= MAX_ESTIMATED_SCENES:
        raise DomainValidationError("Estimated scenes must be between 1 and 100")

    if "base_tropes" in data:
        valid, invalid = validate_trope_keys(db, data["base_tropes"])
        if not valid:
            if not invalid:
                raise DomainValidationError("At least one trope is required")
            raise DomainValidationError(f"Invalid trope(s): {', '.join(invalid)}")


def _check_scene_count_change(db: Session, template: NovelTemplate, estimated_scenes: int) -> None:
    """A new scene count must still fit the choice points and every reader's position"""
    last_choice_scene = estimated_scenes - 1
    if len(template.choice_points) > last_choice_scene or any(
        cp.scene_number > last_choice_scene for cp in template.choice_points
    ):
        raise DomainValidationError("Template has choice points beyond the new scene count")

    furthest = db.query(func.max(UserStory.current_scene)).filter(
        UserStory.template_id == template.id
    ).scalar()
    if furthest is not None and furthest > estimated_scenes:
        raise ConflictError(f"A story using this template is already at scene {furthest}")


def _build_choice_points(template_id: str, choice_points: List[Dict[str, Any]]) -> List[ChoicePoint]:
    return [
        ChoicePoint(
            template_id=template_id,
            scene_number=cp["scene_number"],
            prompt_text=cp["prompt_text"],
            options=[{field: option.get(field, "") for field in OPTION_FIELDS} for option in cp["options"]],
        )
        for cp in choice_points
    ]


# ============================================================
# MUTATIONS
# ============================================================

def create_template(
    db: Session,
    data: Dict[str, Any],
    user_id: str,
    choice_points: Optional[List[Dict[str, Any]]] = None,
) -> NovelTemplate:
    """Create a template (draft unless a status is given), optionally with its choice points"""
    choice_points = choice_points or []
    _validate_template_fields(db, data)
    validate_choice_points(choice_points, data["estimated_scenes"])

    template = NovelTemplate(
        title=data["title"],
        description=data["description"],
        base_tropes=list(data["base_tropes"]),
        estimated_scenes=data["estimated_scenes"],
        cover_gradient=data["cover_gradient"],
        status=TemplateStatus(data.get("status") or TemplateStatus.DRAFT),
    )
    db.add(template)
    db.flush()

    for cp in _build_choice_points(template.id, choice_points):
        db.add(cp)

    created = {key: value for key, value in data.items() if key != "status"}
    created["status"] = template.status.value
    created["choicePoints"] = len(choice_points)
    create_audit_log(
        db,
        user_id=user_id,
        action="create_template",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=template.id,
        changes={"created": created},
    )
    db.commit()
    db.refresh(template)

    logger.info(f"Template '{template.title}' created by {user_id} with {len(choice_points)} choice point(s)")
    return template


def import_templates(
    db: Session,
    entries: List[Tuple[Dict[str, Any], List[Dict[str, Any]]]],
    user_id: str,
) -> Tuple[List[NovelTemplate], List[Dict[str, Any]]]:
    """Create many templates, each in its own transaction.

    A template that breaks a rule is reported and skipped; the others are
    still created. Raises DomainValidationError only when nothing could be
    imported.
    """
    imported = []
    failures = []
    for number, (data, choice_points) in enumerate(entries, start=1):
        try:
            imported.append(create_template(db, data, user_id, choice_points=choice_points))
        except DomainValidationError as e:
            db.rollback()
            failures.append({"templateNumber": number, "title": data.get("title"), "error": e.message})

    if not imported:
        raise DomainValidationError("Failed to import any templates", details=failures)

    logger.info(f"Bulk import by {user_id}: {len(imported)} imported, {len(failures)} failed")
    return imported, failures


def update_template(db: Session, template_id: str, updates: Dict[str, Any], user_id: str) -> NovelTemplate:
    template = get_template_by_id(db, template_id)
    if not template:
        raise NotFoundError("Template not found")

    _validate_template_fields(db, updates)
    if "estimated_scenes" in updates:
        _check_scene_count_change(db, template, updates["estimated_scenes"])

    old_values = {key: getattr(template, key) for key in updates}
    for key, value in updates.items():
        setattr(template, key, value)
    template.updated_at = utcnow()

    create_audit_log(
        db,
        user_id=user_id,
        action="update_template",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=template_id,
        changes=extract_changes(old_values, updates),
    )
    db.commit()
    db.refresh(template)
    return template


def update_choice_points(
    db: Session,
    template_id: str,
    choice_points: List[Dict[str, Any]],
    user_id: str,
) -> NovelTemplate:
    """Replace every choice point of a template in one transaction"""
    template = get_template_by_id(db, template_id)
    if not template:
        raise NotFoundError("Template not found")

    validate_choice_points(choice_points, template.estimated_scenes)

    old_count = len(template.choice_points)
    db.query(ChoicePoint).filter(ChoicePoint.template_id == template_id).delete(synchronize_session=False)
    db.flush()
    db.expire(template, ["choice_points"])

    for cp in _build_choice_points(template_id, choice_points):
        db.add(cp)

    template.updated_at = utcnow()
    create_audit_log(
        db,
        user_id=user_id,
        action="update_template_choice_points",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=template_id,
        changes={"choicePoints": {"old": old_count, "new": len(choice_points)}},
    )
    db.commit()
    db.refresh(template)
    return template


def _status_values(status: TemplateStatus, user_id: str) -> Dict[str, Any]:
    values = {"status": status, "updated_at": utcnow()}
    if status == TemplateStatus.ARCHIVED:
        values["archived_at"] = utcnow()
        values["archived_by"] = user_id
    return values


def update_template_status(db: Session, template_id: str, status: TemplateStatus, user_id: str) -> NovelTemplate:
    template = get_template_by_id(db, template_id)
    if not template:
        raise NotFoundError("Template not found")

    old_status = template.status
    for key, value in _status_values(status, user_id).items():
        setattr(template, key, value)

    create_audit_log(
        db,
        user_id=user_id,
        action=f"{status.value}_template",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=template_id,
        changes={"status": {"old": old_status.value, "new": status.value}},
    )
    db.commit()
    db.refresh(template)
    return template


def bulk_update_template_status(db: Session, template_ids: List[str], status: TemplateStatus, user_id: str) -> int:
    """Set the status of several templates at once; returns how many rows changed"""
    updated = db.query(NovelTemplate).filter(
        NovelTemplate.id.in_(template_ids)
    ).update(_status_values(status, user_id), synchronize_session=False)

    create_audit_log(
        db,
        user_id=user_id,
        action=f"bulk_{status.value}_templates",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=template_ids[0],
        changes={
            "status": {"old": None, "new": status.value},
            "templateIds": template_ids,
            "count": updated,
        },
    )
    db.commit()
    return updated


def delete_template(db: Session, template_id: str, user_id: str) -> None:
    template = get_template_by_id(db, template_id)
    if not template:
        raise NotFoundError("Template not found")

    snapshot = {"title": template.title, "status": template.status.value}
    db.delete(template)
    create_audit_log(
        db,
        user_id=user_id,
        action="delete_template",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=template_id,
        changes={"deleted": snapshot},
    )
    db.commit()


def bulk_delete_templates(db: Session, template_ids: List[str], user_id: str) -> int:
    templates = db.query(NovelTemplate).filter(NovelTemplate.id.in_(template_ids)).all()
    if not templates:
        raise NotFoundError("No templates found")

    deleted = [{"id": t.id, "title": t.title, "status": t.status.value} for t in templates]
    for template in templates:
        db.delete(template)

    create_audit_log(
        db,
        user_id=user_id,
        action="bulk_delete_templates",
        entity_type=AuditEntityType.TEMPLATE,
        entity_id=template_ids[0],
        changes={"deleted": deleted, "count": len(deleted)},
    )
    db.commit()
    return len(deleted)

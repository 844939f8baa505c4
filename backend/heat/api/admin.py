"""
Admin API endpoints for the template catalog, tropes, users and audit logs.

Editors manage templates and tropes; user management, audit logs and any
deletion of catalog data are admin-only. Roles are checked by set membership,
so admin-only routes turn editors away with 403.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from ..database import get_db
from ..dependencies import AuthContext, require_admin, require_editor_or_admin
from ..models import AuditEntityType, TemplateStatus, UserRole
from ..services import audit_service, template_service, trope_service, user_service
from ..services.errors import HeatError, to_http_exception
from ..services.template_service import SORTABLE_FIELDS
from ..utils.common import normalize_email
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 50
DEFAULT_TEMPLATE_PAGE_SIZE = 10
MAX_TEMPLATE_PAGE_SIZE = 100


# ============================================================
# PYDANTIC MODELS
# ============================================================

class UserAdminUpdate(BaseModel):
    """Fields an admin may change on any account"""
    email: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    role: Optional[UserRole] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v):
        return normalize_email(v) if v is not None else v


class ChoiceOption(BaseModel):
    id: str
    text: str = Field(..., min_length=1)
    tone: str = Field(..., min_length=1)
    impact: str = Field(..., min_length=1)


class ChoicePointData(BaseModel):
    scene_number: int = Field(..., ge=1)
    prompt_text: str = Field(..., min_length=1)
    options: List[ChoiceOption] = Field(..., min_length=2, max_length=4)


class TemplateCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    base_tropes: List[str] = Field(..., min_length=1)
    estimated_scenes: int = Field(..., ge=1, le=100)
    cover_gradient: str = Field(..., min_length=1)
    status: Optional[TemplateStatus] = None
    choicePoints: Optional[List[ChoicePointData]] = None


class TemplateUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    base_tropes: Optional[List[str]] = Field(None, min_length=1)
    estimated_scenes: Optional[int] = Field(None, ge=1, le=100)
    cover_gradient: Optional[str] = Field(None, min_length=1)


class TemplateStatusUpdate(BaseModel):
    status: TemplateStatus


class ChoicePointsReplace(BaseModel):
    choicePoints: List[ChoicePointData]


class BulkStatusUpdate(BaseModel):
    templateIds: List[str] = Field(..., min_length=1)
    status: TemplateStatus


class BulkDelete(BaseModel):
    templateIds: List[str] = Field(..., min_length=1)


class BulkImport(BaseModel):
    templates: List[TemplateCreate] = Field(..., min_length=1)


TROPE_KEY_PATTERN = r"^[a-z0-9-]+$"


class TropeCreate(BaseModel):
    key: str = Field(..., min_length=1, max_length=100, pattern=TROPE_KEY_PATTERN)
    label: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class TropeUpdate(BaseModel):
    key: Optional[str] = Field(None, min_length=1, max_length=100, pattern=TROPE_KEY_PATTERN)
    label: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


def pagination(total: int, limit: int, offset: int) -> dict:
    return {
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + limit < total,
    }


def plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


# ============================================================
# DASHBOARD
# ============================================================

@router.get("/dashboard")
async def dashboard(
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    """Template statistics for editors; admins also get user statistics"""
    try:
        stats = {"templates": template_service.get_template_count_by_status(db)}

        if auth.role == UserRole.ADMIN:
            counts = user_service.get_user_count_by_role(db)
            users = {role.value: counts.get(role.value, 0) for role in UserRole}
            users["total"] = sum(users.values())
            stats["users"] = users

        return {"stats": stats}
    except Exception as e:
        logger.error(f"Error fetching dashboard stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard statistics")


# ============================================================
# USER MANAGEMENT (admin only)
# ============================================================

@router.get("/users")
async def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        users = user_service.get_all_users(db, role=role, search=search, limit=limit, offset=offset)
        total = user_service.get_user_count(db, role=role, search=search)
        return {
            "users": [user.to_dict() for user in users],
            "pagination": pagination(total, limit, offset),
        }
    except Exception as e:
        logger.error(f"Error fetching users: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch users")


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        user = user_service.get_user_by_id(db, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return {"user": user.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch user")


@router.patch("/users/{user_id}")
async def update_user(
    user_id: str,
    updates: UserAdminUpdate,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        user = user_service.update_user(
            db,
            user_id,
            updates.model_dump(exclude_unset=True, exclude_none=True),
            auth.user_id,
        )
        return {"user": user.to_dict(), "message": "User updated successfully"}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update user")


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        user_service.delete_user(db, user_id, auth.user_id)
        return {"message": "User deleted successfully"}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting user {user_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete user")


# ============================================================
# AUDIT LOGS (admin only)
# ============================================================

@router.get("/audit-logs")
async def list_audit_logs(
    entityType: Optional[AuditEntityType] = None,
    entityId: Optional[str] = None,
    userId: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        filters = {
            "user_id": userId,
            "entity_type": entityType,
            "entity_id": entityId,
            "action": action,
        }
        logs = audit_service.get_audit_logs(db, limit=limit, offset=offset, **filters)
        total = audit_service.get_audit_log_count(db, **filters)
        return {
            "logs": [log.to_dict() for log in logs],
            "pagination": pagination(total, limit, offset),
        }
    except Exception as e:
        logger.error(f"Error fetching audit logs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch audit logs")


# ============================================================
# TEMPLATES
# ============================================================

@router.get("/templates")
async def list_templates(
    status_filter: Optional[TemplateStatus] = Query(None, alias="status"),
    page: Optional[int] = None,
    limit: Optional[int] = None,
    sortBy: Optional[str] = None,
    sortOrder: Optional[str] = None,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    """Every template regardless of status; paginated when page or limit is given"""
    try:
        if page is None and limit is None:
            if status_filter:
                templates = template_service.get_templates_by_status(db, status_filter)
            else:
                templates = template_service.get_all_templates(db)
            return {"templates": [template.to_dict() for template in templates]}

        page = page if page is not None else 1
        limit = limit if limit is not None else DEFAULT_TEMPLATE_PAGE_SIZE
        if page < 1:
            raise HTTPException(status_code=400, detail="Invalid page parameter")
        if limit < 1 or limit > MAX_TEMPLATE_PAGE_SIZE:
            raise HTTPException(status_code=400, detail="Invalid limit parameter (must be 1-100)")
        if sortBy is not None and sortBy not in SORTABLE_FIELDS:
            raise HTTPException(status_code=400, detail="Invalid sortBy parameter")
        if sortOrder is not None and sortOrder not in ("asc", "desc"):
            raise HTTPException(status_code=400, detail="Invalid sortOrder parameter")

        templates, total = template_service.get_templates_paginated(
            db,
            page=page,
            limit=limit,
            status=status_filter,
            sort_by=sortBy or "created_at",
            sort_order=sortOrder or "desc",
        )
        return {
            "templates": [template.to_dict() for template in templates],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": (total + limit - 1) // limit,
            },
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching templates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch templates")


@router.post("/templates", status_code=status.HTTP_201_CREATED)
async def create_template(
    template_data: TemplateCreate,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        choice_points = [cp.model_dump() for cp in template_data.choicePoints or []]
        template = template_service.create_template(
            db,
            template_data.model_dump(exclude={"choicePoints"}, exclude_none=True),
            auth.user_id,
            choice_points=choice_points,
        )
        message = "Template created successfully"
        if choice_points:
            message += " with choice points"
        return {"template": template.to_dict(include_choice_points=True), "message": message}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating template: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create template")


@router.get("/templates/stats")
async def template_stats(
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        return template_service.get_template_count_by_status(db)
    except Exception as e:
        logger.error(f"Error fetching template stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch template stats")


@router.post("/templates/bulk-update")
async def bulk_update_templates(
    request: BulkStatusUpdate,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        updated = template_service.bulk_update_template_status(
            db, request.templateIds, request.status, auth.user_id
        )
        return {
            "success": True,
            "updatedCount": updated,
            "message": f"Successfully updated {plural(updated, 'template')} to {request.status.value}",
        }
    except Exception as e:
        logger.error(f"Error bulk updating templates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to bulk update templates")


@router.post("/templates/bulk-import", status_code=status.HTTP_201_CREATED)
async def bulk_import_templates(
    request: BulkImport,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    """Create several templates with their choice points; bad entries are reported, not fatal"""
    try:
        entries = [
            (
                item.model_dump(exclude={"choicePoints"}, exclude_none=True),
                [cp.model_dump() for cp in item.choicePoints or []],
            )
            for item in request.templates
        ]
        imported, failures = template_service.import_templates(db, entries, auth.user_id)
        results = [
            {"template": template.to_dict(), "choicePointsCount": len(template.choice_points)}
            for template in imported
        ]
        response = {
            "message": "Bulk import completed",
            "imported": len(imported),
            "failed": len(failures),
            "totalChoicePoints": sum(result["choicePointsCount"] for result in results),
            "results": results,
        }
        if failures:
            response["errors"] = failures
        return response
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error during bulk import: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to import templates")


@router.post("/templates/bulk-delete")
async def bulk_delete_templates(
    request: BulkDelete,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        deleted = template_service.bulk_delete_templates(db, request.templateIds, auth.user_id)
        return {
            "success": True,
            "deletedCount": deleted,
            "message": f"Successfully deleted {plural(deleted, 'template')}",
        }
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error bulk deleting templates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to bulk delete templates")


@router.get("/templates/{template_id}")
async def get_template(
    template_id: str,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        template = template_service.get_template_with_choice_points(db, template_id)
        if not template:
            raise HTTPException(status_code=404, detail="Template not found")
        return {"template": template.to_dict(include_choice_points=True)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching template {template_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch template")


@router.patch("/templates/{template_id}")
async def update_template(
    template_id: str,
    updates: TemplateUpdate,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        template = template_service.update_template(
            db,
            template_id,
            updates.model_dump(exclude_unset=True, exclude_none=True),
            auth.user_id,
        )
        return {"template": template.to_dict(), "message": "Template updated successfully"}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating template {template_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update template")


@router.delete("/templates/{template_id}")
async def delete_template(
    template_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        template_service.delete_template(db, template_id, auth.user_id)
        return {"message": "Template deleted successfully"}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting template {template_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete template")


@router.patch("/templates/{template_id}/status")
async def update_template_status(
    template_id: str,
    request: TemplateStatusUpdate,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    """Publish, archive or return a template to draft"""
    try:
        template = template_service.update_template_status(db, template_id, request.status, auth.user_id)
        return {"template": template.to_dict(), "message": f"Template {request.status.value} successfully"}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating status of template {template_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update template status")


@router.put("/templates/{template_id}/choice-points")
async def replace_choice_points(
    template_id: str,
    request: ChoicePointsReplace,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        template = template_service.update_choice_points(
            db,
            template_id,
            [cp.model_dump() for cp in request.choicePoints],
            auth.user_id,
        )
        return {
            "template": template.to_dict(include_choice_points=True),
            "message": "Choice points updated successfully",
        }
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating choice points of template {template_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update choice points")


# ============================================================
# TROPES
# ============================================================

@router.get("/tropes")
async def list_tropes(
    withStats: bool = False,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        if withStats:
            return {"tropes": trope_service.get_trope_usage_stats(db)}
        return {"tropes": [trope.to_dict() for trope in trope_service.get_all_tropes(db)]}
    except Exception as e:
        logger.error(f"Error fetching tropes: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch tropes")


@router.post("/tropes", status_code=status.HTTP_201_CREATED)
async def create_trope(
    trope_data: TropeCreate,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        trope = trope_service.create_trope(
            db,
            key=trope_data.key,
            label=trope_data.label,
            user_id=auth.user_id,
            description=trope_data.description,
        )
        return {"success": True, "trope": trope.to_dict()}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating trope: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create trope")


@router.get("/tropes/{trope_id}")
async def get_trope(
    trope_id: str,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        trope = trope_service.get_trope_by_id(db, trope_id)
        if not trope:
            raise HTTPException(status_code=404, detail="Trope not found")
        return {"trope": trope.to_dict()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching trope {trope_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch trope")


@router.put("/tropes/{trope_id}")
@router.patch("/tropes/{trope_id}")
async def update_trope(
    trope_id: str,
    updates: TropeUpdate,
    auth: AuthContext = Depends(require_editor_or_admin),
    db: Session = Depends(get_db)
):
    try:
        # description may be cleared with null; key and label may not
        changes = {
            field: value for field, value in updates.model_dump(exclude_unset=True).items()
            if value is not None or field == "description"
        }
        trope = trope_service.update_trope(db, trope_id, changes, auth.user_id)
        return {"success": True, "trope": trope.to_dict()}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating trope {trope_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update trope")


@router.delete("/tropes/{trope_id}")
async def delete_trope(
    trope_id: str,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        trope_service.delete_trope(db, trope_id, auth.user_id)
        return {"success": True, "message": "Trope deleted successfully"}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting trope {trope_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete trope")

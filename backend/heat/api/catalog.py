"""Public catalog: published templates and the trope vocabulary"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
from ..database import get_db
from ..services.template_service import (
    find_published_templates,
    get_published_templates,
    get_template_with_choice_points,
)
from ..services.trope_service import get_all_tropes
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/templates")
async def list_templates(
    tropes: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Published templates, filtered by any of a comma-separated trope list and/or a search term"""
    try:
        trope_keys = [t.strip() for t in tropes.split(",") if t.strip()] if tropes else None
        if trope_keys or search:
            templates = find_published_templates(db, tropes=trope_keys, search=search)
        else:
            templates = get_published_templates(db)
        return {"templates": [template.to_dict() for template in templates]}
    except Exception as e:
        logger.error(f"Error fetching templates: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch templates")


@router.get("/templates/{template_id}")
async def get_template(template_id: str, db: Session = Depends(get_db)):
    try:
        template = get_template_with_choice_points(db, template_id)
        if not template or not template.is_published:
            raise HTTPException(status_code=404, detail="Template not found")
        return {"template": template.to_dict(include_choice_points=True)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching template {template_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch template")


@router.get("/tropes")
async def list_tropes(db: Session = Depends(get_db)):
    try:
        return {"tropes": [trope.to_dict() for trope in get_all_tropes(db)]}
    except Exception as e:
        logger.error(f"Error fetching tropes: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch tropes")

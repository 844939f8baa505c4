"""
Scene Cache

Generated scene text is stored once per (story, scene number). Two requests
racing to cache the same scene are settled by the unique constraint on the
``scenes`` table: the loser gets ``None`` back and re-reads the winner's row.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Scene

logger = logging.getLogger(__name__)


def count_words(content: str) -> int:
    return len(content.split())


def get_cached_scene(db: Session, story_id: str, scene_number: int) -> Optional[Scene]:
    return db.query(Scene).filter(
        Scene.story_id == story_id,
        Scene.scene_number == scene_number,
    ).first()


def cache_scene(
    db: Session,
    story_id: str,
    scene_number: int,
    content: str,
    metadata: Optional[Dict[str, Any]] = None,
    summary: Optional[str] = None,
) -> Optional[str]:
    """Store a generated scene; returns its id, or ``None`` if it was already cached"""
    scene = Scene(
        story_id=story_id,
        scene_number=scene_number,
        content=content,
        word_count=count_words(content),
        scene_metadata=metadata,
        summary=summary,
    )
    try:
        db.add(scene)
        db.commit()
    except IntegrityError:
        db.rollback()
        if get_cached_scene(db, story_id, scene_number) is None:
            # Not a duplicate (e.g. the story was deleted meanwhile)
            raise
        logger.debug(f"Scene {scene_number} of story {story_id} already cached, skipping")
        return None

    logger.info(f"Cached scene {scene_number} of story {story_id} ({scene.word_count} words)")
    return scene.id


def get_story_scenes(db: Session, story_id: str) -> List[Scene]:
    return db.query(Scene).filter(Scene.story_id == story_id).order_by(Scene.scene_number.asc()).all()


def get_recent_scenes(db: Session, story_id: str, count: int) -> List[Dict[str, Any]]:
    """Last ``count`` scenes in reading order, summaries preferred over full text"""
    scenes = db.query(Scene).filter(
        Scene.story_id == story_id
    ).order_by(Scene.scene_number.desc()).limit(count).all()

    return [
        {"scene_number": scene.scene_number, "content": scene.summary or scene.content}
        for scene in reversed(scenes)
    ]


def delete_story_scenes(db: Session, story_id: str) -> int:
    deleted = db.query(Scene).filter(Scene.story_id == story_id).delete(synchronize_session=False)
    db.commit()
    return deleted


def get_story_stats(db: Session, story_id: str) -> Dict[str, int]:
    scene_count, total_words = db.query(
        func.count(Scene.id),
        func.coalesce(func.sum(Scene.word_count), 0),
    ).filter(Scene.story_id == story_id).one()
    return {"sceneCount": int(scene_count or 0), "totalWords": int(total_words or 0)}


def get_scene_metadata(db: Session, story_id: str, scene_number: int) -> Optional[Dict[str, Any]]:
    scene = get_cached_scene(db, story_id, scene_number)
    if not scene or not scene.scene_metadata:
        return None
    return scene.scene_metadata


def get_story_metadata_progression(db: Session, story_id: str) -> List[Dict[str, Any]]:
    return [
        {"scene_number": scene.scene_number, "metadata": scene.scene_metadata, "summary": scene.summary}
        for scene in get_story_scenes(db, story_id)
    ]

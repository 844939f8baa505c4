from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel, Field
from ..database import get_db
from ..dependencies import get_current_user, get_scene_generator
from ..models import StoryStatus, User
from ..services.errors import HeatError, to_http_exception
from ..services.scene_cache import cache_scene, get_cached_scene, get_recent_scenes, get_story_stats
from ..services.scene_generation import SceneGenerator, build_scene_request
from ..services.story_service import (
    create_user_story,
    delete_user_story,
    get_choice_point_for_scene,
    get_last_choice,
    get_owned_story,
    get_previous_choice,
    get_story_with_details,
    get_user_stories,
    record_choice,
    update_story_progress,
)
from ..utils.preferences import UserPreferences
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

# Scenes handed to the generator as context
CONTEXT_SCENES = 3


class StoryCreate(BaseModel):
    templateId: str
    storyTitle: Optional[str] = Field(None, max_length=255)
    preferences: Optional[UserPreferences] = None


class ChoiceRequest(BaseModel):
    choicePointId: str
    selectedOption: int = Field(..., ge=0, le=2)


class ProgressUpdate(BaseModel):
    currentScene: int = Field(..., ge=1)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_story(
    story_data: StoryCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Start a new story from a published template"""
    try:
        preferences = story_data.preferences.to_stored() if story_data.preferences else None
        story = create_user_story(
            db,
            current_user.id,
            story_data.templateId,
            preferences=preferences,
            custom_title=story_data.storyTitle,
        )
        return {"story": story.to_dict()}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating story: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create story")


@router.get("/user")
async def list_user_stories(
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's stories, optionally only in-progress or completed ones"""
    try:
        story_status = StoryStatus(status) if status in {s.value for s in StoryStatus} else None
        stories = get_user_stories(db, current_user.id, story_status)
        return {"stories": [story.to_dict(include_template=True) for story in stories]}
    except Exception as e:
        logger.error(f"Error fetching user stories: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch stories")


@router.get("/{story_id}")
async def get_story(
    story_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        get_owned_story(db, story_id, current_user.id)
        story = get_story_with_details(db, story_id, current_user.id)

        data = story.to_dict(include_template=True)
        data["choices"] = [choice.to_dict() for choice in story.choices]
        data["stats"] = get_story_stats(db, story_id)
        return {"story": data}
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching story {story_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch story")


@router.delete("/{story_id}")
async def delete_story(
    story_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        if not delete_user_story(db, story_id, current_user.id):
            raise HTTPException(status_code=404, detail="Story not found or already deleted")
        return {"success": True, "message": "Story deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting story {story_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete story")


@router.post("/{story_id}/choose")
async def choose(
    story_id: str,
    choice: ChoiceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Record the reader's choice and move the story on"""
    try:
        outcome = record_choice(
            db,
            story_id,
            current_user.id,
            choice.choicePointId,
            choice.selectedOption,
        )
        return {
            "success": True,
            "nextScene": outcome.next_scene,
            "completed": outcome.completed,
        }
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error recording choice for story {story_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to record choice")


@router.get("/{story_id}/scene")
async def get_scene(
    story_id: str,
    number: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    generator: Optional[SceneGenerator] = Depends(get_scene_generator),
):
    """Serve a scene from the cache, generating and caching it on a miss"""
    try:
        story = get_owned_story(db, story_id, current_user.id)
        estimated_scenes = story.template.estimated_scenes

        # Completed stories reopen at the beginning
        scene_number = number or (1 if story.is_completed else story.current_scene)
        if scene_number > estimated_scenes:
            raise HTTPException(status_code=400, detail="Scene number exceeds story length")

        scene = get_cached_scene(db, story_id, scene_number)
        cached = True

        if scene is None:
            if generator is None:
                raise HTTPException(status_code=404, detail="Scene not generated yet")

            request = build_scene_request(
                story,
                scene_number,
                last_choice=get_last_choice(db, story_id),
                recent_scenes=get_recent_scenes(db, story_id, CONTEXT_SCENES),
            )
            generated = generator.generate(request)
            if cache_scene(db, story_id, scene_number, generated.content, generated.metadata, generated.summary) is None:
                logger.info(f"Scene {scene_number} of story {story_id} was cached by a concurrent request")
            else:
                cached = False

            scene = get_cached_scene(db, story_id, scene_number)
            if scene is None:
                raise HTTPException(status_code=500, detail="Failed to generate or fetch scene")

        choice_point = get_choice_point_for_scene(db, story.template_id, scene_number)
        previous_choice = get_previous_choice(db, story_id, choice_point.id) if choice_point else None

        return {
            "scene": {
                "number": scene_number,
                "content": scene.content,
                "wordCount": scene.word_count,
                "cached": cached,
            },
            "story": {
                "id": story.id,
                "title": story.story_title or story.template.title,
                "currentScene": story.current_scene,
                "estimatedScenes": estimated_scenes,
                "status": story.status,
            },
            "choicePoint": {
                "id": choice_point.id,
                "promptText": choice_point.prompt_text,
                "options": choice_point.options,
            } if choice_point else None,
            "previousChoice": previous_choice,
        }
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching scene for story {story_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch scene")


@router.patch("/{story_id}/scene")
async def update_progress(
    story_id: str,
    progress: ProgressUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Reader navigation; stepping past the last scene completes the story"""
    try:
        outcome = update_story_progress(db, story_id, current_user.id, progress.currentScene)
        return {
            "success": True,
            "currentScene": outcome.current_scene,
            "completed": outcome.completed,
        }
    except HTTPException:
        raise
    except HeatError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating progress for story {story_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update progress")

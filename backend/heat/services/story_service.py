"""
Story Progression

A story is ``in-progress`` from creation (at scene 1) until a choice or a
navigation step moves it past the template's last scene, at which point it
becomes ``completed``. Completed stories accept no further choices, and each
choice point can be answered once per story.
"""
import logging
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..models import Choice, ChoicePoint, NovelTemplate, StoryStatus, UserStory
from ..utils.common import utcnow
from .errors import ConflictError, DomainValidationError, ForbiddenError, NotFoundError

logger = logging.getLogger(__name__)


class ChoiceOutcome(NamedTuple):
    next_scene: int
    completed: bool


class ProgressOutcome(NamedTuple):
    current_scene: int
    completed: bool


def create_user_story(
    db: Session,
    user_id: str,
    template_id: str,
    preferences: Optional[Dict[str, Any]] = None,
    custom_title: Optional[str] = None,
) -> UserStory:
    """Start a new playthrough of a published template"""
    template = db.query(NovelTemplate).filter(NovelTemplate.id == template_id).first()
    if not template or not template.is_published:
        raise NotFoundError("Template not found")

    story_title = custom_title
    if not story_title:
        existing = db.query(func.count(UserStory.id)).filter(
            UserStory.user_id == user_id,
            UserStory.template_id == template_id,
        ).scalar() or 0
        story_title = template.title if existing == 0 else f"{template.title} #{existing + 1}"

    story = UserStory(
        user_id=user_id,
        template_id=template_id,
        story_title=story_title,
        preferences=preferences,
        current_scene=1,
        status=StoryStatus.IN_PROGRESS,
    )
    db.add(story)
    db.commit()
    db.refresh(story)

    logger.info(f"User {user_id} started story '{story_title}' ({story.id})")
    return story


def get_user_stories(db: Session, user_id: str, status: Optional[StoryStatus] = None) -> List[UserStory]:
    query = db.query(UserStory).options(joinedload(UserStory.template)).filter(UserStory.user_id == user_id)
    if status:
        query = query.filter(UserStory.status == status)
    return query.order_by(UserStory.updated_at.desc()).all()


def get_story_by_id(db: Session, story_id: str) -> Optional[UserStory]:
    return db.query(UserStory).options(joinedload(UserStory.template)).filter(UserStory.id == story_id).first()


def get_owned_story(db: Session, story_id: str, user_id: str) -> UserStory:
    """Load a story for its owner: 404 when missing, 403 when someone else's"""
    story = get_story_by_id(db, story_id)
    if not story:
        raise NotFoundError("Story not found")
    if story.user_id != user_id:
        logger.warning(f"User {user_id} tried to access story {story_id} owned by another user")
        raise ForbiddenError("Forbidden")
    return story


def get_story_with_details(db: Session, story_id: str, user_id: str) -> Optional[UserStory]:
    """Owned story with its template and chronological choices (joined to their choice points)"""
    return db.query(UserStory).options(
        joinedload(UserStory.template),
        selectinload(UserStory.choices).joinedload(Choice.choice_point),
    ).filter(UserStory.id == story_id, UserStory.user_id == user_id).first()


def delete_user_story(db: Session, story_id: str, user_id: str) -> bool:
    """Delete an owned story with its scenes and choices; ``False`` if there was nothing to delete"""
    story = db.query(UserStory).filter(UserStory.id == story_id, UserStory.user_id == user_id).first()
    if not story:
        return False

    db.delete(story)
    db.commit()
    logger.info(f"User {user_id} deleted story {story_id}")
    return True


def get_choice_point_for_scene(db: Session, template_id: str, scene_number: int) -> Optional[ChoicePoint]:
    return db.query(ChoicePoint).filter(
        ChoicePoint.template_id == template_id,
        ChoicePoint.scene_number == scene_number,
    ).first()


def get_previous_choice(db: Session, story_id: str, choice_point_id: str) -> Optional[int]:
    """Option already picked at a choice point, for re-reading"""
    choice = db.query(Choice).filter(
        Choice.story_id == story_id,
        Choice.choice_point_id == choice_point_id,
    ).first()
    return choice.selected_option if choice else None


def get_last_choice(db: Session, story_id: str) -> Optional[Dict[str, str]]:
    """Text and tone of the most recent choice, used as generation context"""
    choice = db.query(Choice).options(joinedload(Choice.choice_point)).filter(
        Choice.story_id == story_id
    ).order_by(Choice.created_at.desc()).first()
    if not choice or not choice.choice_point:
        return None

    options = choice.choice_point.options or []
    if choice.selected_option >= len(options):
        return None
    selected = options[choice.selected_option]
    return {"text": selected.get("text", ""), "tone": selected.get("tone", "")}


def record_choice(
    db: Session,
    story_id: str,
    user_id: str,
    choice_point_id: str,
    selected_option: int,
) -> ChoiceOutcome:
    """Record a reader's choice and advance the story.

    The choice row and the progress update are committed together. When the
    next scene would pass the template's ``estimated_scenes`` the story is
    completed instead and ``current_scene`` stays where it was; the outcome
    then reports that unchanged scene.
    """
    story = get_owned_story(db, story_id, user_id)

    if story.is_completed:
        raise ConflictError("Story is already completed")

    choice_point = db.query(ChoicePoint).filter(
        ChoicePoint.id == choice_point_id,
        ChoicePoint.template_id == story.template_id,
    ).first()
    if not choice_point:
        raise NotFoundError("Choice point not found")

    if selected_option >= len(choice_point.options or []):
        raise DomainValidationError("Selected option does not exist")

    if get_previous_choice(db, story_id, choice_point_id) is not None:
        raise ConflictError("Choice already recorded for this choice point")

    db.add(Choice(
        story_id=story_id,
        choice_point_id=choice_point_id,
        selected_option=selected_option,
    ))

    next_scene = story.current_scene + 1
    completed = next_scene > story.template.estimated_scenes
    if completed:
        story.status = StoryStatus.COMPLETED
        next_scene = story.current_scene
    else:
        story.current_scene = next_scene
        story.status = StoryStatus.IN_PROGRESS
    story.updated_at = utcnow()

    try:
        db.commit()
    except IntegrityError:
        # Concurrent submission for the same choice point won the insert
        db.rollback()
        raise ConflictError("Choice already recorded for this choice point")

    if completed:
        logger.info(f"Story {story_id} completed at scene {next_scene}")
    else:
        logger.info(f"Story {story_id}: option {selected_option} chosen, advancing to scene {next_scene}")
    return ChoiceOutcome(next_scene=next_scene, completed=completed)


def update_story_progress(db: Session, story_id: str, user_id: str, current_scene: int) -> ProgressOutcome:
    """Move the reader to another scene.

    Going one past the last scene marks the story completed and resets it to
    scene 1 so a re-read starts from the beginning.
    """
    story = get_owned_story(db, story_id, user_id)

    if story.is_completed:
        raise ConflictError("Story is already completed")

    estimated = story.template.estimated_scenes
    if current_scene < 1 or current_scene > estimated + 1:
        raise DomainValidationError(f"Scene must be between 1 and {estimated + 1}")

    completed = current_scene > estimated
    story.current_scene = 1 if completed else current_scene
    story.status = StoryStatus.COMPLETED if completed else StoryStatus.IN_PROGRESS
    story.updated_at = utcnow()
    db.commit()

    if completed:
        logger.info(f"Story {story_id} marked completed by its reader")
    return ProgressOutcome(current_scene=current_scene, completed=completed)

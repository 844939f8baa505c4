"""
Scene Generator Interface

Writing scene prose is delegated to an external generator (an LLM client in
production). The API only depends on this interface; an implementation is
installed on ``app.state.scene_generator``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import UserStory


@dataclass
class SceneRequest:
    """Everything a generator needs to write one scene"""
    story_id: str
    template_id: str
    template_title: str
    scene_number: int
    estimated_scenes: int
    preferences: Optional[Dict[str, Any]] = None
    last_choice: Optional[Dict[str, str]] = None
    recent_scenes: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class GeneratedScene:
    """Generator output, stored as-is by the scene cache"""
    content: str
    metadata: Optional[Dict[str, Any]] = None
    summary: Optional[str] = None


class SceneGenerator(ABC):
    """Base class for scene generators"""

    @abstractmethod
    def generate(self, request: SceneRequest) -> GeneratedScene:
        """Write the requested scene. Exceptions propagate to the caller."""
        pass


def build_scene_request(
    story: UserStory,
    scene_number: int,
    last_choice: Optional[Dict[str, str]] = None,
    recent_scenes: Optional[List[Dict[str, Any]]] = None,
) -> SceneRequest:
    return SceneRequest(
        story_id=story.id,
        template_id=story.template_id,
        template_title=story.template.title,
        scene_number=scene_number,
        estimated_scenes=story.template.estimated_scenes,
        preferences=story.preferences,
        last_choice=last_choice,
        recent_scenes=recent_scenes or [],
    )

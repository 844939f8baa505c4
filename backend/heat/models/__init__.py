# Import Base from database first
from ..database import Base

# Import all models to ensure they're registered with SQLAlchemy
from .user import User, UserRole
from .session import UserSession
from .template import NovelTemplate, ChoicePoint, TemplateStatus
from .story import UserStory, Choice, StoryStatus
from .scene import Scene
from .trope import Trope
from .audit_log import AuditLog, AuditEntityType

__all__ = [
    "Base",
    "User", "UserRole",
    "UserSession",
    "NovelTemplate", "ChoicePoint", "TemplateStatus",
    "UserStory", "Choice", "StoryStatus",
    "Scene",
    "Trope",
    "AuditLog", "AuditEntityType",
]

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
from ..utils.common import generate_uuid, utcnow
from .user import enum_values
import enum


class StoryStatus(str, enum.Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class UserStory(Base):
    """A user's playthrough of a template"""
    __tablename__ = "user_stories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(String(36), ForeignKey("novel_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    story_title = Column(String(255))

    # Preference overrides chosen when the story was created
    preferences = Column(JSON, nullable=True)

    # Progress
    current_scene = Column(Integer, default=1, nullable=False)
    status = Column(
        Enum(StoryStatus, name="story_status", values_callable=enum_values),
        default=StoryStatus.IN_PROGRESS,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="stories")
    template = relationship("NovelTemplate", back_populates="stories")
    choices = relationship(
        "Choice",
        back_populates="story",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Choice.created_at",
    )
    scenes = relationship(
        "Scene",
        back_populates="story",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Scene.scene_number",
    )

    @property
    def is_completed(self) -> bool:
        return self.status == StoryStatus.COMPLETED

    def to_dict(self, include_template: bool = False):
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "template_id": self.template_id,
            "story_title": self.story_title,
            "preferences": self.preferences,
            "current_scene": self.current_scene,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if include_template:
            data["template"] = self.template.to_dict() if self.template else None
        return data

    def __repr__(self):
        return f"<UserStory(id={self.id}, user_id={self.user_id}, scene={self.current_scene}, status='{self.status.value if self.status else None}')>"


class Choice(Base):
    """Option a reader picked at a choice point; rows are never updated"""
    __tablename__ = "choices"
    __table_args__ = (
        UniqueConstraint("story_id", "choice_point_id", name="uq_choices_story_choice_point"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    story_id = Column(String(36), ForeignKey("user_stories.id", ondelete="CASCADE"), nullable=False, index=True)
    choice_point_id = Column(String(36), ForeignKey("choice_points.id", ondelete="CASCADE"), nullable=False, index=True)
    selected_option = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    story = relationship("UserStory", back_populates="choices")
    choice_point = relationship("ChoicePoint")

    def to_dict(self):
        data = {
            "id": self.id,
            "selected_option": self.selected_option,
            "created_at": self.created_at,
        }
        if self.choice_point is not None:
            data.update({
                "scene_number": self.choice_point.scene_number,
                "prompt_text": self.choice_point.prompt_text,
                "options": list(self.choice_point.options or []),
            })
        return data

    def __repr__(self):
        return f"<Choice(story_id={self.story_id}, choice_point_id={self.choice_point_id}, option={self.selected_option})>"

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
from ..utils.common import generate_uuid, utcnow
from .user import enum_values
import enum


class TemplateStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class NovelTemplate(Base):
    """Reusable story premise with a fixed number of scenes"""
    __tablename__ = "novel_templates"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    base_tropes = Column(JSON, nullable=False, default=list)
    estimated_scenes = Column(Integer, nullable=False)
    cover_gradient = Column(String(255), nullable=False)
    status = Column(
        Enum(TemplateStatus, name="template_status", values_callable=enum_values),
        default=TemplateStatus.DRAFT,
        nullable=False,
        index=True,
    )

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    archived_at = Column(DateTime, nullable=True)
    archived_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Relationships
    choice_points = relationship(
        "ChoicePoint",
        back_populates="template",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChoicePoint.scene_number",
    )
    stories = relationship("UserStory", back_populates="template", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_published(self) -> bool:
        return self.status == TemplateStatus.PUBLISHED

    def to_dict(self, include_choice_points: bool = False):
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "base_tropes": list(self.base_tropes or []),
            "estimated_scenes": self.estimated_scenes,
            "cover_gradient": self.cover_gradient,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "archived_at": self.archived_at,
            "archived_by": self.archived_by,
        }
        if include_choice_points:
            data["choicePoints"] = [cp.to_dict() for cp in self.choice_points]
        return data

    def __repr__(self):
        return f"<NovelTemplate(id={self.id}, title='{self.title}', status='{self.status.value if self.status else None}')>"


class ChoicePoint(Base):
    """Decision prompt shown at the end of a template scene"""
    __tablename__ = "choice_points"
    __table_args__ = (
        UniqueConstraint("template_id", "scene_number", name="uq_choice_points_template_scene"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    template_id = Column(String(36), ForeignKey("novel_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    scene_number = Column(Integer, nullable=False)
    prompt_text = Column(Text, nullable=False)
    # [{"id": "a", "text": "...", "tone": "...", "impact": "..."}]
    options = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    template = relationship("NovelTemplate", back_populates="choice_points")

    def to_dict(self):
        return {
            "id": self.id,
            "template_id": self.template_id,
            "scene_number": self.scene_number,
            "prompt_text": self.prompt_text,
            "options": list(self.options or []),
            "created_at": self.created_at,
        }

    def __repr__(self):
        return f"<ChoicePoint(id={self.id}, template_id={self.template_id}, scene={self.scene_number})>"

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
from ..utils.common import generate_uuid, utcnow


class Scene(Base):
    """Generated scene text, cached once per (story, scene number)"""
    __tablename__ = "scenes"
    __table_args__ = (
        UniqueConstraint("story_id", "scene_number", name="uq_scenes_story_scene_number"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    story_id = Column(String(36), ForeignKey("user_stories.id", ondelete="CASCADE"), nullable=False, index=True)
    scene_number = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    word_count = Column(Integer, nullable=False, default=0)

    # emotional_beat, tension_threads, relationship_progress
    scene_metadata = Column("metadata", JSON, nullable=True)
    summary = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    story = relationship("UserStory", back_populates="scenes")

    def to_dict(self):
        return {
            "id": self.id,
            "story_id": self.story_id,
            "scene_number": self.scene_number,
            "content": self.content,
            "word_count": self.word_count,
            "metadata": self.scene_metadata,
            "summary": self.summary,
            "created_at": self.created_at,
        }

    def __repr__(self):
        return f"<Scene(story_id={self.story_id}, scene_number={self.scene_number})>"

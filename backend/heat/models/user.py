from sqlalchemy import Column, String, DateTime, Boolean, JSON, Enum
from sqlalchemy.orm import relationship
from ..database import Base
from ..utils.common import generate_uuid, utcnow
import enum


class UserRole(str, enum.Enum):
    USER = "user"
    EDITOR = "editor"
    ADMIN = "admin"


def enum_values(enum_cls):
    """Store enum values ("in-progress") rather than member names ("IN_PROGRESS")"""
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255))
    avatar_url = Column(String(500))
    email_verified = Column(Boolean, default=False, nullable=False)

    # Null for accounts that never set a password
    hashed_password = Column(String(255), nullable=True)

    role = Column(
        Enum(UserRole, name="user_role", values_callable=enum_values),
        default=UserRole.USER,
        nullable=False,
        index=True,
    )

    # Story preferences applied to new stories (genres, tropes, spice level, ...)
    default_preferences = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    stories = relationship("UserStory", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    audit_logs = relationship("AuditLog", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "email_verified": self.email_verified,
            "role": self.role,
            "default_preferences": self.default_preferences,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value if self.role else None}')>"

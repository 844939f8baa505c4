from sqlalchemy import Column, String, DateTime, ForeignKey, JSON, Enum, Index
from sqlalchemy.orm import relationship
from ..database import Base
from ..utils.common import generate_uuid, utcnow
from .user import enum_values
import enum


class AuditEntityType(str, enum.Enum):
    TEMPLATE = "template"
    USER = "user"


class AuditLog(Base):
    """Record of an editor/admin mutation. Rows are written once and never updated."""
    __tablename__ = "admin_audit_logs"
    __table_args__ = (
        Index("admin_audit_logs_entity_idx", "entity_type", "entity_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(255), nullable=False)
    entity_type = Column(
        Enum(AuditEntityType, name="audit_entity_type", values_callable=enum_values),
        nullable=False,
        index=True,
    )
    entity_id = Column(String(255), nullable=False)
    changes = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    user = relationship("User", back_populates="audit_logs")

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "userEmail": self.user.email if self.user else None,
            "userName": self.user.name if self.user else None,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "changes": self.changes,
            "createdAt": self.created_at,
        }

    def __repr__(self):
        return f"<AuditLog(action='{self.action}', entity={self.entity_type.value if self.entity_type else None}:{self.entity_id})>"

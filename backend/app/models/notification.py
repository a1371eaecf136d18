from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, Text, ForeignKey, Index
from datetime import datetime
import enum

from app.core.database import Base


class NotificationType(str, enum.Enum):
    SYSTEM = "SYSTEM"
    REMINDER = "REMINDER"
    ALERT = "ALERT"
    OTHER = "OTHER"


class NotificationStatus(str, enum.Enum):
    UNREAD = "UNREAD"
    READ = "READ"


class Notification(Base):
    __tablename__ = "notifications"

    __table_args__ = (
        Index('ix_notifications_user_status', 'user_id', 'status'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(SQLEnum(NotificationType), default=NotificationType.SYSTEM, nullable=False)
    status = Column(SQLEnum(NotificationStatus), default=NotificationStatus.UNREAD, nullable=False)
    read_at = Column(DateTime, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Notification {self.id} user={self.user_id}>"

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime

from app.models.notification import NotificationType, NotificationStatus


class NotificationCreate(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.SYSTEM

    @field_validator("user_ids")
    @classmethod
    def unique_ids(cls, v: List[int]) -> List[int]:
        if any(i <= 0 for i in v):
            raise ValueError("All user ids must be positive integers")
        return list(dict.fromkeys(v))


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: NotificationType
    status: NotificationStatus
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

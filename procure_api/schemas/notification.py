from typing import List, Optional
from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: str
    request_id: Optional[str] = None
    type: str
    title: str
    message: str
    is_read: bool = False
    created_at: str


class NotificationListResponse(BaseModel):
    data: List[NotificationResponse] = []
    unread_count: int = 0


class MarkAllReadResponse(BaseModel):
    updated: int

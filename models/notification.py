from enum import Enum
from pydantic import BaseModel
from typing import Optional


class NotificationType(str, Enum):
    MESSAGE = "message"
    LISTING_UPDATE = "listing_update"
    ADMIN_ANNOUNCEMENT = "admin_announcement"
    PROMOTED_LISTING = "promoted_listing"
    TRANSACTION = "transaction"
    NEW_ORDER = "new_order"
    ORDER_CANCELLED = "order_cancelled"


class NotificationOut(BaseModel):
    id: str
    recipient_id: str
    sender_id: Optional[str] = None
    type: NotificationType
    message: str
    link: Optional[str] = None
    read: bool = False
    created_at: str

    class Config:
        from_attributes = True

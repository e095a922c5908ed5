from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional

from config import MESSAGE_TO_SELLER_MAX_LENGTH


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


# Statuses a seller may set through PUT /orders/{id}/status
SELLER_STATUSES = (OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.COMPLETED)

TERMINAL_STATUSES = (OrderStatus.REJECTED, OrderStatus.COMPLETED, OrderStatus.CANCELLED)

# current status -> statuses it may move to
TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.REJECTED: set(),
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


class OrderCreate(BaseModel):
    offer_price: float = Field(..., ge=0, alias="offerPrice")
    message_to_seller: Optional[str] = Field(
        None, max_length=MESSAGE_TO_SELLER_MAX_LENGTH, alias="messageToSeller"
    )

    class Config:
        populate_by_name = True


class OrderStatusUpdate(BaseModel):
    # Checked against SELLER_STATUSES by the order engine
    status: str


class OrderSummary(BaseModel):
    """Buyer-facing view returned when an offer is made."""

    id: str
    listing_id: str
    offer_price: float
    status: OrderStatus
    payment_status: PaymentStatus

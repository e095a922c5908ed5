from models.user import Role, UserOut
from models.listing import ListingOut
from models.order import (
    OrderStatus,
    PaymentStatus,
    OrderCreate,
    OrderStatusUpdate,
    OrderSummary,
)
from models.notification import NotificationType, NotificationOut
from models.chat import ConversationCreate, SendMessagePayload, MessageOut

from pydantic import BaseModel, Field
from typing import Optional


class ConversationCreate(BaseModel):
    recipient_id: str = Field(..., alias="recipientId")

    class Config:
        populate_by_name = True


class SendMessagePayload(BaseModel):
    """Body of the ``sendMessage`` realtime event."""

    conversation_id: Optional[str] = Field(None, alias="conversationId")
    text: str = Field(..., min_length=1, max_length=5000)
    recipient_id: Optional[str] = Field(None, alias="recipientId")

    class Config:
        populate_by_name = True


class MessageOut(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    text: str
    read_by: list[str] = []
    created_at: str

    class Config:
        from_attributes = True

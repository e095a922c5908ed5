"""
Chat Service - PassItPal chat service
Conversation lookup and message history. Sending happens over Socket.IO
(see sockets/gateway.py).
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from models.chat import ConversationCreate
from utils.deps import get_chat_relay, get_current_user
from utils.errors import PassItPalError

router = APIRouter()
logger = logging.getLogger("passitpal.chat")


@router.post("/api/messages/conversations", tags=["Chat"])
async def get_or_create_conversation(
    data: ConversationCreate,
    user: dict = Depends(get_current_user),
    chat=Depends(get_chat_relay),
):
    """Start a conversation with another user, or return the existing one."""
    try:
        conversation, messages, created = await chat.get_or_create_conversation(
            user["id"], data.recipient_id
        )
        return JSONResponse(
            status_code=201 if created else 200,
            content={"conversation": conversation, "messages": messages},
        )
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error getting/creating conversation")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.get("/api/messages/conversations/me", tags=["Chat"])
async def get_my_conversations(
    user: dict = Depends(get_current_user),
    chat=Depends(get_chat_relay),
):
    """Conversations of the caller, most recent activity first."""
    try:
        return await chat.get_my_conversations(user["id"])
    except Exception as e:
        logger.exception("Error fetching conversations")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.get("/api/messages/conversations/{conversation_id}/messages", tags=["Chat"])
async def get_conversation_messages(
    conversation_id: str,
    user: dict = Depends(get_current_user),
    chat=Depends(get_chat_relay),
):
    """Messages of a conversation, oldest first. Marks them as read by the caller."""
    try:
        return await chat.get_conversation_messages(user["id"], conversation_id)
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error fetching conversation messages")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")

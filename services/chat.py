"""
Chat Relay - PassItPal chat service
Two-party conversations, message persistence and realtime fan-out.
"""

import logging
from typing import Optional

from config import NOTIFICATION_PREVIEW_CHARS
from models.chat import MessageOut
from models.notification import NotificationType
from utils.errors import DuplicateRecord, Forbidden, NotFound, ValidationFailure
from utils.helpers import new_id, now_iso, public_user, truncate

logger = logging.getLogger("passitpal.chat")

MESSAGE_EVENT = "receiveMessage"


def participants_of(conversation: dict) -> list[str]:
    return [conversation["participant_1"], conversation["participant_2"]]


def with_participants(conversation: dict) -> dict:
    return {**conversation, "participants": participants_of(conversation)}


class ChatRelay:
    def __init__(self, store, registry, dispatcher):
        self.store = store
        self.registry = registry
        self.dispatcher = dispatcher

    async def _populate(self, messages: list[dict]) -> list[dict]:
        """Replace sender ids with the sender's display fields."""
        sender_ids = list({m["sender_id"] for m in messages})
        senders = await self.store.find_users_by_ids(sender_ids) if sender_ids else {}
        populated = []
        for m in messages:
            out = MessageOut.model_validate(m).model_dump(mode="json")
            out["sender"] = public_user(senders.get(m["sender_id"])) or {"id": m["sender_id"]}
            populated.append(out)
        return populated

    # ─── Conversations ────────────────────────────────────────────────────────

    async def get_or_create_conversation(self, user_id: str, recipient_id: str) -> tuple[dict, list[dict], bool]:
        """Find the conversation between two users, creating it on first contact.

        Returns ``(conversation, messages, created)``. Argument order does not
        matter: the participant pair is stored sorted.
        """
        if user_id == recipient_id:
            raise ValidationFailure("Cannot create conversation with yourself.")
        if not await self.store.find_user_by_id(recipient_id):
            raise NotFound("Recipient user not found.")

        conversation = await self.store.find_conversation_between(user_id, recipient_id)
        if conversation:
            messages = await self._populate(await self.store.list_messages(conversation["id"]))
            return with_participants(conversation), messages, False

        p1, p2 = sorted([user_id, recipient_id])
        timestamp = now_iso()
        try:
            conversation = await self.store.insert_conversation({
                "id": new_id("CONV"),
                "participant_1": p1,
                "participant_2": p2,
                "last_message_id": None,
                "created_at": timestamp,
                "updated_at": timestamp,
            })
        except DuplicateRecord:
            # created concurrently by the other participant
            conversation = await self.store.find_conversation_between(user_id, recipient_id)
            messages = await self._populate(await self.store.list_messages(conversation["id"]))
            return with_participants(conversation), messages, False

        logger.info(f"Conversation {conversation['id']} created between {p1} and {p2}")
        return with_participants(conversation), [], True

    async def get_my_conversations(self, user_id: str) -> list[dict]:
        conversations = await self.store.list_conversations(user_id)
        if not conversations:
            return []
        user_ids = list({uid for c in conversations for uid in participants_of(c)})
        users = await self.store.find_users_by_ids(user_ids)
        last_ids = [c["last_message_id"] for c in conversations if c.get("last_message_id")]
        last_messages = await self.store.find_messages_by_ids(last_ids) if last_ids else {}

        result = []
        for c in conversations:
            last = last_messages.get(c.get("last_message_id"))
            result.append({
                **c,
                "participants": [public_user(users.get(uid)) or {"id": uid} for uid in participants_of(c)],
                "last_message": (
                    {"text": last["text"], "sender_id": last["sender_id"], "created_at": last["created_at"]}
                    if last else None
                ),
            })
        return result

    async def get_conversation_messages(self, user_id: str, conversation_id: str) -> list[dict]:
        conversation = await self.store.find_conversation(conversation_id)
        if not conversation:
            raise NotFound("Conversation not found.")
        if user_id not in participants_of(conversation):
            raise Forbidden("Not authorized to view this conversation.")

        messages = await self._populate(await self.store.list_messages(conversation_id))
        await self.store.mark_messages_read(conversation_id, user_id)
        return messages

    # ─── Realtime send ────────────────────────────────────────────────────────

    async def send_message(
        self,
        sender: dict,
        conversation_id: Optional[str],
        text: str,
        recipient_id: Optional[str] = None,
    ) -> dict:
        """Persist a message and fan it out to both participants.

        Raises NotFound/Forbidden when the sender may not post to the
        conversation; the realtime gateway decides how to surface that.
        """
        sender_id = sender["id"]
        if not text or not text.strip():
            raise ValidationFailure("Message text is required.")

        if conversation_id:
            conversation = await self.store.find_conversation(conversation_id)
            if not conversation:
                raise NotFound("Conversation not found.")
        elif recipient_id:
            conversation, _, _ = await self.get_or_create_conversation(sender_id, recipient_id)
        else:
            raise ValidationFailure("conversationId or recipientId is required.")

        participants = participants_of(conversation)
        if sender_id not in participants:
            raise Forbidden("User not authorized for this conversation.")

        message = await self.store.insert_message({
            "id": new_id("MSG"),
            "conversation_id": conversation["id"],
            "sender_id": sender_id,
            "text": text,
            "read_by": [sender_id],
            "created_at": now_iso(),
        })
        await self.store.update_conversation(conversation["id"], {
            "last_message_id": message["id"],
            "updated_at": now_iso(),
        })

        populated = (await self._populate([message]))[0]
        for participant_id in participants:
            await self.registry.deliver_to_user(participant_id, MESSAGE_EVENT, populated)

        # the other participant, never a client-supplied id
        other_id = participants[1] if participants[0] == sender_id else participants[0]
        if other_id != sender_id:
            display_name = sender.get("username") or sender.get("email") or sender_id
            await self.dispatcher.create_and_emit(
                other_id,
                NotificationType.MESSAGE,
                f"New message from {display_name}: {truncate(text, NOTIFICATION_PREVIEW_CHARS)}",
                f"/chat/{conversation['id']}",
                sender_id,
            )
        return populated

"""
Notification Dispatcher - PassItPal notifications
Persists notification records and pushes them to connected clients.
"""

import logging
from typing import Optional

from models.notification import NotificationOut, NotificationType
from utils.errors import Forbidden, NotFound
from utils.helpers import new_id, now_iso, public_user

logger = logging.getLogger("passitpal.notifications")

NOTIFICATION_EVENT = "newNotification"


class NotificationDispatcher:
    def __init__(self, store, registry):
        self.store = store
        self.registry = registry

    async def create_and_emit(
        self,
        recipient_id: str,
        notif_type: NotificationType,
        message: str,
        link: str = None,
        sender_id: str = None,
    ) -> Optional[dict]:
        """Create a notification record, then push it if the recipient is online.

        Never raises: a failed insert is logged and returns None, a failed
        push is logged and the persisted record is still returned.
        """
        try:
            notif = {
                "id": new_id("NTF"),
                "recipient_id": recipient_id,
                "sender_id": sender_id,
                "type": NotificationType(notif_type).value,
                "message": message,
                "link": link,
                "read": False,
                "created_at": now_iso(),
            }
            stored = await self.store.insert_notification(notif)
            record = NotificationOut.model_validate(stored).model_dump(mode="json")
        except Exception:
            logger.exception(f"Notification error: could not persist {notif_type} for {recipient_id}")
            return None

        try:
            delivered = await self.registry.deliver_to_user(recipient_id, NOTIFICATION_EVENT, record)
        except Exception:
            logger.exception(f"Notification error: could not push {record['id']} to {recipient_id}")
            return record

        if delivered:
            logger.info(f"Notification emitted to {recipient_id}: {message}")
        return record

    # ─── Recipient-scoped reads and updates ───────────────────────────────────

    async def _owned(self, user_id: str, notification_id: str, action: str) -> dict:
        notif = await self.store.find_notification(notification_id)
        if not notif:
            raise NotFound("Notification not found.")
        if notif["recipient_id"] != user_id:
            raise Forbidden(f"Not authorized to {action} this notification.")
        return notif

    async def list_for(self, user_id: str, read: Optional[bool] = None) -> list[dict]:
        notifications = await self.store.list_notifications(user_id, read=read)
        sender_ids = list({n["sender_id"] for n in notifications if n.get("sender_id")})
        senders = await self.store.find_users_by_ids(sender_ids) if sender_ids else {}
        for n in notifications:
            n["sender"] = public_user(senders.get(n.get("sender_id")))
        return notifications

    async def unread_count(self, user_id: str) -> int:
        return await self.store.count_unread_notifications(user_id)

    async def mark_read(self, user_id: str, notification_id: str) -> dict:
        notif = await self._owned(user_id, notification_id, "update")
        if notif["read"]:
            return notif
        return await self.store.mark_notification_read(notification_id) or {**notif, "read": True}

    async def mark_all_read(self, user_id: str) -> int:
        return await self.store.mark_all_notifications_read(user_id)

    async def delete(self, user_id: str, notification_id: str) -> None:
        await self._owned(user_id, notification_id, "delete")
        await self.store.delete_notification(notification_id)

"""
In-process store used for local development (STORE_BACKEND=memory) and tests.

Rows are plain dicts shaped exactly like the Supabase tables. Every read
returns a copy so callers never mutate stored state by accident. Writes that
must be atomic (conditional updates, the pending-order uniqueness rule) run
under one asyncio.Lock.
"""

import asyncio
import copy
from typing import Optional

from models.listing import ListingOut
from models.order import OrderStatus
from models.user import UserOut
from utils.errors import DuplicateRecord
from utils.helpers import now_iso


class MemoryStore:
    def __init__(self):
        self._lock = asyncio.Lock()
        self.users: dict[str, dict] = {}
        self.listings: dict[str, dict] = {}
        self.orders: dict[str, dict] = {}
        self.conversations: dict[str, dict] = {}
        self.messages: dict[str, dict] = {}
        self.notifications: dict[str, dict] = {}

    # ─── Seeding ──────────────────────────────────────────────────────────────

    def add_user(self, **fields) -> dict:
        user = UserOut(**fields).model_dump(mode="json")
        self.users[user["id"]] = user
        return copy.deepcopy(user)

    def add_listing(self, **fields) -> dict:
        fields.setdefault("created_at", now_iso())
        listing = ListingOut(**fields).model_dump(mode="json")
        self.listings[listing["id"]] = listing
        return copy.deepcopy(listing)

    # ─── Users & Listings ─────────────────────────────────────────────────────

    async def find_user_by_id(self, user_id: str) -> Optional[dict]:
        return copy.deepcopy(self.users.get(user_id))

    async def find_users_by_ids(self, user_ids: list[str]) -> dict[str, dict]:
        return {uid: copy.deepcopy(self.users[uid]) for uid in user_ids if uid in self.users}

    async def find_listing_by_id(self, listing_id: str) -> Optional[dict]:
        return copy.deepcopy(self.listings.get(listing_id))

    async def find_listings_by_ids(self, listing_ids: list[str]) -> dict[str, dict]:
        return {
            lid: copy.deepcopy(self.listings[lid]) for lid in listing_ids if lid in self.listings
        }

    async def conditional_set_availability(self, listing_id: str, expected: bool, new_value: bool) -> bool:
        async with self._lock:
            listing = self.listings.get(listing_id)
            if listing is None or listing["is_available"] != expected:
                return False
            listing["is_available"] = new_value
            listing["updated_at"] = now_iso()
            return True

    # ─── Orders ───────────────────────────────────────────────────────────────

    async def insert_order(self, order: dict) -> dict:
        async with self._lock:
            if order["status"] == OrderStatus.PENDING.value:
                for existing in self.orders.values():
                    if (
                        existing["buyer_id"] == order["buyer_id"]
                        and existing["listing_id"] == order["listing_id"]
                        and existing["status"] == OrderStatus.PENDING.value
                    ):
                        raise DuplicateRecord("pending order already exists for buyer and listing")
            self.orders[order["id"]] = copy.deepcopy(order)
            return copy.deepcopy(order)

    async def find_order(self, order_id: str) -> Optional[dict]:
        return copy.deepcopy(self.orders.get(order_id))

    async def find_pending_order(self, buyer_id: str, listing_id: str) -> Optional[dict]:
        for order in self.orders.values():
            if (
                order["buyer_id"] == buyer_id
                and order["listing_id"] == listing_id
                and order["status"] == OrderStatus.PENDING.value
            ):
                return copy.deepcopy(order)
        return None

    async def update_order(self, order_id: str, fields: dict, expected_status: str) -> Optional[dict]:
        async with self._lock:
            order = self.orders.get(order_id)
            if order is None or order["status"] != expected_status:
                return None
            order.update(fields)
            return copy.deepcopy(order)

    async def list_orders(self, seller_id: str = None, buyer_id: str = None) -> list[dict]:
        rows = [
            o for o in self.orders.values()
            if (seller_id is None or o["seller_id"] == seller_id)
            and (buyer_id is None or o["buyer_id"] == buyer_id)
        ]
        return [copy.deepcopy(o) for o in reversed(rows)]

    # ─── Conversations & Messages ─────────────────────────────────────────────

    async def find_conversation(self, conversation_id: str) -> Optional[dict]:
        return copy.deepcopy(self.conversations.get(conversation_id))

    async def find_conversation_between(self, user1_id: str, user2_id: str) -> Optional[dict]:
        p1, p2 = sorted([user1_id, user2_id])
        for conv in self.conversations.values():
            if conv["participant_1"] == p1 and conv["participant_2"] == p2:
                return copy.deepcopy(conv)
        return None

    async def insert_conversation(self, conversation: dict) -> dict:
        async with self._lock:
            for conv in self.conversations.values():
                if (
                    conv["participant_1"] == conversation["participant_1"]
                    and conv["participant_2"] == conversation["participant_2"]
                ):
                    raise DuplicateRecord("conversation already exists for participants")
            self.conversations[conversation["id"]] = copy.deepcopy(conversation)
            return copy.deepcopy(conversation)

    async def update_conversation(self, conversation_id: str, fields: dict) -> Optional[dict]:
        conv = self.conversations.get(conversation_id)
        if conv is None:
            return None
        conv.update(fields)
        return copy.deepcopy(conv)

    async def list_conversations(self, user_id: str) -> list[dict]:
        rows = [
            c for c in self.conversations.values()
            if user_id in (c["participant_1"], c["participant_2"])
        ]
        rows.sort(key=lambda c: c.get("updated_at") or c["created_at"], reverse=True)
        return copy.deepcopy(rows)

    async def insert_message(self, message: dict) -> dict:
        self.messages[message["id"]] = copy.deepcopy(message)
        return copy.deepcopy(message)

    async def list_messages(self, conversation_id: str) -> list[dict]:
        return [
            copy.deepcopy(m) for m in self.messages.values()
            if m["conversation_id"] == conversation_id
        ]

    async def find_messages_by_ids(self, message_ids: list[str]) -> dict[str, dict]:
        return {mid: copy.deepcopy(self.messages[mid]) for mid in message_ids if mid in self.messages}

    async def mark_messages_read(self, conversation_id: str, user_id: str) -> int:
        updated = 0
        async with self._lock:
            for msg in self.messages.values():
                if msg["conversation_id"] == conversation_id and user_id not in msg["read_by"]:
                    msg["read_by"].append(user_id)
                    updated += 1
        return updated

    # ─── Notifications ────────────────────────────────────────────────────────

    async def insert_notification(self, notification: dict) -> dict:
        self.notifications[notification["id"]] = copy.deepcopy(notification)
        return copy.deepcopy(notification)

    async def find_notification(self, notification_id: str) -> Optional[dict]:
        return copy.deepcopy(self.notifications.get(notification_id))

    async def list_notifications(self, user_id: str, read: Optional[bool] = None) -> list[dict]:
        rows = [
            n for n in self.notifications.values()
            if n["recipient_id"] == user_id and (read is None or n["read"] == read)
        ]
        return [copy.deepcopy(n) for n in reversed(rows)]

    async def count_unread_notifications(self, user_id: str) -> int:
        return sum(
            1 for n in self.notifications.values()
            if n["recipient_id"] == user_id and not n["read"]
        )

    async def mark_notification_read(self, notification_id: str) -> Optional[dict]:
        notif = self.notifications.get(notification_id)
        if notif is None:
            return None
        notif["read"] = True
        return copy.deepcopy(notif)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        updated = 0
        for notif in self.notifications.values():
            if notif["recipient_id"] == user_id and not notif["read"]:
                notif["read"] = True
                updated += 1
        return updated

    async def delete_notification(self, notification_id: str) -> bool:
        return self.notifications.pop(notification_id, None) is not None

"""
Supabase-backed store.

Conditional updates are expressed as filtered UPDATEs (PostgREST applies the
filter and the write in one statement), so ``data`` being empty means the
condition did not hold. Uniqueness of pending orders per (buyer, listing) is
a partial unique index, see create_tables.py.
"""

from typing import Optional

from postgrest import APIError
from supabase import AsyncClient

from utils.errors import DuplicateRecord
from utils.helpers import now_iso

UNIQUE_VIOLATION = "23505"


class SupabaseStore:
    def __init__(self, client: AsyncClient):
        self.sb = client

    async def _insert(self, table: str, row: dict) -> dict:
        try:
            result = await self.sb.table(table).insert(row).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateRecord(e.message) from e
            raise
        return result.data[0] if result.data else row

    async def _find_by_id(self, table: str, record_id: str) -> Optional[dict]:
        result = await self.sb.table(table).select("*").eq("id", record_id).execute()
        return result.data[0] if result.data else None

    async def _find_by_ids(self, table: str, ids: list[str], columns: str = "*") -> dict[str, dict]:
        if not ids:
            return {}
        result = await self.sb.table(table).select(columns).in_("id", list(set(ids))).execute()
        return {row["id"]: row for row in (result.data or [])}

    # ─── Users & Listings ─────────────────────────────────────────────────────

    async def find_user_by_id(self, user_id: str) -> Optional[dict]:
        return await self._find_by_id("users", user_id)

    async def find_users_by_ids(self, user_ids: list[str]) -> dict[str, dict]:
        return await self._find_by_ids("users", user_ids)

    async def find_listing_by_id(self, listing_id: str) -> Optional[dict]:
        return await self._find_by_id("listings", listing_id)

    async def find_listings_by_ids(self, listing_ids: list[str]) -> dict[str, dict]:
        return await self._find_by_ids("listings", listing_ids)

    async def conditional_set_availability(self, listing_id: str, expected: bool, new_value: bool) -> bool:
        result = await (
            self.sb.table("listings")
            .update({"is_available": new_value, "updated_at": now_iso()})
            .eq("id", listing_id)
            .eq("is_available", expected)
            .execute()
        )
        return bool(result.data)

    # ─── Orders ───────────────────────────────────────────────────────────────

    async def insert_order(self, order: dict) -> dict:
        return await self._insert("orders", order)

    async def find_order(self, order_id: str) -> Optional[dict]:
        return await self._find_by_id("orders", order_id)

    async def find_pending_order(self, buyer_id: str, listing_id: str) -> Optional[dict]:
        result = await (
            self.sb.table("orders")
            .select("*")
            .eq("buyer_id", buyer_id)
            .eq("listing_id", listing_id)
            .eq("status", "pending")
            .execute()
        )
        return result.data[0] if result.data else None

    async def update_order(self, order_id: str, fields: dict, expected_status: str) -> Optional[dict]:
        result = await (
            self.sb.table("orders")
            .update(fields)
            .eq("id", order_id)
            .eq("status", expected_status)
            .execute()
        )
        return result.data[0] if result.data else None

    async def list_orders(self, seller_id: str = None, buyer_id: str = None) -> list[dict]:
        query = self.sb.table("orders").select("*")
        if seller_id:
            query = query.eq("seller_id", seller_id)
        if buyer_id:
            query = query.eq("buyer_id", buyer_id)
        result = await query.order("created_at", desc=True).execute()
        return result.data or []

    # ─── Conversations & Messages ─────────────────────────────────────────────

    async def find_conversation(self, conversation_id: str) -> Optional[dict]:
        return await self._find_by_id("conversations", conversation_id)

    async def find_conversation_between(self, user1_id: str, user2_id: str) -> Optional[dict]:
        p1, p2 = sorted([user1_id, user2_id])
        result = await (
            self.sb.table("conversations")
            .select("*")
            .eq("participant_1", p1)
            .eq("participant_2", p2)
            .execute()
        )
        return result.data[0] if result.data else None

    async def insert_conversation(self, conversation: dict) -> dict:
        return await self._insert("conversations", conversation)

    async def update_conversation(self, conversation_id: str, fields: dict) -> Optional[dict]:
        result = await self.sb.table("conversations").update(fields).eq("id", conversation_id).execute()
        return result.data[0] if result.data else None

    async def list_conversations(self, user_id: str) -> list[dict]:
        result = await (
            self.sb.table("conversations")
            .select("*")
            .or_(f"participant_1.eq.{user_id},participant_2.eq.{user_id}")
            .order("updated_at", desc=True)
            .execute()
        )
        return result.data or []

    async def insert_message(self, message: dict) -> dict:
        return await self._insert("messages", message)

    async def list_messages(self, conversation_id: str) -> list[dict]:
        result = await (
            self.sb.table("messages")
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at")
            .execute()
        )
        return result.data or []

    async def find_messages_by_ids(self, message_ids: list[str]) -> dict[str, dict]:
        return await self._find_by_ids("messages", message_ids)

    async def mark_messages_read(self, conversation_id: str, user_id: str) -> int:
        # array_append happens server side so concurrent readers cannot drop each other
        result = await self.sb.rpc(
            "mark_conversation_read",
            {"p_conversation_id": conversation_id, "p_user_id": user_id},
        ).execute()
        return result.data or 0

    # ─── Notifications ────────────────────────────────────────────────────────

    async def insert_notification(self, notification: dict) -> dict:
        return await self._insert("notifications", notification)

    async def find_notification(self, notification_id: str) -> Optional[dict]:
        return await self._find_by_id("notifications", notification_id)

    async def list_notifications(self, user_id: str, read: Optional[bool] = None) -> list[dict]:
        query = self.sb.table("notifications").select("*").eq("recipient_id", user_id)
        if read is not None:
            query = query.eq("read", read)
        result = await query.order("created_at", desc=True).execute()
        return result.data or []

    async def count_unread_notifications(self, user_id: str) -> int:
        result = await (
            self.sb.table("notifications")
            .select("id", count="exact")
            .eq("recipient_id", user_id)
            .eq("read", False)
            .execute()
        )
        return result.count if result.count is not None else len(result.data)

    async def mark_notification_read(self, notification_id: str) -> Optional[dict]:
        result = await self.sb.table("notifications").update({"read": True}).eq("id", notification_id).execute()
        return result.data[0] if result.data else None

    async def mark_all_notifications_read(self, user_id: str) -> int:
        result = await (
            self.sb.table("notifications")
            .update({"read": True})
            .eq("recipient_id", user_id)
            .eq("read", False)
            .execute()
        )
        return len(result.data or [])

    async def delete_notification(self, notification_id: str) -> bool:
        result = await self.sb.table("notifications").delete().eq("id", notification_id).execute()
        return bool(result.data)

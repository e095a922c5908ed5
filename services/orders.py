"""
Order Engine - PassItPal order service
Owns the offer state machine and keeps listing availability consistent with it.

    pending  -> accepted (seller) -> completed (seller)
    pending  -> rejected (seller)
    pending | accepted -> cancelled (buyer)

A listing whose order is accepted or completed is never available. The
availability flip is a conditional update on the listing (true -> false), so
two concurrent accepts on different orders for the same listing cannot both
win. Order writes are conditional on the status they were read with.
"""

import logging

from models.notification import NotificationType
from models.order import (
    OrderStatus,
    OrderSummary,
    PaymentStatus,
    SELLER_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
)
from utils.errors import (
    Conflict,
    DuplicateRecord,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationFailure,
)
from utils.helpers import new_id, now_iso, public_user

logger = logging.getLogger("passitpal.orders")


def order_summary(order: dict) -> dict:
    """Fields of a freshly created order that are returned to the buyer."""
    return OrderSummary.model_validate(order).model_dump(mode="json")


def order_link(order_id: str) -> str:
    return f"/order/{order_id}"


class OrderEngine:
    def __init__(self, store, dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    # ─── Buyer actions ────────────────────────────────────────────────────────

    async def initiate_order(
        self,
        buyer_id: str,
        listing_id: str,
        offer_price: float,
        message_to_seller: str = None,
    ) -> dict:
        if offer_price is None or offer_price < 0:
            raise ValidationFailure("Offer price must be a non-negative number.")

        listing = await self.store.find_listing_by_id(listing_id)
        if not listing:
            raise NotFound("Listing not found.")
        if not listing["is_available"]:
            raise InvalidState("This listing is not available for purchase.")
        if listing["seller_id"] == buyer_id:
            raise Forbidden("You cannot initiate an order on your own listing.")
        if await self.store.find_pending_order(buyer_id, listing_id):
            raise Conflict("You already have a pending order for this listing.")

        seller = await self.store.find_user_by_id(listing["seller_id"])
        if not seller:
            raise NotFound("Seller for this listing not found.")

        timestamp = now_iso()
        new_order = {
            "id": new_id("ORD"),
            "buyer_id": buyer_id,
            "seller_id": listing["seller_id"],
            "listing_id": listing_id,
            "offer_price": offer_price,
            "message_to_seller": message_to_seller,
            "status": OrderStatus.PENDING.value,
            "payment_status": PaymentStatus.PENDING.value,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        try:
            order = await self.store.insert_order(new_order)
        except DuplicateRecord:
            # lost the race against a concurrent offer from the same buyer
            raise Conflict("You already have a pending order for this listing.")

        logger.info(f"Order {order['id']} initiated by {buyer_id} on listing {listing_id}")

        await self.dispatcher.create_and_emit(
            listing["seller_id"],
            NotificationType.NEW_ORDER,
            f"You have a new offer of ₹{offer_price} for your listing \"{listing['title']}\".",
            order_link(order["id"]),
            buyer_id,
        )
        return order_summary(order)

    async def cancel_order(self, buyer_id: str, order_id: str) -> dict:
        order = await self.store.find_order(order_id)
        if not order:
            raise NotFound("Order not found.")
        if order["buyer_id"] != buyer_id:
            raise Forbidden("Not authorized to cancel this order.")

        current = OrderStatus(order["status"])
        if OrderStatus.CANCELLED not in TRANSITIONS[current]:
            raise InvalidState(f"Order is already {current.value} and cannot be cancelled.")

        updated = await self._write_status(order, OrderStatus.CANCELLED, {})

        if current == OrderStatus.ACCEPTED:
            # the listing was claimed by this order; hand it back
            await self.store.conditional_set_availability(order["listing_id"], False, True)

        listing = await self.store.find_listing_by_id(order["listing_id"]) or {}
        await self.dispatcher.create_and_emit(
            order["seller_id"],
            NotificationType.ORDER_CANCELLED,
            f"The buyer cancelled their offer for \"{listing.get('title', order['listing_id'])}\".",
            order_link(order_id),
            buyer_id,
        )
        return updated

    # ─── Seller actions ───────────────────────────────────────────────────────

    async def update_order_status(self, seller_id: str, order_id: str, new_status: str) -> dict:
        order = await self.store.find_order(order_id)
        if not order:
            raise NotFound("Order not found.")
        if order["seller_id"] != seller_id:
            raise Forbidden("Not authorized to update this order.")

        try:
            target = OrderStatus(new_status)
        except ValueError:
            target = None
        if target not in SELLER_STATUSES:
            raise ValidationFailure(
                "Invalid status provided. Valid statuses are: accepted, rejected, completed."
            )

        current = OrderStatus(order["status"])
        if current in TERMINAL_STATUSES:
            raise InvalidState(f"Order is already {current.value} and cannot be updated.")
        if target == OrderStatus.COMPLETED and current != OrderStatus.ACCEPTED:
            raise InvalidState("Order must be accepted before it can be marked as completed.")
        if target not in TRANSITIONS[current]:
            raise InvalidState(f"Order cannot move from {current.value} to {target.value}.")

        listing = await self.store.find_listing_by_id(order["listing_id"]) or {}
        title = listing.get("title", order["listing_id"])

        if target == OrderStatus.ACCEPTED:
            updated = await self._accept(order)
            text = f"Your offer for \"{title}\" was accepted by the seller!"
        elif target == OrderStatus.REJECTED:
            updated = await self._write_status(order, target, {})
            text = f"Your offer for \"{title}\" was rejected by the seller."
        else:
            updated = await self._complete(order)
            text = f"Your transaction for \"{title}\" is completed!"

        logger.info(f"Order {order_id} moved {current.value} -> {target.value} by seller {seller_id}")

        await self.dispatcher.create_and_emit(
            order["buyer_id"],
            NotificationType.TRANSACTION,
            text,
            order_link(order_id),
            seller_id,
        )
        return updated

    async def _accept(self, order: dict) -> dict:
        claimed = await self.store.conditional_set_availability(order["listing_id"], True, False)
        if not claimed:
            raise Conflict("Listing is already marked as unavailable by another accepted order.")
        try:
            return await self._write_status(order, OrderStatus.ACCEPTED, {})
        except Exception:
            # order moved under us; release the listing we just claimed
            await self.store.conditional_set_availability(order["listing_id"], False, True)
            raise

    async def _complete(self, order: dict) -> dict:
        updated = await self._write_status(
            order, OrderStatus.COMPLETED, {"payment_status": PaymentStatus.PAID.value}
        )
        # only once the order is completed; no-op when the accept already took it off the market
        await self.store.conditional_set_availability(order["listing_id"], True, False)
        return updated

    async def _write_status(self, order: dict, target: OrderStatus, extra: dict) -> dict:
        fields = {"status": target.value, "updated_at": now_iso(), **extra}
        updated = await self.store.update_order(order["id"], fields, expected_status=order["status"])
        if updated is None:
            raise Conflict("Order was modified concurrently, please retry.")
        return updated

    # ─── Reads ────────────────────────────────────────────────────────────────

    async def get_order(self, user_id: str, order_id: str) -> dict:
        order = await self.store.find_order(order_id)
        if not order:
            raise NotFound("Order not found.")
        if user_id not in (order["buyer_id"], order["seller_id"]):
            raise Forbidden("Not authorized to view this order.")
        return (await self._enrich([order]))[0]

    async def get_listing_orders(self, seller_id: str) -> list[dict]:
        return await self._enrich(await self.store.list_orders(seller_id=seller_id))

    async def get_my_orders(self, buyer_id: str) -> list[dict]:
        return await self._enrich(await self.store.list_orders(buyer_id=buyer_id))

    async def _enrich(self, orders: list[dict]) -> list[dict]:
        """Attach listing and counterpart display fields to each order."""
        if not orders:
            return orders
        listing_ids = list({o["listing_id"] for o in orders})
        user_ids = list({uid for o in orders for uid in (o["buyer_id"], o["seller_id"])})
        listings = await self.store.find_listings_by_ids(listing_ids)
        users = await self.store.find_users_by_ids(user_ids)

        for o in orders:
            listing = listings.get(o["listing_id"])
            o["listing"] = (
                {
                    "id": listing["id"],
                    "title": listing.get("title"),
                    "asking_price": listing.get("asking_price"),
                    "ad_image_url": listing.get("ad_image_url"),
                    "is_available": listing.get("is_available"),
                }
                if listing else None
            )
            o["buyer"] = public_user(users.get(o["buyer_id"]))
            o["seller"] = public_user(users.get(o["seller_id"]))
        return orders

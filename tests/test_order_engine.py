import asyncio

import pytest

from conftest import BUYER, BUYER_2, LISTING, LISTING_2, SELLER, SELLER_2, RecordingSocketServer, seed
from services.notifications import NotificationDispatcher
from services.orders import OrderEngine
from sockets.registry import SessionRegistry
from stores.memory_store import MemoryStore
from utils.errors import (
    Conflict,
    DuplicateRecord,
    Forbidden,
    InvalidState,
    NotFound,
    ValidationFailure,
)


def notifications_for(store, user_id, notif_type=None):
    return [
        n for n in store.notifications.values()
        if n["recipient_id"] == user_id and (notif_type is None or n["type"] == notif_type)
    ]


async def test_initiate_order_creates_pending_offer_and_notifies_seller(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500, "Can pick up today")

    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["offer_price"] == 500
    assert set(order) == {"id", "listing_id", "offer_price", "status", "payment_status"}

    stored = store.orders[order["id"]]
    assert stored["seller_id"] == SELLER
    assert stored["message_to_seller"] == "Can pick up today"

    new_order = notifications_for(store, SELLER, "new_order")
    assert len(new_order) == 1
    assert new_order[0]["link"] == f"/order/{order['id']}"
    assert "Cult Elite 3 months" in new_order[0]["message"]


async def test_initiate_order_rejects_missing_listing(engine):
    with pytest.raises(NotFound):
        await engine.initiate_order(BUYER, "LST-missing", 100)


async def test_initiate_order_rejects_negative_price(engine, store):
    with pytest.raises(ValidationFailure):
        await engine.initiate_order(BUYER, LISTING, -1)
    assert store.orders == {}


async def test_initiate_order_rejects_own_listing(engine):
    with pytest.raises(Forbidden):
        await engine.initiate_order(SELLER, LISTING, 100)


async def test_initiate_order_rejects_second_pending_offer(engine, store):
    await engine.initiate_order(BUYER, LISTING, 500)
    with pytest.raises(Conflict):
        await engine.initiate_order(BUYER, LISTING, 550)
    assert len(store.orders) == 1


async def test_initiate_order_fails_when_seller_record_missing(engine, store):
    store.add_listing(id="LST-orphan", seller_id="USR-ghost", title="Orphan pass")
    with pytest.raises(NotFound):
        await engine.initiate_order(BUYER, "LST-orphan", 100)


async def test_accept_takes_listing_off_market_and_notifies_buyer(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)

    updated = await engine.update_order_status(SELLER, order["id"], "accepted")

    assert updated["status"] == "accepted"
    assert store.listings[LISTING]["is_available"] is False
    transaction = notifications_for(store, BUYER, "transaction")
    assert len(transaction) == 1
    assert "accepted" in transaction[0]["message"]


async def test_offer_on_unavailable_listing_is_rejected(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.update_order_status(SELLER, order["id"], "accepted")

    with pytest.raises(InvalidState):
        await engine.initiate_order(BUYER_2, LISTING, 600)
    assert len(store.orders) == 1


async def test_complete_marks_payment_paid(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.update_order_status(SELLER, order["id"], "accepted")

    completed = await engine.update_order_status(SELLER, order["id"], "completed")

    assert completed["status"] == "completed"
    assert completed["payment_status"] == "paid"
    assert store.listings[LISTING]["is_available"] is False


async def test_complete_requires_accepted_order(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    with pytest.raises(InvalidState, match="accepted before"):
        await engine.update_order_status(SELLER, order["id"], "completed")
    assert store.orders[order["id"]]["status"] == "pending"


async def test_complete_fixes_up_listing_left_available(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.update_order_status(SELLER, order["id"], "accepted")
    # seller re-listed through the listing edit path
    store.listings[LISTING]["is_available"] = True

    await engine.update_order_status(SELLER, order["id"], "completed")

    assert store.listings[LISTING]["is_available"] is False


async def test_completed_order_cannot_change_again(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.update_order_status(SELLER, order["id"], "accepted")
    await engine.update_order_status(SELLER, order["id"], "completed")
    before = dict(store.orders[order["id"]])

    with pytest.raises(InvalidState):
        await engine.update_order_status(SELLER, order["id"], "accepted")
    assert store.orders[order["id"]] == before


async def test_reject_keeps_listing_available_and_is_final(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)

    rejected = await engine.update_order_status(SELLER, order["id"], "rejected")

    assert rejected["status"] == "rejected"
    assert store.listings[LISTING]["is_available"] is True
    assert "rejected" in notifications_for(store, BUYER, "transaction")[0]["message"]
    for status in ("accepted", "rejected", "completed"):
        with pytest.raises(InvalidState):
            await engine.update_order_status(SELLER, order["id"], status)


async def test_accepted_order_cannot_be_rejected(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.update_order_status(SELLER, order["id"], "accepted")
    with pytest.raises(InvalidState):
        await engine.update_order_status(SELLER, order["id"], "rejected")
    assert store.orders[order["id"]]["status"] == "accepted"


async def test_update_status_checks_order_and_owner(engine):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    with pytest.raises(NotFound):
        await engine.update_order_status(SELLER, "ORD-missing", "accepted")
    with pytest.raises(Forbidden):
        await engine.update_order_status(SELLER_2, order["id"], "accepted")
    with pytest.raises(ValidationFailure):
        await engine.update_order_status(SELLER, order["id"], "cancelled")


async def test_second_accept_on_same_listing_conflicts(engine, store):
    first = await engine.initiate_order(BUYER, LISTING, 500)
    second = await engine.initiate_order(BUYER_2, LISTING, 520)
    await engine.update_order_status(SELLER, first["id"], "accepted")

    with pytest.raises(Conflict):
        await engine.update_order_status(SELLER, second["id"], "accepted")
    assert store.orders[second["id"]]["status"] == "pending"


class YieldingStore(MemoryStore):
    """Gives other tasks a chance to run between the reads and the writes."""

    def __init__(self):
        super().__init__()
        self.duplicate_inserts = 0

    async def find_listing_by_id(self, listing_id):
        await asyncio.sleep(0)
        return await super().find_listing_by_id(listing_id)

    async def find_pending_order(self, buyer_id, listing_id):
        await asyncio.sleep(0)
        return await super().find_pending_order(buyer_id, listing_id)

    async def find_order(self, order_id):
        await asyncio.sleep(0)
        return await super().find_order(order_id)

    async def insert_order(self, order):
        await asyncio.sleep(0)
        try:
            return await super().insert_order(order)
        except DuplicateRecord:
            self.duplicate_inserts += 1
            raise

    async def update_order(self, order_id, fields, expected_status):
        await asyncio.sleep(0)
        return await super().update_order(order_id, fields, expected_status)

    async def conditional_set_availability(self, listing_id, expected, new_value):
        await asyncio.sleep(0)
        return await super().conditional_set_availability(listing_id, expected, new_value)


def engine_over(store):
    store = seed(store)
    dispatcher = NotificationDispatcher(store, SessionRegistry(RecordingSocketServer()))
    return OrderEngine(store, dispatcher)


async def test_concurrent_duplicate_offers_leave_one_pending_order():
    store = YieldingStore()
    engine = engine_over(store)

    results = await asyncio.gather(
        engine.initiate_order(BUYER, LISTING, 500),
        engine.initiate_order(BUYER, LISTING, 510),
        return_exceptions=True,
    )

    # both passed the pending-order check, the insert turned one away
    assert store.duplicate_inserts == 1
    assert sum(isinstance(r, Conflict) for r in results) == 1
    pending = [o for o in store.orders.values() if o["status"] == "pending"]
    assert len(pending) == 1


async def test_cancel_racing_complete_keeps_listing_consistent():
    store = YieldingStore()
    engine = engine_over(store)
    order = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.update_order_status(SELLER, order["id"], "accepted")

    results = await asyncio.gather(
        engine.cancel_order(BUYER, order["id"]),
        engine.update_order_status(SELLER, order["id"], "completed"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Conflict) for r in results) == 1
    status = store.orders[order["id"]]["status"]
    available = store.listings[LISTING]["is_available"]
    if status == "cancelled":
        assert available is True
    else:
        assert status == "completed"
        assert available is False


async def test_concurrent_accepts_on_one_listing_let_exactly_one_win():
    store = YieldingStore()
    engine = engine_over(store)
    first = await engine.initiate_order(BUYER, LISTING, 500)
    second = await engine.initiate_order(BUYER_2, LISTING, 520)

    results = await asyncio.gather(
        engine.update_order_status(SELLER, first["id"], "accepted"),
        engine.update_order_status(SELLER, second["id"], "accepted"),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Conflict) for r in results) == 1
    accepted = [o for o in store.orders.values() if o["status"] == "accepted"]
    assert len(accepted) == 1
    assert store.listings[LISTING]["is_available"] is False


class BrokenNotificationStore(MemoryStore):
    async def insert_notification(self, notification):
        raise RuntimeError("notifications table unavailable")


async def test_notification_failure_does_not_roll_back_order():
    store = BrokenNotificationStore()
    engine = engine_over(store)

    order = await engine.initiate_order(BUYER, LISTING, 500)
    updated = await engine.update_order_status(SELLER, order["id"], "accepted")

    assert updated["status"] == "accepted"
    assert store.listings[LISTING]["is_available"] is False


async def test_buyer_cancels_accepted_order_and_listing_returns(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.update_order_status(SELLER, order["id"], "accepted")

    cancelled = await engine.cancel_order(BUYER, order["id"])

    assert cancelled["status"] == "cancelled"
    assert store.listings[LISTING]["is_available"] is True
    assert len(notifications_for(store, SELLER, "order_cancelled")) == 1
    with pytest.raises(InvalidState):
        await engine.update_order_status(SELLER, order["id"], "accepted")


async def test_cancel_rules(engine, store):
    order = await engine.initiate_order(BUYER, LISTING, 500)
    with pytest.raises(Forbidden):
        await engine.cancel_order(BUYER_2, order["id"])
    await engine.update_order_status(SELLER, order["id"], "accepted")
    await engine.update_order_status(SELLER, order["id"], "completed")
    with pytest.raises(InvalidState):
        await engine.cancel_order(BUYER, order["id"])
    assert store.listings[LISTING]["is_available"] is False


async def test_order_reads_are_scoped(engine):
    mine = await engine.initiate_order(BUYER, LISTING, 500)
    await engine.initiate_order(BUYER_2, LISTING_2, 900)

    buyer_orders = await engine.get_my_orders(BUYER)
    assert [o["id"] for o in buyer_orders] == [mine["id"]]
    assert buyer_orders[0]["listing"]["title"] == "Cult Elite 3 months"
    assert buyer_orders[0]["seller"]["username"] == "sam"

    assert len(await engine.get_listing_orders(SELLER)) == 2
    assert await engine.get_listing_orders(SELLER_2) == []

    assert (await engine.get_order(SELLER, mine["id"]))["id"] == mine["id"]
    with pytest.raises(Forbidden):
        await engine.get_order(BUYER_2, mine["id"])

"""
Order Service - PassItPal order service
Offers on listings and their accept / reject / complete / cancel flow.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from models.order import OrderCreate, OrderStatusUpdate
from models.user import Role
from utils.deps import get_current_user, get_order_engine, require_role
from utils.errors import PassItPalError

router = APIRouter()
logger = logging.getLogger("passitpal.orders")


@router.post("/api/orders/initiate/{listing_id}", status_code=201, tags=["Orders"])
async def initiate_order(
    listing_id: str,
    order_data: OrderCreate,
    buyer: dict = Depends(require_role(Role.BUYER.value)),
    engine=Depends(get_order_engine),
):
    """Make an offer on a listing (buyers only)."""
    try:
        order = await engine.initiate_order(
            buyer["id"], listing_id, order_data.offer_price, order_data.message_to_seller
        )
        return {
            "message": "Order initiated successfully. Seller has been notified.",
            "order": order,
        }
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error initiating order")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.get("/api/orders/seller", tags=["Orders"])
async def get_listing_orders(
    seller: dict = Depends(require_role(Role.SELLER.value)),
    engine=Depends(get_order_engine),
):
    """Orders placed on the caller's listings (sellers only)."""
    try:
        orders = await engine.get_listing_orders(seller["id"])
        return {"message": "Orders fetched successfully", "orders": orders}
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error fetching seller orders")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.get("/api/orders/me", tags=["Orders"])
async def get_my_orders(
    buyer: dict = Depends(require_role(Role.BUYER.value)),
    engine=Depends(get_order_engine),
):
    """Orders the caller has initiated (buyers only)."""
    try:
        orders = await engine.get_my_orders(buyer["id"])
        return {"message": "My orders fetched successfully", "orders": orders}
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error fetching buyer orders")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.get("/api/orders/{order_id}", tags=["Orders"])
async def get_order(
    order_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_order_engine),
):
    """Order details, visible to its buyer and seller."""
    try:
        return {"order": await engine.get_order(user["id"], order_id)}
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error fetching order")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.put("/api/orders/{order_id}/status", tags=["Orders"])
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    seller: dict = Depends(require_role(Role.SELLER.value)),
    engine=Depends(get_order_engine),
):
    """Accept, reject or complete an order (sellers only)."""
    try:
        order = await engine.update_order_status(seller["id"], order_id, update.status)
        return {
            "message": f"Order status updated to {update.status} successfully.",
            "order": order,
        }
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error updating order status")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.put("/api/orders/{order_id}/cancel", tags=["Orders"])
async def cancel_order(
    order_id: str,
    buyer: dict = Depends(require_role(Role.BUYER.value)),
    engine=Depends(get_order_engine),
):
    """Withdraw an offer (buyers only)."""
    try:
        order = await engine.cancel_order(buyer["id"], order_id)
        return {"message": "Order cancelled successfully.", "order": order}
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error cancelling order")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")

"""
Notification Service - PassItPal notification service
Read and manage the caller's own notifications.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from utils.deps import get_current_user, get_dispatcher
from utils.errors import PassItPalError

router = APIRouter()
logger = logging.getLogger("passitpal.notifications")


@router.get("/api/notifications/me", tags=["Notifications"])
async def get_my_notifications(
    read: bool | None = Query(None, description="Filter by read status"),
    user: dict = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
):
    """All notifications of the caller, newest first."""
    try:
        return await dispatcher.list_for(user["id"], read=read)
    except Exception as e:
        logger.exception("Error fetching notifications")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.get("/api/notifications/unread-count", tags=["Notifications"])
async def get_unread_count(
    user: dict = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
):
    """Number of unread notifications."""
    try:
        return {"unread_count": await dispatcher.unread_count(user["id"])}
    except Exception as e:
        logger.exception("Error counting notifications")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.put("/api/notifications/mark-all-read", tags=["Notifications"])
async def mark_all_as_read(
    user: dict = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
):
    """Mark every notification of the caller as read."""
    try:
        updated = await dispatcher.mark_all_read(user["id"])
        return {"message": "All notifications marked as read.", "updated": updated}
    except Exception as e:
        logger.exception("Error marking all notifications as read")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.put("/api/notifications/{notification_id}/read", tags=["Notifications"])
async def mark_as_read(
    notification_id: str,
    user: dict = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
):
    """Mark one notification as read."""
    try:
        notification = await dispatcher.mark_read(user["id"], notification_id)
        return {"message": "Notification marked as read.", "notification": notification}
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error marking notification as read")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")


@router.delete("/api/notifications/{notification_id}", tags=["Notifications"])
async def delete_notification(
    notification_id: str,
    user: dict = Depends(get_current_user),
    dispatcher=Depends(get_dispatcher),
):
    """Delete one notification."""
    try:
        await dispatcher.delete(user["id"], notification_id)
        return {"message": "Notification deleted successfully.", "deleted_id": notification_id}
    except PassItPalError:
        raise
    except Exception as e:
        logger.exception("Error deleting notification")
        raise HTTPException(status_code=500, detail=f"Server error: {str(e)}")

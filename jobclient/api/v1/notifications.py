"""Notification feed for whatever front end renders the toasts."""

from fastapi import APIRouter, HTTPException, status

router = APIRouter()

# Set by main.py during lifespan
_notifications = None


def set_notification_center(center):
    global _notifications
    _notifications = center


@router.get("/notifications")
async def list_notifications():
    if _notifications is None:
        raise HTTPException(status_code=503, detail="Notification center not initialized")
    return {"notifications": [n.model_dump(mode="json") for n in _notifications.notifications]}


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(notification_id: str):
    if _notifications is None:
        raise HTTPException(status_code=503, detail="Notification center not initialized")
    _notifications.dismiss(notification_id)

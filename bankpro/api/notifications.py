"""
Notification endpoints
"""

from fastapi import APIRouter, Depends

from .auth import BankingSystem, get_banking_system, get_current_user
from .responses import ok
from ..users import User


router = APIRouter()


@router.get("")
async def get_notifications(
    limit: int = 50,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    notifications = system.notifications.list_for_user(user.id, limit=min(max(limit, 1), 100))
    return ok(
        [n.to_dict() for n in notifications],
        unread_count=system.notifications.unread_count(user.id)
    )


@router.put("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    notification = system.notifications.mark_read(user.id, notification_id)
    return ok(notification.to_dict())


@router.post("/mark-all-read")
async def mark_all_read(
    user: User = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    changed = system.notifications.mark_all_read(user.id)
    return ok({"updated": changed}, message="All notifications marked as read")

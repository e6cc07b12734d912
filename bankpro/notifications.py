"""
Notification Module

In-app notifications raised by the system on transfers, bill payments,
password changes and account locks.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .errors import NotFoundError


class NotificationType(Enum):
    TRANSACTION = "transaction"
    PAYMENT = "payment"
    SECURITY = "security"
    SYSTEM = "system"


@dataclass
class Notification(StorageRecord):
    user_id: str
    type: NotificationType
    message: str
    read: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        data = dict(data)
        data['type'] = NotificationType(data['type'])
        return super().from_dict(data)


class NotificationManager:
    """Stores and lists per-user notifications"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "notifications"

    def notify(self, user_id: str, notification_type: NotificationType, message: str) -> Notification:
        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            type=notification_type,
            message=message[:500]
        )
        self.storage.save(self.table_name, notification.id, notification.to_dict())
        return notification

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        """User's notifications, newest first"""
        notifications = [
            Notification.from_dict(data)
            for data in self.storage.find(self.table_name, {"user_id": user_id})
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:limit]

    def unread_count(self, user_id: str) -> int:
        return len(self.storage.find(self.table_name, {"user_id": user_id, "read": False}))

    def mark_read(self, user_id: str, notification_id: str) -> Notification:
        data = self.storage.load(self.table_name, notification_id)
        if not data or data.get("user_id") != user_id:
            raise NotFoundError("Notification not found")
        notification = Notification.from_dict(data)
        notification.read = True
        notification.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, notification.id, notification.to_dict())
        return notification

    def mark_all_read(self, user_id: str) -> int:
        """Mark every unread notification read; returns how many changed"""
        changed = 0
        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            for data in self.storage.find(self.table_name, {"user_id": user_id, "read": False}):
                notification = Notification.from_dict(data)
                notification.read = True
                notification.updated_at = now
                self.storage.save(self.table_name, notification.id, notification.to_dict())
                changed += 1
        return changed

    def delete_for_user(self, user_id: str) -> int:
        removed = 0
        for data in self.storage.find(self.table_name, {"user_id": user_id}):
            if self.storage.delete(self.table_name, data["id"]):
                removed += 1
        return removed

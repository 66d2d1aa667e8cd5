"""In-app notification center."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

import structlog


logger = structlog.get_logger(__name__)


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class NotificationInput:
    tenant_id: str
    user_id: str
    title: str
    body: str
    type: NotificationType = NotificationType.INFO
    link: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    id: str
    tenant_id: str
    user_id: str
    title: str
    body: str
    type: NotificationType
    link: Optional[str] = None
    read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class NotificationPage:
    data: List[Notification]
    total: int
    unread: int


class NotificationCenter:
    """Keeps notifications per tenant and user, newest first."""

    def __init__(self) -> None:
        self._notifications: Dict[str, Notification] = {}

    async def send(self, notification: NotificationInput) -> Notification:
        """Store a notification for a user.

        Args:
            notification: Recipient and content

        Returns:
            The stored, unread notification
        """
        stored = Notification(
            id=str(uuid4()),
            tenant_id=notification.tenant_id,
            user_id=notification.user_id,
            title=notification.title,
            body=notification.body,
            type=NotificationType(notification.type),
            link=notification.link,
        )
        self._notifications[stored.id] = stored

        logger.info(
            "Notification sent",
            tenant=stored.tenant_id,
            user=stored.user_id,
            type=stored.type.value,
            title=stored.title,
        )
        return stored

    async def get_for_user(
        self,
        tenant_id: str,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        unread_only: bool = False,
    ) -> NotificationPage:
        owned = [
            n
            for n in reversed(list(self._notifications.values()))
            if n.tenant_id == tenant_id and n.user_id == user_id
        ]
        unread = sum(1 for n in owned if not n.read)
        if unread_only:
            owned = [n for n in owned if not n.read]

        return NotificationPage(
            data=owned[offset : offset + limit], total=len(owned), unread=unread
        )

    async def mark_read(self, notification_id: str, tenant_id: str) -> bool:
        notification = self._notifications.get(notification_id)
        if notification is None or notification.tenant_id != tenant_id:
            return False
        self._notifications[notification_id] = replace(notification, read=True)
        return True

    async def mark_all_read(self, tenant_id: str, user_id: str) -> int:
        count = 0
        for key, n in self._notifications.items():
            if n.tenant_id == tenant_id and n.user_id == user_id and not n.read:
                self._notifications[key] = replace(n, read=True)
                count += 1
        return count

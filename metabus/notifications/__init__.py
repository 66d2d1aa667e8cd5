"""Notifications delivered by the ``notify`` side effect."""

from .center import (
    Notification,
    NotificationCenter,
    NotificationInput,
    NotificationPage,
    NotificationType,
)

__all__ = [
    "Notification",
    "NotificationCenter",
    "NotificationInput",
    "NotificationPage",
    "NotificationType",
]

"""
Real-time notifications: warning-created / warning-updated and chat events
fanned out to in-process subscribers (WebSocket clients).
"""

from rugwatch.alerts.dispatcher import (
    Event,
    EventKind,
    NotificationDispatcher,
    Subscription,
)

__all__ = [
    "Event",
    "EventKind",
    "NotificationDispatcher",
    "Subscription",
]

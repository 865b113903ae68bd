"""
Notification domain.

Queued, rate-limited delivery of subscriber notices.
"""

from .notification_queue import NotificationJob, NotificationQueue

__all__ = ["NotificationJob", "NotificationQueue"]

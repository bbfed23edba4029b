"""Notification senders"""

from .base import Notifier, deliverable_attachments
from .email_notifier import EmailNotifier, build_mime_message

__all__ = ["EmailNotifier", "Notifier", "build_mime_message", "deliverable_attachments"]

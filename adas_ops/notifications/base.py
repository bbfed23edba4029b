"""Notification sender contract"""

from typing import Protocol

from ..schemas import Attachment, OutboundMessage, SendResult


class Notifier(Protocol):
    async def send(self, message: OutboundMessage) -> SendResult:
        """Deliver ``message``; never raises, failures come back as success=False"""
        ...


def deliverable_attachments(attachments: list[Attachment]) -> list[Attachment]:
    """Attachments without content are skipped rather than sent as zero-byte files"""
    return [a for a in attachments if a.content]

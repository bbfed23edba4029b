"""
Email notifier using SMTP (primary) or Resend (fallback)
Builds multipart messages with text + HTML bodies and PDF attachments
"""

import asyncio
import logging
import smtplib
import ssl
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid, parseaddr
from typing import Optional

import resend

from ..config import (
    EMAIL_FROM_ADDRESS,
    RESEND_API_KEY,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
)
from ..schemas import Attachment, OutboundMessage, SendResult
from .base import deliverable_attachments

logger = logging.getLogger(__name__)


def build_mime_message(
    message: OutboundMessage, from_address: str, attachments: list[Attachment]
) -> MIMEMultipart:
    """multipart/mixed wrapping a text/html alternative plus any attachments"""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = message.subject
    msg["From"] = from_address
    msg["To"] = message.to
    if message.cc:
        msg["Cc"] = message.cc
    msg["Message-ID"] = make_msgid(domain=parseaddr(from_address)[1].split("@")[-1] or None)

    body = MIMEMultipart("alternative")
    body.attach(MIMEText(message.text_body, "plain", "utf-8"))
    body.attach(MIMEText(message.html_body, "html", "utf-8"))
    msg.attach(body)

    for attachment in attachments:
        maintype, _, subtype = attachment.mime_type.partition("/")
        part = MIMEBase(maintype or "application", subtype or "octet-stream")
        part.set_payload(attachment.content)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", f'attachment; filename="{attachment.filename}"')
        msg.attach(part)

    return msg


class EmailNotifier:
    """Notifier that delivers OutboundMessage over email"""

    def __init__(
        self,
        from_address: str = EMAIL_FROM_ADDRESS,
        smtp_host: Optional[str] = SMTP_HOST,
        smtp_port: int = SMTP_PORT,
        smtp_username: Optional[str] = SMTP_USERNAME,
        smtp_password: Optional[str] = SMTP_PASSWORD,
        smtp_use_tls: bool = SMTP_USE_TLS,
        resend_api_key: Optional[str] = RESEND_API_KEY,
    ):
        self.from_address = from_address
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.resend_api_key = resend_api_key

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_username and self.smtp_password)

    async def send(self, message: OutboundMessage) -> SendResult:
        attachments = deliverable_attachments(message.attachments)
        skipped = len(message.attachments) - len(attachments)
        if skipped:
            logger.debug(f"Skipping {skipped} empty attachment(s) for '{message.subject}'")

        if self.smtp_configured:
            try:
                logger.info(f"📧 Sending email via SMTP ({self.smtp_host}) to {message.to}")
                message_id = await asyncio.to_thread(self._send_via_smtp, message, attachments)
                logger.info(f"✅ Email sent to {message.to}: {message.subject}")
                return SendResult(success=True, message_id=message_id)
            except Exception as e:
                if not self.resend_api_key:
                    logger.error(f"❌ SMTP send to {message.to} failed: {e}")
                    return SendResult(success=False, error=f"SMTP send failed: {e}")
                logger.warning(f"⚠️ SMTP failed, falling back to Resend: {e}")

        if not self.resend_api_key:
            logger.error("❌ No email service configured - SMTP credentials and RESEND_API_KEY missing")
            return SendResult(success=False, error="Email service not configured")

        try:
            logger.info(f"📧 Sending email via Resend to {message.to}")
            response = await asyncio.to_thread(self._send_via_resend, message, attachments)
            message_id = response.get("id") if isinstance(response, dict) else None
            logger.info(f"✅ Email sent via Resend to {message.to}: {message.subject}")
            return SendResult(success=True, message_id=message_id)
        except Exception as e:
            logger.error(f"❌ Resend send to {message.to} failed: {e}")
            return SendResult(success=False, error=f"Failed to send email: {e}")

    def _send_via_smtp(self, message: OutboundMessage, attachments: list[Attachment]) -> str:
        msg = build_mime_message(message, self.from_address, attachments)
        recipients = [message.to] + ([message.cc] if message.cc else [])

        if self.smtp_port == 465:
            context = ssl.create_default_context()
            server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=30)
        else:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30)
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())

        try:
            server.login(self.smtp_username, self.smtp_password)
            server.sendmail(parseaddr(self.from_address)[1], recipients, msg.as_string())
        finally:
            server.quit()
        return msg["Message-ID"]

    def _send_via_resend(self, message: OutboundMessage, attachments: list[Attachment]):
        resend.api_key = self.resend_api_key
        email_data = {
            "from": self.from_address,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html_body,
            "text": message.text_body,
        }
        if message.cc:
            email_data["cc"] = [message.cc]
        if attachments:
            email_data["attachments"] = [
                {"filename": a.filename, "content": list(a.content)} for a in attachments
            ]
        return resend.Emails.send(email_data)

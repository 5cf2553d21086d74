# crm_billing/services/email_sender.py

import logging
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import List, Optional

import aiosmtplib

from crm_billing.core.config import settings
from crm_billing.exceptions.billing_exceptions import SenderNotConfiguredException

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SenderIdentity:
    address: str
    name: str
    password: str

    @classmethod
    def from_user(cls, user, fallback_name: str) -> "SenderIdentity":
        if not user or not user.email_configured or not user.email_from_address or not user.email_password:
            raise SenderNotConfiguredException()
        return cls(
            address=user.email_from_address,
            name=user.email_from_name or fallback_name,
            password=user.email_password,
        )


@dataclass
class Attachment:
    filename: str
    content: bytes
    mime_subtype: str = "pdf"


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None


class EmailSender:
    """Sends HTML email through the sender's own SMTP account."""

    def __init__(self, hostname: str = settings.SMTP_HOST, port: int = settings.SMTP_PORT,
                 use_tls: bool = settings.SMTP_USE_TLS, timeout: float = settings.SMTP_TIMEOUT_SECONDS):
        self.hostname = hostname
        self.port = port
        self.use_tls = use_tls
        self.timeout = timeout

    @staticmethod
    def build_message(sender: SenderIdentity, to: str, subject: str, html_body: str,
                      attachments: List[Attachment], cc: Optional[List[str]] = None) -> MIMEMultipart:
        message = MIMEMultipart("mixed")
        message["Subject"] = subject
        message["From"] = formataddr((sender.name, sender.address))
        message["To"] = to
        if cc:
            message["Cc"] = ", ".join(cc)
        message.attach(MIMEText(html_body, "html", "utf-8"))

        for attachment in attachments:
            part = MIMEApplication(attachment.content, _subtype=attachment.mime_subtype)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            message.attach(part)
        return message

    async def send(self, sender: SenderIdentity, to: str, subject: str, html_body: str,
                   attachments: List[Attachment], cc: Optional[List[str]] = None) -> SendResult:
        message = self.build_message(sender, to, subject, html_body, attachments, cc)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.hostname,
                port=self.port,
                username=sender.address,
                password=sender.password,
                use_tls=self.use_tls,
                timeout=self.timeout,
            )
            logger.info(f"Email '{subject}' sent to {to}")
            return SendResult(success=True)
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Email sending to {to} failed: {e}")
            return SendResult(success=False, error=str(e) or "Failed to send email")

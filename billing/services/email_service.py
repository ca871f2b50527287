"""
Email Service - transactional email over SMTP with Jinja2 templates.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from billing.config import settings

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "emails"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)


def format_money(amount: int, currency: str = "USD") -> str:
    """Minor units -> "$15.00" for display."""
    symbol = "$" if currency == "USD" else f"{currency} "
    return f"{symbol}{amount / 100:.2f}"


_env.filters["money"] = format_money


@dataclass(frozen=True)
class PendingEmail:
    """An email held back until the surrounding transaction commits."""

    to: str
    subject: str
    html: str


def render_email(template_name: str, **context: Any) -> str:
    """Render an email body from templates/emails."""
    context.setdefault("support_email", settings.support_email)
    context.setdefault("client_url", settings.client_url)
    return _env.get_template(template_name).render(**context)


class EmailService:
    """Email sink. Delivery failures are logged and reported as False."""

    def __init__(self):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.sender = f'"{settings.smtp_from_name}" <{settings.smtp_from_email}>'

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> bool:
        """Send one email. Returns False instead of raising."""
        if not self.is_configured:
            logger.warning(f"Email not sent to {to}: SMTP not configured")
            logger.debug(f"Email content: {subject}\n{text or html}")
            return False

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text or "This message requires an HTML capable email client.")
        msg.add_alternative(html, subtype="html")

        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True

    def _deliver(self, msg: EmailMessage) -> None:
        if self.port == 465:
            client = smtplib.SMTP_SSL(self.host, self.port, timeout=30)
        else:
            client = smtplib.SMTP(self.host, self.port, timeout=30)
        with client:
            if self.port != 465:
                client.starttls()
            client.login(self.user, self.password)
            client.send_message(msg)


async def safe_send(email: EmailService, to: str, subject: str, html: str) -> bool:
    """Send through any email sink without letting a failure escape."""
    try:
        sent = await email.send_email(to, subject, html)
    except Exception as e:
        logger.warning(f"Email to {to} failed: {e}")
        return False
    if not sent:
        logger.warning(f"Email to {to} not delivered: {subject}")
    return sent


async def send_pending(email: EmailService, pending: Optional[PendingEmail]) -> bool:
    """Deliver an email built inside a transaction, after that transaction committed."""
    if not pending:
        return False
    return await safe_send(email, pending.to, pending.subject, pending.html)

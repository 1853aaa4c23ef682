"""SMTP delivery for rendered reports."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage

from app.core.config import settings
from app.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


class SMTPEmailDeliveryService:
    """Email delivery service using SMTP.

    ``smtplib`` is blocking, so each message is sent from a worker thread
    and bounded by ``timeout`` on both the socket and the awaiting side.
    """

    def __init__(
        self,
        smtp_host: str | None = None,
        smtp_port: int | None = None,
        from_address: str | None = None,
        *,
        smtp_user: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool | None = None,
        timeout: float | None = None,
    ) -> None:
        self._smtp_host = smtp_host or settings.SMTP_HOST
        self._smtp_port = smtp_port or settings.SMTP_PORT
        self._from_address = from_address or settings.EMAIL_FROM_ADDRESS
        self._smtp_user = smtp_user if smtp_user is not None else settings.SMTP_USERNAME
        self._smtp_password = (
            smtp_password if smtp_password is not None else settings.SMTP_PASSWORD
        )
        self._use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self._timeout = timeout or settings.EMAIL_TIMEOUT

    def build_message(
        self,
        recipients: list[str],
        cc_recipients: list[str],
        subject: str,
        body: str,
    ) -> EmailMessage:
        """Build the plain-text message."""
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._from_address
        msg["To"] = ", ".join(recipients)
        if cc_recipients:
            msg["Cc"] = ", ".join(cc_recipients)
        msg.set_content(body)
        return msg

    def _send_sync(self, msg: EmailMessage, envelope: list[str]) -> None:
        with smtplib.SMTP(self._smtp_host, self._smtp_port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls()
            if self._smtp_user and self._smtp_password:
                server.login(self._smtp_user, self._smtp_password)
            server.send_message(msg, from_addr=self._from_address, to_addrs=envelope)

    async def send(
        self,
        recipients: list[str],
        cc_recipients: list[str],
        subject: str,
        body: str,
    ) -> None:
        """Send one report email.

        Raises:
            EmailDeliveryError: SMTP rejection, connection error or timeout.
        """
        msg = self.build_message(recipients, cc_recipients, subject, body)
        envelope = [*recipients, *cc_recipients]

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, msg, envelope),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            raise EmailDeliveryError(
                f"SMTP delivery timed out after {self._timeout:.0f}s"
            ) from e
        except smtplib.SMTPException as e:
            raise EmailDeliveryError(f"SMTP error: {e}") from e
        except OSError as e:
            raise EmailDeliveryError(
                f"SMTP connection to {self._smtp_host}:{self._smtp_port} failed: {e}"
            ) from e

        logger.info(
            f"Report email sent to {len(envelope)} recipient(s)",
            extra={"context": {"recipients": len(envelope), "subject": subject}},
        )


__all__ = ["SMTPEmailDeliveryService"]

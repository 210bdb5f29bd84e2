"""
Mail sink for sending notifications over SMTP.
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import Sequence

from sitewatch.config import MailConfig
from sitewatch.errors import NotificationDeliveryError
from sitewatch.interfaces import MailSender


logger = logging.getLogger(__name__)


class MailSink(MailSender):
    """Sink that delivers notifications by mail.

    smtplib is blocking, so each delivery runs in a worker thread.
    """

    name = "mail"

    def __init__(self, config: MailConfig):
        self.config = config

    def build_message(self, recipients: Sequence[str], subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((self.config.sender.name, self.config.sender.mail))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.config.sender.mail.split("@", 1)[1])
        msg.set_content(body)
        return msg

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if self.config.skiptls:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _deliver(self, msg: EmailMessage, recipients: Sequence[str]) -> None:
        timeout = self.config.timeout.total_seconds()
        if self.config.tls:
            server = smtplib.SMTP_SSL(
                self.config.server, self.config.port, timeout=timeout, context=self._ssl_context()
            )
        else:
            server = smtplib.SMTP(self.config.server, self.config.port, timeout=timeout)

        with server:
            if self.config.starttls and not self.config.tls:
                server.starttls(context=self._ssl_context())
            if self.config.user:
                server.login(self.config.user, self.config.password or "")
            server.send_message(msg, to_addrs=list(recipients))

    async def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        """Send one mail. Raises NotificationDeliveryError on any SMTP or socket failure."""
        msg = self.build_message(recipients, subject, body)
        try:
            await asyncio.to_thread(self._deliver, msg, recipients)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryError(
                f"mail via {self.config.server}:{self.config.port} failed: {e}"
            ) from e
        logger.info(f"Mail sent to {len(recipients)} recipient(s): {', '.join(recipients)}")

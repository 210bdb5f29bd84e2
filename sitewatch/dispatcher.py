"""
Notification dispatcher – composes change / error notifications and fans them
out to mail and webhooks. Channels are independent: a failing channel is
logged and reported in its outcome, never raised to the pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, List, Optional

from .config import Configuration, WatchConfig, WebhookConfig
from .differ import render_diff
from .errors import NotificationDeliveryError
from .interfaces import MailSender, WebhookSender
from .models import ChangeEvent, HardError, Notification, NotificationOutcome
from .util import unique

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "[sitewatch]"


def _header_block(watch: WatchConfig) -> List[str]:
    lines = [f"Name: {watch.name}", f"URL: {watch.url}"]
    if watch.description:
        lines.append(f"Description: {watch.description}")
    return lines


def compose_change(watch: WatchConfig, event: ChangeEvent) -> Notification:
    diff = render_diff(event.old, event.new)
    text = "\n".join(_header_block(watch) + ["", "Detected a change:", "", diff])
    return Notification(
        kind="changed",
        identity=event.identity,
        description=watch.description,
        subject=f"{SUBJECT_PREFIX} Detected change on {watch.name}",
        text=text,
        diff=diff,
        old=event.old,
        new=event.new,
    )


def compose_error(watch: WatchConfig, error: HardError) -> Notification:
    lines = _header_block(watch) + ["", f"Error: {error.reason}"]
    if error.status:
        lines.append(f"Status: {error.status}")
    if error.body:
        lines += ["", "Response body:", "", error.body]
    return Notification(
        kind="error",
        identity=watch.identity,
        description=watch.description,
        subject=f"{SUBJECT_PREFIX} Error checking {watch.name}",
        text="\n".join(lines),
        reason=error.reason,
    )


class Dispatcher:
    """Delivers notifications for one watch to every configured channel."""

    def __init__(
        self,
        config: Configuration,
        mail: Optional[MailSender] = None,
        webhooks: Optional[WebhookSender] = None,
    ):
        self.config = config
        self.mail = mail
        self.webhooks = webhooks

    def recipients(self, watch: WatchConfig) -> List[str]:
        base = self.config.mail.to if self.config.mail else []
        return unique([*base, *watch.additional_to])

    async def notify_change(self, watch: WatchConfig, event: ChangeEvent) -> List[NotificationOutcome]:
        return await self.dispatch(watch, compose_change(watch, event))

    async def notify_error(self, watch: WatchConfig, error: HardError) -> List[NotificationOutcome]:
        return await self.dispatch(watch, compose_error(watch, error))

    async def dispatch(self, watch: WatchConfig, notification: Notification) -> List[NotificationOutcome]:
        channels: List[str] = []
        jobs: List[Awaitable[NotificationOutcome]] = []

        recipients = self.recipients(watch)
        if self.mail is not None and self.config.mail is not None and recipients:
            channels.append(self.mail.name)
            jobs.append(self._deliver_mail(recipients, notification))

        if self.webhooks is not None:
            for hook in watch.webhooks:
                channels.append(f"{self.webhooks.name}:{hook.url}")
                jobs.append(self._deliver_webhook(hook, notification))

        if not jobs:
            logger.warning(f"{watch.identity}: no notification channel configured, dropping {notification.kind} notification")
            return []

        results = await asyncio.gather(*jobs, return_exceptions=True)

        outcomes: List[NotificationOutcome] = []
        for channel, result in zip(channels, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(f"{watch.identity}: channel {channel} crashed: {result!r}", exc_info=result)
                result = NotificationOutcome(channel=channel, success=False, error=repr(result))
            outcomes.append(result)

        if not any(o.success for o in outcomes):
            logger.error(f"{watch.identity}: {notification.kind} notification failed on all {len(outcomes)} channel(s)")
        return outcomes

    async def _deliver_mail(self, recipients: List[str], notification: Notification) -> NotificationOutcome:
        attempts = self.config.mail.retries
        delay = self.config.mail.retry_delay.total_seconds()
        last_error: Optional[NotificationDeliveryError] = None

        for attempt in range(1, attempts + 1):
            try:
                await self.mail.send(recipients, notification.subject, notification.text)
                return NotificationOutcome(channel=self.mail.name, success=True, attempts=attempt)
            except NotificationDeliveryError as e:
                last_error = e
                logger.warning(f"Mail attempt {attempt}/{attempts} failed: {e}")
                if attempt < attempts:
                    await asyncio.sleep(delay)

        logger.error(f"Giving up on mail for {notification.identity} after {attempts} attempt(s)")
        return NotificationOutcome(
            channel=self.mail.name, success=False, attempts=attempts, error=str(last_error)
        )

    async def _deliver_webhook(self, hook: WebhookConfig, notification: Notification) -> NotificationOutcome:
        channel = f"{self.webhooks.name}:{hook.url}"
        try:
            await self.webhooks.invoke(
                hook.url, hook.method, hook.header, hook.useragent, notification.payload()
            )
        except NotificationDeliveryError as e:
            logger.error(f"Webhook for {notification.identity} failed: {e}")
            return NotificationOutcome(channel=channel, success=False, error=str(e))
        return NotificationOutcome(channel=channel, success=True)

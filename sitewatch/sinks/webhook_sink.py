"""
Webhook sink for posting notifications as JSON.
"""

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from sitewatch.errors import NotificationDeliveryError
from sitewatch.infra.http import HttpClient
from sitewatch.interfaces import WebhookSender


logger = logging.getLogger(__name__)


class WebhookSink(WebhookSender):
    """Sink that calls configured webhooks, one attempt per notification."""

    name = "webhook"

    def __init__(self, http: HttpClient):
        self.http = http

    async def invoke(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        useragent: Optional[str],
        payload: Dict[str, Any],
    ) -> None:
        try:
            status, text = await self.http.send_json(
                method, url, payload, headers=headers, useragent=useragent
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotificationDeliveryError(f"webhook {method} {url} failed: {e}") from e

        if not 200 <= status < 300:
            raise NotificationDeliveryError(
                f"webhook {method} {url} returned status {status}: {text[:200]}"
            )
        logger.info(f"Webhook {method} {url} delivered ({status})")

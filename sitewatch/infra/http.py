"""
http.py – Async HTTP client built on *aiohttp* with proxy routing and
          a default user-agent. One request per call, no retries:
          retrying is the job of the retry controller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import aiohttp

from sitewatch import DEFAULT_USERAGENT
from sitewatch.config import ProxyConfig, WatchConfig
from sitewatch.models import FetchResult

logger = logging.getLogger(__name__)


def bypasses_proxy(url: str, no_proxy: str) -> bool:
    """Return True when the host of *url* is excluded by a no_proxy list.

    Entries are comma separated. ``*`` matches every host, ``example.com``
    and ``.example.com`` both match the domain and its subdomains, and an
    entry may pin a port (``internal:8080``).
    """
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    try:
        port = parts.port or (443 if parts.scheme == "https" else 80)
    except ValueError:
        port = None

    for entry in no_proxy.split(","):
        entry = entry.strip().lower()
        if not entry:
            continue
        if entry == "*":
            return True
        entry_host, _, entry_port = entry.rpartition(":") if entry.count(":") == 1 else (entry, "", "")
        if entry_port and entry_port != str(port):
            continue
        entry_host = entry_host.lstrip(".")
        if host == entry_host or host.endswith("." + entry_host):
            return True
    return False


class HttpClient:
    """
    Thin wrapper over *aiohttp.ClientSession* adding:

    * per-request headers on top of a default user-agent
    * proxy routing with basic auth and a no_proxy exclusion list
    * transport failures reported as data instead of exceptions in ``fetch``
    * async context-manager support
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        useragent: str = DEFAULT_USERAGENT,
        proxy: Optional[ProxyConfig] = None,
    ) -> None:
        self._external_session = session
        self._timeout = timeout
        self._useragent = useragent
        self._proxy = proxy
        self._own_session: Optional[aiohttp.ClientSession] = None

    # ---------------------------------------------- #
    # Async context-manager
    async def __aenter__(self) -> "HttpClient":  # noqa: D401
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    # ---------------------------------------------- #
    # Session management
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._external_session:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._own_session = aiohttp.ClientSession(timeout=timeout)
        return self._own_session

    async def close(self) -> None:
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()
            self._own_session = None

    # ---------------------------------------------- #
    # Internal helpers
    def _merge_headers(self, useragent: Optional[str], extra: Mapping[str, str] | None) -> Dict[str, str]:
        merged: Dict[str, str] = {"User-Agent": useragent or self._useragent}
        if extra:
            merged.update(extra)
        return merged

    def proxy_for(self, url: str) -> Tuple[Optional[str], Optional[aiohttp.BasicAuth]]:
        """Proxy URL and credentials to use for *url*, or (None, None)."""
        if self._proxy is None or not self._proxy.url:
            return None, None
        if bypasses_proxy(url, self._proxy.no_proxy):
            return None, None
        auth = None
        if self._proxy.username:
            auth = aiohttp.BasicAuth(self._proxy.username, self._proxy.password or "")
        return self._proxy.url, auth

    # ---------------------------------------------- #
    # Public helpers
    async def fetch(self, watch: WatchConfig) -> FetchResult:
        """Issue the request described by *watch* exactly once.

        HTTP error statuses come back as ordinary results; only transport
        failures set ``FetchResult.error``.
        """
        session = await self._ensure_session()
        headers = self._merge_headers(watch.useragent, watch.header)
        proxy, proxy_auth = self.proxy_for(watch.url)
        data = watch.body.encode("utf-8") if watch.body else None

        started = time.perf_counter()
        try:
            async with session.request(
                watch.method,
                watch.url,
                headers=headers,
                data=data,
                proxy=proxy,
                proxy_auth=proxy_auth,
            ) as resp:
                body = await resp.read()
                elapsed = time.perf_counter() - started
                logger.debug(
                    "HTTP %s %s -> %d (%d bytes, %.2fs)",
                    watch.method, watch.url, resp.status, len(body), elapsed,
                )
                return FetchResult(
                    url=watch.url,
                    status=resp.status,
                    body=body,
                    headers={k: v for k, v in resp.headers.items()},
                    elapsed=elapsed,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            elapsed = time.perf_counter() - started
            reason = str(e).splitlines()[0] if str(e) else ""
            error = f"{type(e).__name__}: {reason}" if reason else type(e).__name__
            logger.debug("HTTP %s %s failed after %.2fs: %s", watch.method, watch.url, elapsed, error)
            return FetchResult(url=watch.url, elapsed=elapsed, error=error)

    async def send_json(
        self,
        method: str,
        url: str,
        payload: Any,
        *,
        headers: Optional[Mapping[str, str]] = None,
        useragent: Optional[str] = None,
    ) -> Tuple[int, str]:
        """Send *payload* as JSON and return (status, body text).

        Transport errors propagate as aiohttp exceptions.
        """
        session = await self._ensure_session()
        proxy, proxy_auth = self.proxy_for(url)
        kwargs: Dict[str, Any] = {
            "headers": self._merge_headers(useragent, headers),
            "proxy": proxy,
            "proxy_auth": proxy_auth,
        }
        if method != "GET":
            kwargs["json"] = payload
        async with session.request(method, url, **kwargs) as resp:
            return resp.status, await resp.text()

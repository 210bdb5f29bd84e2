"""Shared fixtures for the sitewatch test suite.

Collaborators that touch the network, SMTP or disk are replaced by the small
fakes below; only ``test_http.py`` talks to a real (local) aiohttp server.
"""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from sitewatch.config import Configuration, WatchConfig, WatchIdentity, parse_config
from sitewatch.errors import NotificationDeliveryError
from sitewatch.interfaces import MailSender, SnapshotStore, WebhookSender
from sitewatch.models import FetchResult, Snapshot


def make_watch(**overrides: Any) -> WatchConfig:
    data: Dict[str, Any] = {"name": "example", "url": "https://example.com/"}
    data.update(overrides)
    return WatchConfig.model_validate(data)


def make_config(watches: Sequence[Dict[str, Any]] = (), **overrides: Any) -> Configuration:
    data: Dict[str, Any] = {
        "retry": {"count": 2, "delay": 0},
        "graceful_timeout": 1,
        "watches": list(watches),
    }
    data.update(overrides)
    return parse_config(data)


def ok(body: str, status: int = 200, url: str = "https://example.com/") -> FetchResult:
    return FetchResult(url=url, status=status, body=body.encode("utf-8"))


def broken(error: str = "ClientConnectorError: refused", url: str = "https://example.com/") -> FetchResult:
    return FetchResult(url=url, error=error)


class FakeStore(SnapshotStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.snapshots: Dict[str, Snapshot] = {
            key: Snapshot(content=content) for key, content in (initial or {}).items()
        }
        self.puts: List[str] = []

    async def get(self, identity: WatchIdentity) -> Optional[Snapshot]:
        return self.snapshots.get(identity.key)

    async def put(self, identity: WatchIdentity, snapshot: Snapshot) -> None:
        self.snapshots[identity.key] = snapshot
        self.puts.append(snapshot.content)


class FakeHttp:
    """Replays scripted fetch results, repeating the last one when exhausted."""

    def __init__(self, *results: FetchResult):
        self.results = list(results)
        self.calls = 0

    async def fetch(self, watch: WatchConfig) -> FetchResult:
        self.calls += 1
        index = min(self.calls, len(self.results)) - 1
        return self.results[index]


class FakeMail(MailSender):
    name = "mail"

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.sent: List[Dict[str, Any]] = []
        self.attempts = 0

    async def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise NotificationDeliveryError("smtp down")
        self.sent.append({"recipients": list(recipients), "subject": subject, "body": body})


class FakeWebhook(WebhookSender):
    name = "webhook"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []

    async def invoke(self, url, method, headers, useragent, payload) -> None:
        self.calls.append({"url": url, "method": method, "payload": payload})
        if self.fail:
            raise NotificationDeliveryError("webhook returned status 500")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def mail() -> FakeMail:
    return FakeMail()


@pytest.fixture
def webhook() -> FakeWebhook:
    return FakeWebhook()

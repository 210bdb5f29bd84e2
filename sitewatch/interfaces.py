"""
Core interfaces for the watch pipeline.

The pipeline only talks to its collaborators through these abstractions, so
the storage engine and the delivery transports can be swapped (or faked in
tests) without touching the pipeline itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Sequence

from .config import WatchIdentity
from .models import Snapshot


class SnapshotStore(ABC):
    """Durable last-known content, keyed by watch identity."""

    @abstractmethod
    async def get(self, identity: WatchIdentity) -> Optional[Snapshot]:
        """Return the stored snapshot, or None for a never seen watch."""
        ...

    @abstractmethod
    async def put(self, identity: WatchIdentity, snapshot: Snapshot) -> None:
        """Store *snapshot*, replacing any previous one (last write wins)."""
        ...


class MailSender(ABC):
    """Abstract base class for mail delivery."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this channel."""
        pass

    @abstractmethod
    async def send(self, recipients: Sequence[str], subject: str, body: str) -> None:
        """Deliver one mail. Raises NotificationDeliveryError on failure."""
        pass


class WebhookSender(ABC):
    """Abstract base class for webhook delivery."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this channel."""
        pass

    @abstractmethod
    async def invoke(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str],
        useragent: Optional[str],
        payload: Dict[str, Any],
    ) -> None:
        """Call one webhook once. Raises NotificationDeliveryError on failure."""
        pass

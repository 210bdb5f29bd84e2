"""
Core data models for the watch pipeline.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .config import WatchIdentity


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FetchResult(BaseModel):
    """Outcome of one HTTP request."""
    url: str
    status: int = 0
    body: bytes = b""
    headers: Dict[str, str] = Field(default_factory=dict)
    elapsed: float = 0.0  # seconds
    error: Optional[str] = None  # set only on transport failure
    fetched_at: datetime = Field(default_factory=utcnow)

    @property
    def transport_failed(self) -> bool:
        return self.error is not None

    @property
    def status_ok(self) -> bool:
        return 200 <= self.status < 400


class Accepted(BaseModel):
    """Content that passed classification and may be diffed."""
    kind: Literal["accepted"] = "accepted"
    content: str
    status: int
    # the status was an exempted error status: no diff, no snapshot, no notification
    exempt_status: bool = False


class SoftError(BaseModel):
    """A transient condition worth retrying."""
    kind: Literal["soft_error"] = "soft_error"
    reason: str
    category: str


class HardError(BaseModel):
    """A terminal failure of one invocation, reported to the operator."""
    kind: Literal["hard_error"] = "hard_error"
    reason: str
    category: str
    status: Optional[int] = None
    body: Optional[str] = None


Classification = Union[Accepted, SoftError, HardError]


class Snapshot(BaseModel):
    """Last accepted content of a watch."""
    content: str
    last_seen: datetime = Field(default_factory=utcnow)


class Unchanged(BaseModel):
    first_run: bool = False


class ChangeEvent(BaseModel):
    """Content differs from the stored snapshot."""
    identity: WatchIdentity
    old: str
    new: str
    detected_at: datetime = Field(default_factory=utcnow)


DiffResult = Union[Unchanged, ChangeEvent]


class Notification(BaseModel):
    """A composed message, ready for every channel."""
    kind: Literal["changed", "error"]
    identity: WatchIdentity
    description: str = ""
    subject: str
    text: str
    reason: Optional[str] = None
    diff: Optional[str] = None
    old: Optional[str] = None
    new: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    def payload(self) -> Dict[str, Any]:
        """JSON payload sent to webhooks."""
        data: Dict[str, Any] = {
            "event": self.kind,
            "name": self.identity.name,
            "url": self.identity.url,
            "description": self.description,
            "subject": self.subject,
            "timestamp": self.created_at.isoformat(),
        }
        if self.reason is not None:
            data["reason"] = self.reason
        if self.diff is not None:
            data["diff"] = self.diff
            data["old"] = self.old
            data["new"] = self.new
        return data


class NotificationOutcome(BaseModel):
    """Delivery result of one channel."""
    channel: str
    success: bool
    attempts: int = 1
    error: Optional[str] = None


class InvocationResult(BaseModel):
    """Summary of one pipeline invocation of a watch."""
    identity: WatchIdentity
    classification: Classification = Field(discriminator="kind")
    change: Optional[ChangeEvent] = None
    snapshot_written: bool = False
    outcomes: List[NotificationOutcome] = Field(default_factory=list)

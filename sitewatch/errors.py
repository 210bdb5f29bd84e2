"""
Error taxonomy for the watch pipeline.

Every error raised by the pipeline derives from :class:`WatcherError`. The
``category`` attribute is what ends up on a classification record, so logs and
notifications name the error kind without carrying the exception object.
"""

from __future__ import annotations

from typing import Optional


class WatcherError(Exception):
    """Base class for all pipeline errors."""

    category = "error"


class ConfigError(WatcherError):
    """Configuration file could not be loaded or failed validation."""

    category = "config"


class TransportError(WatcherError):
    """Network level failure: DNS, TLS, timeout, connection reset."""

    category = "transport"


class StatusError(WatcherError):
    """HTTP status outside the acceptable range."""

    category = "status"

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"unexpected HTTP status {status}")


class ContentSoftError(WatcherError):
    """Transformed content matched a retry pattern."""

    category = "soft_match"

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"content matched retry pattern {pattern!r}")


class RetriesExhaustedError(WatcherError):
    """Soft errors persisted through every retry attempt."""

    category = "retries_exhausted"


class TransformError(WatcherError):
    """Malformed structured content, bad query or unparsable markup.

    Deterministic for a given input, so it is never retried.
    """

    category = "transform"


class NotificationDeliveryError(WatcherError):
    """A single notification channel failed to deliver."""

    category = "delivery"

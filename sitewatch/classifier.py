"""
Outcome classifier – decides whether a fetch is usable, worth a retry, or a
terminal error for this invocation.
"""

from __future__ import annotations

import logging
import re
from typing import AbstractSet, List, Optional, Sequence

from .config import Configuration, TransformOptions, WatchConfig
from .errors import ContentSoftError, StatusError, TransformError, TransportError
from .models import Accepted, Classification, FetchResult, HardError, SoftError
from .transform import decode, transform

logger = logging.getLogger(__name__)

# Cap on the response body quoted in error notifications.
MAX_ERROR_BODY = 4096


def soft_error_patterns(watch: WatchConfig, config: Configuration) -> List[str]:
    """The watch's own retry patterns, or the global list when it has none."""
    return list(watch.retry_on_match) if watch.retry_on_match else list(config.retry_on_match)


def exempt_statuses(watch: WatchConfig, config: Configuration) -> AbstractSet[int]:
    """Statuses that never trigger an error notification for *watch*."""
    return frozenset(watch.no_errormail_on_statuscode) | frozenset(config.no_errormail_on_statuscode)


def match_soft_error(content: str, patterns: Sequence[str]) -> Optional[str]:
    """Return the first pattern found in *content*, if any."""
    for pattern in patterns:
        if re.search(pattern, content):
            return pattern
    return None


def classify(
    result: FetchResult,
    options: TransformOptions,
    patterns: Sequence[str] = (),
    exempt: AbstractSet[int] = frozenset(),
) -> Classification:
    """Classify one fetch.

    Order of checks: transport failure, HTTP status, transform, retry
    patterns. Exempted error statuses skip the transform and are accepted
    with ``exempt_status`` set unless their body matches a retry pattern.
    """
    if result.transport_failed:
        error = TransportError(result.error)
        return SoftError(reason=str(error), category=error.category)

    if not result.status_ok:
        text = decode(result.body)
        if result.status not in exempt:
            error = StatusError(result.status)
            return HardError(
                reason=str(error),
                category=error.category,
                status=result.status,
                body=text[:MAX_ERROR_BODY],
            )
        matched = match_soft_error(text, patterns)
        if matched is not None:
            soft = ContentSoftError(matched)
            return SoftError(reason=str(soft), category=soft.category)
        logger.debug(f"{result.url}: status {result.status} is exempted from error notifications")
        return Accepted(content=text, status=result.status, exempt_status=True)

    try:
        content = transform(result.body, options)
    except TransformError as e:
        return HardError(reason=str(e), category=e.category, status=result.status)

    matched = match_soft_error(content, patterns)
    if matched is not None:
        soft = ContentSoftError(matched)
        return SoftError(reason=str(soft), category=soft.category)

    return Accepted(content=content, status=result.status)

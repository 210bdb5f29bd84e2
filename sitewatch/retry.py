"""
Retry controller – bounded retry of fetch → transform → classify for one
invocation of a watch.

States::

    PENDING → ATTEMPTING → ACCEPTED                    (terminal)
                         → HARD_ERROR                  (terminal)
                         → SOFT_ERROR → PENDING        (budget left, after delay)
                                      → exhausted      (terminal)
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from .classifier import classify, exempt_statuses, soft_error_patterns
from .config import Configuration, WatchConfig
from .errors import RetriesExhaustedError
from .infra.http import HttpClient
from .models import Classification, HardError, SoftError

logger = logging.getLogger(__name__)


class RetryState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SOFT_ERROR = "soft_error"
    ACCEPTED = "accepted"
    HARD_ERROR = "hard_error"


_STATE_OF_KIND = {
    "accepted": RetryState.ACCEPTED,
    "soft_error": RetryState.SOFT_ERROR,
    "hard_error": RetryState.HARD_ERROR,
}


class RetryController:
    """Runs attempts for a watch until one is terminal or the budget is spent."""

    def __init__(self, http: HttpClient, config: Configuration):
        self.http = http
        self.config = config

    @property
    def max_attempts(self) -> int:
        return self.config.retry.count + 1

    async def attempt(self, watch: WatchConfig) -> Classification:
        result = await self.http.fetch(watch)
        return classify(
            result,
            watch.transform_options,
            soft_error_patterns(watch, self.config),
            exempt_statuses(watch, self.config),
        )

    async def run(self, watch: WatchConfig) -> Classification:
        """Return the terminal classification of this invocation.

        A returned SoftError means the watch suppresses escalation of
        exhausted soft errors: the invocation is a non-event.
        """
        delay = self.config.retry.delay.total_seconds()
        state = RetryState.PENDING
        attempt = 0
        outcome: Classification

        while True:
            if state is RetryState.PENDING:
                attempt += 1
                state = RetryState.ATTEMPTING
            elif state is RetryState.ATTEMPTING:
                outcome = await self.attempt(watch)
                state = _STATE_OF_KIND[outcome.kind]
            elif state is RetryState.SOFT_ERROR:
                if attempt >= self.max_attempts:
                    return self._exhausted(watch, outcome, attempt)
                logger.warning(
                    f"{watch.identity}: soft error on attempt {attempt}/{self.max_attempts} "
                    f"({outcome.reason}), retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                state = RetryState.PENDING
            else:
                if attempt > 1:
                    logger.info(f"{watch.identity}: {state.value} after {attempt} attempts")
                return outcome

    def _exhausted(self, watch: WatchConfig, last: SoftError, attempts: int) -> Classification:
        if watch.skip_soft_error_patterns:
            logger.info(
                f"{watch.identity}: still failing after {attempts} attempts ({last.reason}), "
                "escalation suppressed for this watch"
            )
            return last
        error = RetriesExhaustedError(f"giving up after {attempts} attempts: {last.reason}")
        logger.error(f"{watch.identity}: {error}")
        return HardError(reason=str(error), category=error.category)

"""
Per-invocation glue: retry → classify → diff → snapshot → notify.
"""

import asyncio
import logging
from typing import Set, cast

from .config import WatchConfig
from .differ import Differ
from .dispatcher import Dispatcher
from .interfaces import SnapshotStore
from .models import Accepted, ChangeEvent, HardError, InvocationResult, Snapshot, SoftError
from .retry import RetryController

logger = logging.getLogger(__name__)


class WatchRunner:
    """Runs one invocation of a watch from fetch to notification."""

    def __init__(
        self,
        retry: RetryController,
        differ: Differ,
        store: SnapshotStore,
        dispatcher: Dispatcher,
    ):
        self.retry = retry
        self.differ = differ
        self.store = store
        self.dispatcher = dispatcher
        self._pending_writes: Set[asyncio.Future] = set()

    async def run(self, watch: WatchConfig) -> InvocationResult:
        identity = watch.identity
        classification = await self.retry.run(watch)
        result = InvocationResult(identity=identity, classification=classification)

        if isinstance(classification, SoftError):
            logger.info(f"{identity}: skipped ({classification.reason})")
            return result

        if isinstance(classification, HardError):
            logger.error(f"{identity}: {classification.category}: {classification.reason}")
            result.outcomes = await self.dispatcher.notify_error(watch, classification)
            return result

        accepted = cast(Accepted, classification)
        if accepted.exempt_status:
            logger.info(f"{identity}: status {accepted.status} is exempt, nothing to do")
            return result

        change = await self.differ.diff(identity, accepted.content)

        # the write must complete even if this invocation is being cancelled
        write = asyncio.ensure_future(self.store.put(identity, Snapshot(content=accepted.content)))
        self._pending_writes.add(write)
        write.add_done_callback(self._pending_writes.discard)
        await asyncio.shield(write)
        result.snapshot_written = True

        if isinstance(change, ChangeEvent):
            result.change = change
            result.outcomes = await self.dispatcher.notify_change(watch, change)
        else:
            logger.debug(f"{identity}: unchanged")
        return result

    async def wait_for_writes(self, timeout: float) -> int:
        """Wait up to *timeout* seconds for snapshot writes still in flight.

        Returns how many were still pending when the timeout expired.
        """
        if not self._pending_writes:
            return 0
        _, pending = await asyncio.wait(set(self._pending_writes), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} snapshot write(s) still pending after {timeout}s")
        return len(pending)

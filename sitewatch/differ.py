"""
Diff engine – compares accepted content against the stored snapshot.
"""

import difflib
import logging

from .config import WatchIdentity
from .interfaces import SnapshotStore
from .models import ChangeEvent, DiffResult, Unchanged

logger = logging.getLogger(__name__)


class Differ:
    """Looks up the previous snapshot of a watch and reports a change, if any."""

    def __init__(self, store: SnapshotStore):
        self.store = store

    async def diff(self, identity: WatchIdentity, content: str) -> DiffResult:
        previous = await self.store.get(identity)

        # never seen before: record it, but don't alert on the first run
        if previous is None:
            logger.info(f"{identity}: first run, storing initial snapshot")
            return Unchanged(first_run=True)

        if previous.content == content:
            return Unchanged()

        logger.info(f"{identity}: content changed")
        return ChangeEvent(identity=identity, old=previous.content, new=content)


def render_diff(old: str, new: str, context: int = 3) -> str:
    """Unified diff of two contents, for notification bodies."""
    lines = difflib.unified_diff(
        old.splitlines(),
        new.splitlines(),
        fromfile="previous",
        tofile="current",
        n=context,
        lineterm="",
    )
    return "\n".join(lines)

"""
Orchestrator for scheduling watch invocations.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from .config import Configuration, WatchConfig
from .infra.scheduler import Scheduler
from .models import InvocationResult
from .pipeline import WatchRunner


logger = logging.getLogger(__name__)


class Orchestrator:
    """Schedules every enabled watch and keeps at most one invocation per watch in flight."""

    def __init__(
        self,
        config: Configuration,
        runner: WatchRunner,
        scheduler: Optional[Scheduler] = None,
    ):
        self.config = config
        self.runner = runner
        self.scheduler = scheduler or Scheduler(timezone=config.timezone)

        self._watches: Dict[str, WatchConfig] = {w.identity.key: w for w in config.enabled_watches}
        self._jobs: Dict[str, str] = {}  # identity key -> job id
        self._inflight: Dict[str, asyncio.Task] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> Dict[str, str]:
        return dict(self._jobs)

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def trigger(self, watch: WatchConfig) -> Optional[asyncio.Task]:
        """Start one invocation of *watch* unless one is still running."""
        key = watch.identity.key
        if key in self._inflight:
            logger.warning(f"{watch.identity}: previous invocation still running, skipping this trigger")
            return None

        task = asyncio.create_task(self._invoke(watch), name=f"watch:{key}")
        self._inflight[key] = task
        task.add_done_callback(lambda _t, key=key: self._inflight.pop(key, None))
        return task

    async def _fire(self, key: str) -> None:
        # scheduler callback: returns at once, the invocation runs as its own task
        if not self._running:
            return
        watch = self._watches.get(key)
        if watch is None:
            logger.error(f"No watch registered for job {key}")
            return
        self.trigger(watch)

    async def _invoke(self, watch: WatchConfig) -> Optional[InvocationResult]:
        try:
            return await self.runner.run(watch)
        except asyncio.CancelledError:
            logger.warning(f"{watch.identity}: invocation cancelled")
            raise
        except Exception:
            logger.exception(f"{watch.identity}: invocation failed unexpectedly")
            return None

    async def start(self) -> None:
        """Start the scheduler and register one job per enabled watch."""
        if self._running:
            return

        self._running = True
        await self.scheduler.start()

        for key, watch in self._watches.items():
            self.scheduler.add_job(
                self._fire,
                watch.cron,
                job_id=key,
                args=[key],
                name=watch.name,
            )
            self._jobs[key] = key
            logger.info(f"Scheduled watch '{watch.name}' ({watch.url}) with schedule '{watch.cron}'")

        logger.info(f"Orchestrator started with {len(self._jobs)} watch(es)")

    async def stop(self) -> None:
        """Stop triggering, give running invocations a grace period, cancel the rest."""
        if not self._running:
            return

        self._running = False
        await self.scheduler.stop()
        self._jobs.clear()

        pending = list(self._inflight.values())
        if pending:
            grace = self.config.graceful_timeout.total_seconds()
            logger.info(f"Waiting up to {grace:.1f}s for {len(pending)} running invocation(s)")
            _, still_running = await asyncio.wait(pending, timeout=grace)
            for task in still_running:
                task.cancel()
            if still_running:
                logger.warning(f"Cancelled {len(still_running)} invocation(s) after graceful timeout")
                await asyncio.gather(*still_running, return_exceptions=True)

        logger.info("Orchestrator stopped")

    async def run_once(self) -> List[Optional[InvocationResult]]:
        """Run every enabled watch once, concurrently, and wait for all of them."""
        tasks = [t for t in (self.trigger(w) for w in self._watches.values()) if t is not None]
        return list(await asyncio.gather(*tasks))

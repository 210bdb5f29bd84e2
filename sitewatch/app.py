"""
Wires the watcher components together and runs them until asked to stop.
"""

import asyncio
import logging
from typing import List, Optional

from .config import Configuration
from .differ import Differ
from .dispatcher import Dispatcher
from .infra.db import Database, SqliteSnapshotStore
from .infra.http import HttpClient
from .models import InvocationResult
from .orchestrator import Orchestrator
from .pipeline import WatchRunner
from .retry import RetryController
from .sinks import MailSink, WebhookSink


logger = logging.getLogger(__name__)


async def run_watcher(
    config: Configuration,
    *,
    once: bool = False,
    stop_event: Optional[asyncio.Event] = None,
) -> List[Optional[InvocationResult]]:
    """Run the watcher.

    With ``once`` every enabled watch runs a single time and the results are
    returned. Otherwise the watches are scheduled and the call returns after
    ``stop_event`` is set and the orchestrator has shut down.
    """
    db = Database(config.database)
    http = HttpClient(
        timeout=config.timeout.total_seconds(),
        useragent=config.useragent,
        proxy=config.proxy,
    )

    runner: Optional[WatchRunner] = None
    await db.connect()
    try:
        async with http:
            store = SqliteSnapshotStore(db)
            mail = MailSink(config.mail) if config.mail else None
            if mail is None:
                logger.info("No mail server configured, notifications go to webhooks only")

            dispatcher = Dispatcher(config, mail=mail, webhooks=WebhookSink(http))
            runner = WatchRunner(RetryController(http, config), Differ(store), store, dispatcher)
            orchestrator = Orchestrator(config, runner)

            logger.info(f"Loaded {len(config.enabled_watches)} enabled watch(es) of {len(config.watches)}")
            for watch in config.enabled_watches:
                logger.info(f"  - {watch.name}: {watch.url} ({watch.cron})")

            if once:
                return await orchestrator.run_once()

            stop_event = stop_event or asyncio.Event()
            await orchestrator.start()
            try:
                await stop_event.wait()
            finally:
                await orchestrator.stop()
            return []
    finally:
        if runner is not None:
            await runner.wait_for_writes(config.graceful_timeout.total_seconds())
        await db.close()

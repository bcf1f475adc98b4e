"""
Periodic activation log fetching for the running session
"""

import asyncio
from typing import Optional

import structlog

from ..clients.runtime import RuntimeService
from ..core.config import AppConfig

logger = structlog.get_logger(__name__)

FETCH_LOGS_INTERVAL = 10.0
FIRST_FETCH_LIMIT = 1
FETCH_LIMIT = 30


class LogPoller:
    """Fetches new activation logs every ``interval`` seconds until cleaned up"""

    def __init__(
        self,
        config: AppConfig,
        runtime: RuntimeService,
        interval: float = FETCH_LOGS_INTERVAL
    ):
        self.config = config
        self.runtime = runtime
        self.interval = interval
        self.since: Optional[int] = None
        self.polls = 0
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "LogPoller":
        logger.info("fetching action logs...")
        self._task = asyncio.create_task(self._run())
        return self

    async def poll_once(self) -> None:
        limit = FIRST_FETCH_LIMIT if self.polls == 0 else FETCH_LIMIT
        self.polls += 1
        try:
            self.since = await self.runtime.fetch_logs(self.config, limit=limit, since=self.since)
        except Exception as e:
            logger.error("error while fetching action logs", error=str(e))

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    async def cleanup(self) -> None:
        logger.debug("stopping action log poller...")
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

"""
Change Scheduler for backend units

Turns file changes under the backend source tree into serialized
rebuild+redeploy cycles of the affected units.
"""

import os
from typing import Callable, List, Optional

import structlog

from ..clients.runtime import RuntimeService
from ..core.config import AppConfig
from .actions import build_and_deploy
from .hooks import HookRunner
from .watcher import FileWatcher

logger = structlog.get_logger(__name__)


class ChangeScheduler:
    """
    Serializes rebuild+redeploy cycles triggered by file changes

    At most one cycle is in flight. Changes observed meanwhile are coalesced:
    only the latest path is remembered, and exactly one more cycle runs once
    the current one completes. A failed cycle stops the watcher for good.
    """

    def __init__(
        self,
        config: AppConfig,
        runtime: RuntimeService,
        hooks: HookRunner,
        is_local: bool = False,
        watcher_factory: Callable[..., FileWatcher] = FileWatcher,
        debounce_ms: int = 100
    ):
        self.config = config
        self.runtime = runtime
        self.hooks = hooks
        self.is_local = is_local
        self.source_root = os.path.realpath(config.abs_path(config.backend.src))
        self.watcher: Optional[FileWatcher] = None
        self._watcher_factory = watcher_factory
        self._debounce_ms = debounce_ms

        # Deploy latch
        self._in_flight = False
        self._changed = False
        self._pending_path: Optional[str] = None
        self._stopped = False

        self.stats = {
            "cycles": 0,
            "coalesced": 0,
            "unmatched": 0,
            "failed": 0
        }

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def is_watching(self) -> bool:
        return self.watcher is not None and self.watcher.is_running

    def start(self, source_root: Optional[str] = None) -> "ChangeScheduler":
        """Start watching the backend source tree"""

        if source_root:
            self.source_root = os.path.realpath(self.config.abs_path(source_root))

        logger.info(f"watching action files at {self.source_root}...")
        self.watcher = self._watcher_factory(
            [self.source_root],
            self.on_change,
            debounce_ms=self._debounce_ms
        )
        self.watcher.start()
        return self

    async def cleanup(self) -> None:
        logger.debug("stopping action watcher...")
        self._stop_watching()

    def resolve_units(self, file_path: str) -> List[str]:
        """
        Qualified names of the units whose declared sources overlap a path

        Overlap is plain substring containment in either direction, so a unit
        declared as a folder matches files inside it and a unit declared as a
        file matches when that file changes. Both sides are compared
        with symlinks resolved, the way the watcher reports paths.
        """
        changed = os.path.realpath(self.config.abs_path(file_path))
        names = []
        for unit in self.config.backend.units:
            for source in unit.sources:
                declared = os.path.realpath(self.config.abs_path(source))
                if changed in declared or declared in changed:
                    names.append(unit.qualified_name)
                    break
        return names

    async def on_change(self, file_path: str, event_type: Optional[str] = None) -> None:
        """Handle one watch event"""

        if self._stopped:
            return

        if self._in_flight:
            logger.debug(
                f"{file_path} has changed. Deploy in progress. "
                "This change will be deployed after completion of current deployment."
            )
            self._pending_path = file_path
            self._changed = True
            self.stats["coalesced"] += 1
            return

        self._in_flight = True
        try:
            path = file_path
            while await self._run_cycle(path) and self._changed:
                logger.debug("Code changed during deployment. Triggering deploy again.")
                path = self._pending_path
                self._changed = False
                self._pending_path = None
        finally:
            self._in_flight = False
            self._changed = False
            self._pending_path = None

    async def _run_cycle(self, file_path: str) -> bool:
        """Run one build+deploy cycle; returns False if watching was stopped"""

        units = self.resolve_units(file_path)
        if not units:
            self.stats["unmatched"] += 1
            logger.info(
                f"{file_path} does not belong to any action, "
                "restart the dev environment to pick up this change"
            )
            return True

        logger.debug(f"{file_path} has changed. Redeploying actions: {', '.join(units)}")
        try:
            await build_and_deploy(
                self.config,
                self.runtime,
                self.hooks,
                is_local=self.is_local,
                unit_filter=units
            )
        except Exception as e:
            self.stats["failed"] += 1
            logger.error("  -> Error encountered while deploying actions. Stopping auto refresh.", error=str(e))
            self._stop_watching()
            return False

        self.stats["cycles"] += 1
        logger.debug("Deployment successful")
        return True

    def _stop_watching(self) -> None:
        self._stopped = True
        if self.watcher:
            self.watcher.stop()

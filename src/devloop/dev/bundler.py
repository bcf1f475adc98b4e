"""
Default frontend bundler: mirrors the frontend sources into the dev dist dir
"""

import asyncio
import os
import shutil
from pathlib import Path
from typing import Callable, Optional

import structlog

from ..exceptions.base import ConfigurationError
from .watcher import FileWatcher

logger = structlog.get_logger(__name__)


def copy_tree(src: str, dest: str) -> int:
    """Copy every file under ``src`` to ``dest``; returns the file count"""
    count = 0
    for root, _, files in os.walk(src):
        target = Path(dest) / Path(root).relative_to(src)
        target.mkdir(parents=True, exist_ok=True)
        for name in files:
            shutil.copy2(os.path.join(root, name), target / name)
            count += 1
    return count


class StaticBundler:
    """
    Copies frontend sources into the dist dir and keeps the copy current

    Used when the project has no ``build-static`` hook. Changed files are
    re-copied one by one while the bundler is watching.
    """

    def __init__(
        self,
        src: str,
        dist: str,
        watcher_factory: Callable[..., FileWatcher] = FileWatcher,
        watch: bool = True
    ):
        self.src = os.path.realpath(src)
        self.dist = os.path.realpath(dist)
        self.watch = watch
        self.watcher: Optional[FileWatcher] = None
        self._watcher_factory = watcher_factory

    async def bundle(self) -> "StaticBundler":
        if not os.path.isdir(self.src):
            raise ConfigurationError(f"frontend source {self.src} does not exist", config_key="frontend.src")

        logger.info(f"bundling {self.src} to {self.dist}...")
        count = await asyncio.to_thread(copy_tree, self.src, self.dist)
        logger.debug(f"copied {count} files")

        if self.watch:
            self.watcher = self._watcher_factory(
                [self.src],
                self.on_change,
                ignore_patterns=[]
            )
            self.watcher.start()
        return self

    async def on_change(self, file_path: str, event_type: Optional[str] = None) -> None:
        source = os.path.realpath(file_path)
        if not source.startswith(self.src + os.sep) or not os.path.isfile(source):
            return

        target = os.path.join(self.dist, os.path.relpath(source, self.src))
        await asyncio.to_thread(self._copy_file, source, target)
        logger.debug(f"rebundled {os.path.relpath(source, self.src)}")

    @staticmethod
    def _copy_file(source: str, target: str) -> None:
        Path(target).parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)

    async def cleanup(self) -> None:
        logger.debug("stopping frontend bundler...")
        if self.watcher:
            self.watcher.stop()
            self.watcher = None

"""
File Watcher for the devloop development environment

Monitors file system changes and hands them to the asyncio event loop.
"""

import asyncio
import fnmatch
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set
from dataclasses import dataclass
from enum import Enum

import structlog
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = structlog.get_logger(__name__)


class ChangeType(Enum):
    """Types of file system changes"""
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"
    MOVED = "moved"


@dataclass
class WatchEvent:
    """A file system change observed by the watcher"""
    path: str
    timestamp: float
    change_type: ChangeType = ChangeType.MODIFIED


DEFAULT_IGNORE_PATTERNS = [
    '*.pyc', '*.pyo', '__pycache__', '.git', '.venv',
    'node_modules', '.pytest_cache', '*.log', '.DS_Store', '*.swp', '*~'
]

DEFAULT_CHANGE_TYPES = frozenset({ChangeType.CREATED, ChangeType.MODIFIED, ChangeType.MOVED})


class _LoopEventHandler(FileSystemEventHandler):
    """Forwards watchdog events (observer thread) to the watcher's loop"""

    _TYPES = {
        'created': ChangeType.CREATED,
        'modified': ChangeType.MODIFIED,
        'deleted': ChangeType.DELETED,
        'moved': ChangeType.MOVED
    }

    def __init__(self, watcher: "FileWatcher", target: Optional[str] = None):
        super().__init__()
        self.watcher = watcher
        # Set when a single file is watched through its parent directory
        self.target = target

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory:
            return

        change_type = self._TYPES.get(event.event_type)
        if change_type is None:
            return

        path = getattr(event, 'dest_path', None) if change_type is ChangeType.MOVED else None
        path = path or event.src_path
        if self.target is not None and path != self.target:
            return
        self.watcher.notify(path, change_type)


class FileWatcher:
    """
    File system watcher with debouncing and filtering

    Features:
    - watchdog observer threads, callbacks always run on the event loop
    - Debouncing to collapse bursts of events on the same file
    - Glob include/ignore filtering
    - Async or sync callbacks
    """

    def __init__(
        self,
        paths: Iterable[str],
        callback: Callable[[str, str], Any],
        debounce_ms: int = 100,
        file_patterns: Optional[List[str]] = None,
        ignore_patterns: Optional[List[str]] = None,
        change_types: Iterable[ChangeType] = DEFAULT_CHANGE_TYPES,
        recursive: bool = True
    ):
        """
        Initialize file watcher

        Args:
            paths: Files or directories to watch
            callback: Called with (path, change type value) for each change
            debounce_ms: Debounce time in milliseconds
            file_patterns: File patterns to watch, all files when omitted
            ignore_patterns: Patterns to ignore
            change_types: Kinds of change forwarded to the callback
            recursive: Watch subdirectories recursively
        """
        self.paths = [Path(p).resolve() for p in paths]
        self.callback = callback
        self.debounce_ms = debounce_ms
        self.recursive = recursive
        self.file_patterns = file_patterns
        self.ignore_patterns = DEFAULT_IGNORE_PATTERNS if ignore_patterns is None else ignore_patterns
        self.change_types = frozenset(change_types)

        # State tracking
        self.observer = None
        self.is_running = False
        self._change_queue: Dict[str, WatchEvent] = {}
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()

        self.stats = {
            "events_received": 0,
            "events_processed": 0,
            "events_debounced": 0,
            "events_filtered": 0
        }

    def start(self):
        """Start watching; must be called from the running event loop"""

        if self.is_running:
            return

        self._loop = asyncio.get_running_loop()
        logger.debug(f"Starting file watcher for {len(self.paths)} paths")

        self.observer = Observer()
        handler = _LoopEventHandler(self)

        for path in self.paths:
            if not path.exists():
                logger.warning(f"Watch path does not exist: {path}")
                continue
            if path.is_file():
                self.observer.schedule(_LoopEventHandler(self, str(path)), str(path.parent), recursive=False)
            else:
                self.observer.schedule(handler, str(path), recursive=self.recursive)
            logger.debug(f"Watching: {path}")

        self.observer.start()
        self.is_running = True

    def stop(self):
        """Stop watching for file changes"""

        if not self.is_running:
            return

        logger.debug("Stopping file watcher")
        self.is_running = False

        if self.observer:
            self.observer.stop()
            self.observer.join()
            self.observer = None

        if self._debounce_handle:
            self._debounce_handle.cancel()
            self._debounce_handle = None

        self._change_queue.clear()

    def notify(self, file_path: str, change_type: ChangeType):
        """Thread-safe entry point for observer events"""

        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._handle_event, file_path, change_type)

    def _handle_event(self, file_path: str, change_type: ChangeType):
        """Handle a file system event on the event loop"""

        if not self.is_running:
            return

        self.stats["events_received"] += 1

        if change_type not in self.change_types or not self._should_watch_file(Path(file_path)):
            self.stats["events_filtered"] += 1
            return

        self._change_queue[file_path] = WatchEvent(
            path=file_path,
            timestamp=time.time(),
            change_type=change_type
        )

        # Restart debounce timer
        if self._debounce_handle:
            self._debounce_handle.cancel()
            self.stats["events_debounced"] += 1

        self._debounce_handle = self._loop.call_later(
            self.debounce_ms / 1000.0,
            self._process_changes
        )

    def _process_changes(self):
        """Process queued file changes after debounce period"""

        self._debounce_handle = None
        if not self._change_queue or not self.is_running:
            return

        changes = sorted(self._change_queue.values(), key=lambda change: change.timestamp)
        self._change_queue.clear()

        logger.debug(f"Processing {len(changes)} file changes")

        for change in changes:
            self.stats["events_processed"] += 1

            try:
                result = self.callback(change.path, change.change_type.value)
            except Exception as e:
                logger.error(f"Error in file change callback: {e}")
                continue

            if asyncio.iscoroutine(result):
                task = self._loop.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

    def _should_watch_file(self, file_path: Path) -> bool:
        """Check if a file should be watched"""

        file_name = file_path.name

        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(file_name, pattern):
                return False
            if any(fnmatch.fnmatch(part, pattern) for part in file_path.parts):
                return False

        if not self.file_patterns:
            return True

        return any(fnmatch.fnmatch(file_name, pattern) for pattern in self.file_patterns)

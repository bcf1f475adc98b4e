"""
Resource Ledger for the devloop development environment

Ordered registry of teardown steps, executed once on interrupt or fatal error.
"""

import asyncio
import inspect
import signal
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

Release = Callable[[], Any]


@dataclass
class CleanupEntry:
    """One registered teardown step"""
    release: Release
    label: str


async def _call_release(release: Release) -> None:
    result = release()
    if inspect.isawaitable(result):
        await result


class InterruptDispatcher:
    """
    Process-wide interrupt handler shared by every armed ledger

    Exactly one handler per signal is installed, however many ledgers are
    armed. On interrupt every armed ledger is disarmed and shut down once.
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self):
        self._armed: List["ResourceLedger"] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous: Dict[int, Any] = {}

    @property
    def installed(self) -> bool:
        return self._loop is not None

    @property
    def armed(self) -> Tuple["ResourceLedger", ...]:
        return tuple(self._armed)

    def arm(self, ledger: "ResourceLedger") -> None:
        loop = asyncio.get_running_loop()

        if self._loop is not loop:
            # Ledgers from a previous (closed) loop can never be shut down
            self._uninstall()
            self._armed = [armed for armed in self._armed if armed.loop is loop]

        if ledger not in self._armed:
            self._armed.append(ledger)

        if self._loop is None:
            self._install(loop)

    def disarm(self, ledger: "ResourceLedger") -> None:
        if ledger in self._armed:
            self._armed.remove(ledger)
        if not self._armed:
            self._uninstall()

    def dispatch(self) -> None:
        """Shut down every armed ledger; called from the signal handler"""

        ledgers, self._armed = self._armed, []
        self._uninstall()

        logger.debug(f"Interrupt received, shutting down {len(ledgers)} ledger(s)")
        for ledger in ledgers:
            ledger.interrupt()

    def _install(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self.SIGNALS:
            try:
                loop.add_signal_handler(sig, self.dispatch)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                self._previous[sig] = signal.signal(
                    sig, lambda signum, frame: loop.call_soon_threadsafe(self.dispatch)
                )
        self._loop = loop

    def _uninstall(self) -> None:
        if self._loop is None:
            return

        if not self._loop.is_closed():
            for sig in self.SIGNALS:
                if sig in self._previous:
                    continue
                self._loop.remove_signal_handler(sig)

        for sig, previous in self._previous.items():
            signal.signal(sig, previous)

        self._previous.clear()
        self._loop = None


interrupt_dispatcher = InterruptDispatcher()


class ResourceLedger:
    """
    Ordered registry of teardown actions

    Features:
    - Releases run strictly in registration order, one at a time
    - The first failing release stops the run and propagates
    - Registry is cleared by every run, complete or not
    - Interrupt-triggered shutdown resolves to a process exit code
    """

    def __init__(self, dispatcher: Optional[InterruptDispatcher] = None):
        self._entries: List[CleanupEntry] = []
        self._dispatcher = dispatcher or interrupt_dispatcher
        self._shutdown: Optional[asyncio.Future] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def labels(self) -> List[str]:
        return [entry.label for entry in self._entries]

    def add(self, release: Release, label: str) -> None:
        """Append a teardown step"""
        self._entries.append(CleanupEntry(release=release, label=label))

    async def run(self) -> None:
        """
        Execute every registered release in order

        Raises:
            Exception: the first release failure, after which no further
                releases are executed
        """
        entries, self._entries = self._entries, []

        for entry in entries:
            logger.debug(entry.label)
            try:
                await _call_release(entry.release)
            except Exception as e:
                logger.error(f"Cleanup step failed: {entry.label}", error=str(e))
                raise

    def wait(self) -> "asyncio.Future[int]":
        """
        Arm the ledger to run once on process interrupt

        Returns:
            Future resolving to the exit code of the interrupt-triggered
            shutdown: 0 if every release succeeded, 1 otherwise
        """
        if self._shutdown is not None:
            return self._shutdown

        self.loop = asyncio.get_running_loop()

        if not self._entries:
            keepalive = self.loop.create_future()
            self.add(lambda: keepalive.done() or keepalive.set_result(None), "stopping interrupt waiter...")

        self._shutdown = self.loop.create_future()
        self._dispatcher.arm(self)
        return self._shutdown

    def interrupt(self) -> Optional[asyncio.Task]:
        """Start the interrupt-triggered shutdown (at most once)"""

        if self._shutdown is None or self._shutdown_task is not None:
            return self._shutdown_task

        self._dispatcher.disarm(self)
        self._shutdown_task = self.loop.create_task(self._shutdown_on_interrupt())
        return self._shutdown_task

    async def _shutdown_on_interrupt(self) -> None:
        try:
            await self.run()
        except Exception as e:
            logger.error("unexpected error while cleaning up!", error=str(e))
            exit_code = 1
        else:
            logger.info("exiting!")
            exit_code = 0

        if not self._shutdown.done():
            self._shutdown.set_result(exit_code)

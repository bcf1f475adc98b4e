"""
Dev Coordinator

Top-level sequencer of a development session: backend build/deploy/watch,
frontend config injection, bundling and serving, log polling and shutdown.
"""

import os
from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

from ..clients.runtime import OpenWhiskRuntime, RuntimeService
from ..core.config import DEFAULT_HTTP_PORT, AppConfig
from ..utils.files import write_config
from ..utils.logging import bind_session_mode
from .actions import build_units, deploy_units
from .bundler import StaticBundler
from .debug_config import DebugConfig
from .emulator import EmulatorSession, LocalEmulator
from .hooks import BUILD_STATIC, POST_APP_RUN, PRE_APP_RUN, SERVE_STATIC, HookRunner
from .ledger import ResourceLedger
from .poller import LogPoller
from .scheduler import ChangeScheduler
from .server import FrontendServer, ServeResult
from .watcher import FileWatcher

logger = structlog.get_logger(__name__)


def _default_port() -> int:
    return int(os.getenv("PORT", DEFAULT_HTTP_PORT))


@dataclass
class RunOptions:
    """Options of one development session"""

    # Use the remote runtime instead of the local emulator
    dev_remote: bool = False
    skip_actions: bool = False
    skip_serve: bool = False
    fetch_logs: bool = False
    verbose: bool = False

    port: int = field(default_factory=_default_port)
    https_key: Optional[str] = None
    https_cert: Optional[str] = None

    # Write .vscode/launch.json for the session
    debug_config: bool = False


@dataclass
class DevSession:
    """Everything one coordinator run acquired"""
    config: AppConfig
    ledger: ResourceLedger
    is_local: bool
    with_backend: bool
    has_frontend: bool
    emulator: Optional[EmulatorSession] = None
    scheduler: Optional[ChangeScheduler] = None
    bundler: Optional[StaticBundler] = None
    server: Optional[ServeResult] = None
    poller: Optional[LogPoller] = None
    frontend_url: Optional[str] = None

    @property
    def mode(self) -> str:
        return "local" if self.is_local else "remote"


class DevCoordinator:
    """
    Runs a development session

    Every external resource acquired along the way is registered with the
    session's ResourceLedger. If any step fails, everything registered so far
    is released before the error propagates.
    """

    def __init__(
        self,
        runtime: Optional[RuntimeService] = None,
        emulator: Optional[LocalEmulator] = None,
        frontend_server: Optional[FrontendServer] = None,
        ledger: Optional[ResourceLedger] = None,
        watcher_factory: Callable[..., FileWatcher] = FileWatcher,
        bundler_factory: Callable[..., StaticBundler] = StaticBundler
    ):
        self.runtime = runtime or OpenWhiskRuntime()
        self.emulator = emulator
        self.frontend_server = frontend_server
        self.ledger = ledger if ledger is not None else ResourceLedger()
        self.watcher_factory = watcher_factory
        self.bundler_factory = bundler_factory
        self.session: Optional[DevSession] = None

    async def run(self, config: AppConfig, options: Optional[RunOptions] = None) -> Optional[str]:
        """
        Start the session and arm its interrupt-triggered shutdown

        Returns:
            URL of the served frontend, or None when nothing was served
        """
        options = options or RunOptions()
        is_local = not options.dev_remote
        with_backend = config.has_backend and not options.skip_actions

        session = DevSession(
            config=config,
            ledger=self.ledger,
            is_local=is_local,
            with_backend=with_backend,
            has_frontend=config.has_frontend
        )
        self.session = session
        bind_session_mode(session.mode)

        logger.debug(f"hasFrontend {session.has_frontend}")
        logger.debug(f"withBackend {with_backend}")
        logger.debug(f"isLocal {is_local}")

        try:
            hooks = HookRunner(config.hooks, cwd=config.root)
            await hooks.try_run(PRE_APP_RUN)

            if with_backend:
                await self._start_backend(session, options, hooks)

            if session.has_frontend:
                await self._start_frontend(session, options, hooks)

            if session.has_frontend and session.frontend_url is None:
                # A serve hook may have served the frontend, but not where we can point at
                session.has_frontend = False

            if options.debug_config:
                self._write_debug_config(session)

            if config.has_backend and options.fetch_logs:
                session.poller = LogPoller(session.config, self.runtime).start()
                self.ledger.add(session.poller.cleanup, "stopping event poller...")

            await hooks.try_run(POST_APP_RUN)
        except BaseException:
            logger.error("unexpected error, cleaning up...")
            try:
                await self.ledger.run()
            except Exception as cleanup_error:
                logger.error("cleanup after failure did not complete", error=str(cleanup_error))
            raise

        self.ledger.wait()
        logger.info("press CTRL+C to terminate dev environment")
        return session.frontend_url

    async def _start_backend(self, session: DevSession, options: RunOptions, hooks: HookRunner) -> None:
        if session.is_local:
            emulator = self.emulator or LocalEmulator(verbose=options.verbose)
            session.emulator = await emulator.start(session.config)
            session.config = session.emulator.config
            self.ledger.add(session.emulator.cleanup, "cleaning up local emulator...")
        else:
            self.runtime.check_credentials(session.config)
            logger.info("using remote actions")

        logger.info("rebuilding actions...")
        await build_units(session.config, self.runtime, hooks)
        logger.info("redeploying actions...")
        await deploy_units(session.config, self.runtime, hooks, is_local=session.is_local)

        session.scheduler = ChangeScheduler(
            session.config,
            self.runtime,
            hooks,
            is_local=session.is_local,
            watcher_factory=self.watcher_factory
        ).start()
        self.ledger.add(session.scheduler.cleanup, "stopping action watcher...")

    async def _start_frontend(self, session: DevSession, options: RunOptions, hooks: HookRunner) -> None:
        config = session.config
        urls = {}
        if config.has_backend:
            # Written even when actions are skipped, pointing at deployed endpoints
            logger.info("injecting backend urls into frontend config")
            urls = self.runtime.get_endpoint_urls(
                config,
                use_cdn=True,
                is_local=session.is_local and not options.skip_actions
            )
        write_config(config.abs_path(config.frontend.injected_config), urls)

        if options.skip_serve:
            return

        dist = config.abs_path(config.frontend.dist_dev)
        if not await hooks.try_run(BUILD_STATIC):
            session.bundler = self.bundler_factory(
                config.abs_path(config.frontend.src),
                dist,
                watcher_factory=self.watcher_factory
            )
            await session.bundler.bundle()
            self.ledger.add(session.bundler.cleanup, "cleaning up frontend bundler...")

        if not await hooks.try_run(SERVE_STATIC):
            server = self.frontend_server or FrontendServer(verbose=options.verbose)
            session.server = await server.serve(
                dist,
                options.port,
                https_key=options.https_key,
                https_cert=options.https_cert
            )
            session.frontend_url = session.server.url
            self.ledger.add(session.server.cleanup, "cleaning up frontend server...")

    def _write_debug_config(self, session: DevSession) -> None:
        logger.info("setting up vscode debug configuration files...")
        debug_config = DebugConfig(session.config)
        debug_config.update(
            has_frontend=session.has_frontend,
            with_backend=session.with_backend,
            frontend_url=session.frontend_url
        )
        self.ledger.add(debug_config.cleanup, "cleaning up vscode debug configuration files...")

"""
Frontend Development Server

Serves the bundled frontend assets over HTTP(S) on an available port.
"""

import asyncio
import contextlib
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from ..core.config import DEFAULT_HTTP_PORT
from ..exceptions.base import DevLoopError

logger = structlog.get_logger(__name__)


@dataclass
class ServeResult:
    url: str
    port: int
    cleanup: Callable[[], Awaitable[None]]


class _SessionServer(uvicorn.Server):
    """uvicorn server that leaves interrupt handling to the session"""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind a listening socket on ``port``, or on an OS-assigned port if it is taken
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    if os.name != "nt":
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        if port == 0:
            raise
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind((host, 0))

    sock.set_inheritable(True)
    return sock


LOOPBACK_HOSTS = frozenset({"127.0.0.1", "localhost", "::1", "0.0.0.0", "::"})


def advertised_host(host: str) -> str:
    """Host name put in the served URL for a bind address"""
    if host in LOOPBACK_HOSTS:
        return "localhost"
    return f"[{host}]" if ":" in host else host


def create_app(dist_dir: str) -> FastAPI:
    app = FastAPI(title="devloop frontend", docs_url=None, redoc_url=None, openapi_url=None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.mount("/", StaticFiles(directory=dist_dir, html=True), name="frontend")
    return app


class FrontendServer:
    """
    Static asset server for the bundled frontend

    The requested port is tried first; when it is unavailable the server falls
    back to any free port and says so. HTTPS is used when both a key and a
    certificate are given.
    """

    def __init__(self, host: str = "127.0.0.1", verbose: bool = False):
        self.host = host
        self.verbose = verbose

    async def serve(
        self,
        dist_dir: str,
        port: int = DEFAULT_HTTP_PORT,
        https_key: Optional[str] = None,
        https_cert: Optional[str] = None
    ) -> ServeResult:
        Path(dist_dir).mkdir(parents=True, exist_ok=True)
        use_https = bool(https_key and https_cert)

        sock = bind_socket(self.host, port)
        actual_port = sock.getsockname()[1]
        if actual_port != port:
            logger.info(f"Could not use port:{port}, using port:{actual_port} instead")

        config = uvicorn.Config(
            app=create_app(dist_dir),
            log_level="debug" if self.verbose else "warning",
            log_config=None,
            access_log=self.verbose,
            ssl_keyfile=https_key if use_https else None,
            ssl_certfile=https_cert if use_https else None,
        )
        server = _SessionServer(config)
        task = asyncio.create_task(server.serve(sockets=[sock]))

        try:
            while not server.started:
                if task.done():
                    task.result()
                    raise DevLoopError("frontend server stopped during startup", "SERVER_STARTUP_FAILED")
                await asyncio.sleep(0.05)
        except BaseException:
            server.should_exit = True
            if not task.done():
                await asyncio.gather(task, return_exceptions=True)
            sock.close()
            raise

        url = f"{'https' if use_https else 'http'}://{advertised_host(self.host)}:{actual_port}"
        logger.debug(f"serving {dist_dir} at {url}")

        async def cleanup() -> None:
            logger.debug("stopping frontend server...")
            # uvicorn drains open connections before closing the listener
            server.should_exit = True
            try:
                await task
            finally:
                sock.close()

        return ServeResult(url=url, port=actual_port, cleanup=cleanup)

"""
Local Emulator Bootstrap

Checks host prerequisites, fetches the OpenWhisk standalone jar once, starts
it, waits for it to become ready and switches the session to the local
credentials.
"""

import asyncio
import json
import os
import re
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Optional, Tuple

import httpx
import structlog
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_delay, wait_fixed

from ..core.config import RUNTIME_ENV_VARS, AppConfig, RuntimeCredentials
from ..exceptions.base import DevLoopError, DownloadError, EmulatorTimeoutError, PreconditionError
from ..utils.files import backup_file, remove_file, restore_backup, write_env_file

logger = structlog.get_logger(__name__)

OW_LOCAL_DOCKER_PORT = 3233
OW_JAR_URL = "https://github.com/adobe/aio-cli-plugin-app/releases/download/6.2.0/openwhisk-standalone.jar"
OW_JAR_PATH = os.path.join("openwhisk", "openwhisk-standalone.jar")
OW_CONFIG_RUNTIMES_FILE = str(Path(__file__).resolve().parent.parent / "data" / "emulator-runtimes.json")
OW_LOCAL_NAMESPACE = "guest"
OW_LOCAL_AUTH = "23bc46b1-71f6-4ed5-8c54-816aa4f8c502:123zO3xZCLrMN6v2BKK1dXYFpXlPkccOFqm12CdAsMgRU4VrNZ9lyGVCGuMDGIwP"

# A stalled stream fails instead of hanging; the total duration is unbounded
DOWNLOAD_TIMEOUT = httpx.Timeout(None, connect=30.0, read=60.0)
READINESS_REQUEST_TIMEOUT = 5.0

ENV_FILE_HEADER = (
    "This file is auto-generated, do not edit.\n"
    "The items below are temporary credentials for local debugging"
)


@dataclass
class EmulatorSettings:
    """Local emulator settings, each overridable from the environment"""

    jar_url: str = field(default_factory=lambda: os.getenv("DEVLOOP_EMULATOR_JAR_URL", OW_JAR_URL))
    jar_path: str = field(default_factory=lambda: os.getenv("DEVLOOP_EMULATOR_JAR_PATH", OW_JAR_PATH))
    runtimes_file: str = field(default_factory=lambda: os.getenv("DEVLOOP_EMULATOR_RUNTIMES_FILE", OW_CONFIG_RUNTIMES_FILE))
    apihost: Optional[str] = field(default_factory=lambda: os.getenv("DEVLOOP_EMULATOR_APIHOST"))
    namespace: str = field(default_factory=lambda: os.getenv("DEVLOOP_EMULATOR_NAMESPACE", OW_LOCAL_NAMESPACE))
    auth: str = field(default_factory=lambda: os.getenv("DEVLOOP_EMULATOR_AUTH", OW_LOCAL_AUTH))
    log_file: Optional[str] = field(default_factory=lambda: os.getenv("DEVLOOP_EMULATOR_LOG_FILE"))

    # Readiness polling
    init_wait_ms: int = 2000
    period_ms: int = 500
    timeout_ms: int = 60000

    min_java_version: int = 11

    def __post_init__(self):
        if self.period_ms <= 0 or self.timeout_ms <= 0:
            raise ValueError("period_ms and timeout_ms must be positive")
        if self.init_wait_ms < 0:
            raise ValueError("init_wait_ms must be non-negative")


@dataclass
class EmulatorHandle:
    """The running emulator process and the credentials it accepts"""
    process: Any
    apihost: str
    namespace: str
    auth_token: str
    log_file: Optional[str] = None


# Host checks

async def _run_command(*cmd: str) -> Optional[Tuple[int, str, str]]:
    """Run a command; None if the executable cannot be started"""
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
    except OSError:
        return None

    stdout, stderr = await process.communicate()
    return (
        process.returncode,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace")
    )


def parse_java_version(output: str) -> Optional[int]:
    """Major version from ``java -version`` output (``1.8.0`` is 8)"""
    match = re.search(r'version "([^"]+)"', output)
    if not match:
        return None

    parts = match.group(1).split(".")
    major = re.match(r"\d+", parts[0])
    if not major:
        return None

    version = int(major.group())
    if version == 1 and len(parts) > 1 and parts[1].isdigit():
        version = int(parts[1])
    return version


async def has_java_cli(min_version: int = 11) -> bool:
    result = await _run_command("java", "-version")
    if result is None or result[0] != 0:
        return False
    # java prints its version on stderr
    version = parse_java_version(result[2] or result[1])
    return version is not None and version >= min_version


async def has_docker_cli() -> bool:
    result = await _run_command("docker", "-v")
    return result is not None and result[0] == 0


async def is_docker_running() -> bool:
    result = await _run_command("docker", "info")
    return result is not None and result[0] == 0


def get_docker_network_address() -> str:
    """Address of the emulator as seen from its action containers"""
    # Docker for Windows and macOS only allow port forwarding, not routing to the bridge
    if sys.platform not in ("win32", "darwin"):
        try:
            result = subprocess.run(
                ["docker", "network", "inspect", "bridge"],
                capture_output=True,
                check=True,
                text=True
            )
            gateway = json.loads(result.stdout)[0]["IPAM"]["Config"][0]["Gateway"]
            return f"http://{gateway}:{OW_LOCAL_DOCKER_PORT}"
        except (OSError, subprocess.CalledProcessError, ValueError, KeyError, IndexError) as e:
            logger.debug(f"getDockerNetworkAddress {e}")

    return f"http://localhost:{OW_LOCAL_DOCKER_PORT}"


# Artifact

async def download_artifact(
    url: str,
    dest: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    timeout: httpx.Timeout = DOWNLOAD_TIMEOUT
) -> None:
    """
    Stream ``url`` to ``dest``.

    The file only appears at ``dest`` once complete. No checksum is verified.

    Raises:
        DownloadError: on any network or stream failure
    """
    partial = f"{dest}.part"
    Path(dest).parent.mkdir(parents=True, exist_ok=True)

    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=timeout, transport=transport) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
        os.replace(partial, dest)
    except (httpx.HTTPError, OSError) as e:
        remove_file(partial)
        raise DownloadError(f"could not download {url}: {e}", url=url, original_error=e)


# Process

async def wait_for_readiness(
    apihost: str,
    init_wait_ms: int,
    period_ms: int,
    timeout_ms: int,
    process: Any = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> None:
    """
    Poll ``<apihost>/api/v1`` until any HTTP response comes back

    Raises:
        EmulatorTimeoutError: if only connection errors are seen within the timeout
            (the last wait between attempts may overrun it by up to one period)
        DevLoopError: if the emulator process exits while waiting
    """
    await asyncio.sleep(init_wait_ms / 1000)
    url = f"{apihost.rstrip('/')}/api/v1"
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000

    async with httpx.AsyncClient(transport=transport) as client:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(timeout_ms / 1000),
                wait=wait_fixed(period_ms / 1000),
                retry=retry_if_exception_type(httpx.TransportError)
            ):
                with attempt:
                    if process is not None and process.returncode is not None:
                        raise DevLoopError(
                            f"local openwhisk stack exited with code {process.returncode}",
                            "EMULATOR_EXITED"
                        )
                    # No single request outlives the polling deadline
                    remaining = max(deadline - loop.time(), 0.01)
                    await client.get(url, timeout=min(READINESS_REQUEST_TIMEOUT, remaining))
        except RetryError:
            raise EmulatorTimeoutError(
                f"local openwhisk stack startup timed out after {timeout_ms}ms",
                timeout_ms=timeout_ms
            )


async def terminate_process(process: Any, timeout: float = 10.0) -> None:
    """Terminate a child process, killing it if it does not exit in time"""
    if process is None or process.returncode is not None:
        return

    try:
        process.terminate()
    except ProcessLookupError:
        return

    try:
        await asyncio.wait_for(process.wait(), timeout)
    except asyncio.TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


async def run_emulator(
    jar_file: str,
    runtimes_file: str,
    apihost: str,
    settings: EmulatorSettings,
    stdout: Any = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> Any:
    """Start the standalone jar and wait until it answers"""
    process = await asyncio.create_subprocess_exec(
        "java",
        "-Dwhisk.concurrency-limit.max=10",
        "-jar", jar_file,
        "-m", runtimes_file,
        "--no-ui",
        "--disable-color-logging",
        stdout=stdout,
        stderr=None
    )

    try:
        await wait_for_readiness(
            apihost,
            settings.init_wait_ms,
            settings.period_ms,
            settings.timeout_ms,
            process=process,
            transport=transport
        )
    except BaseException:
        await terminate_process(process)
        raise

    return process


# Bootstrap

class EmulatorSession:
    """Result of a bootstrap: the local config and its teardown"""

    def __init__(
        self,
        config: AppConfig,
        handle: EmulatorHandle,
        env_file: str,
        backup_file: Optional[str] = None,
        log_stream: Optional[IO] = None
    ):
        self.config = config
        self.handle = handle
        self.env_file = env_file
        self.backup_file = backup_file
        self._log_stream = log_stream

    async def cleanup(self) -> None:
        logger.debug("stopping local OpenWhisk stack...")
        await terminate_process(self.handle.process)

        if self._log_stream is not None:
            self._log_stream.close()
            self._log_stream = None

        logger.debug("removing wskdebug tmp .env file...")
        remove_file(self.env_file)
        if self.backup_file:
            restore_backup(self.backup_file, self.env_file)


class LocalEmulator:
    """
    Boots the local stand-in of the remote execution service

    Preconditions are checked in a fixed order and the first unmet one aborts
    the bootstrap before anything is downloaded or spawned.
    """

    def __init__(
        self,
        settings: Optional[EmulatorSettings] = None,
        verbose: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings or EmulatorSettings()
        self.verbose = verbose
        self._transport = transport

    async def check_preconditions(self) -> None:
        logger.info("checking if java is installed...")
        if not await has_java_cli(self.settings.min_java_version):
            raise PreconditionError("could not find java CLI, please make sure java is installed", tool="java")

        logger.info("checking if docker is installed...")
        if not await has_docker_cli():
            raise PreconditionError("could not find docker CLI, please make sure docker is installed", tool="docker")

        logger.info("checking if docker is running...")
        if not await is_docker_running():
            raise PreconditionError("docker is not running, please make sure to start docker", tool="docker")

    def jar_file(self, config: AppConfig) -> str:
        return os.path.join(config.data_dir, self.settings.jar_path)

    async def start(self, config: AppConfig) -> EmulatorSession:
        """
        Bootstrap the local emulator for a session

        Returns:
            EmulatorSession whose ``config`` carries the local credentials
        """
        await self.check_preconditions()

        jar_file = self.jar_file(config)
        if not os.path.exists(jar_file):
            logger.info(
                f"downloading OpenWhisk standalone jar from {self.settings.jar_url} to {jar_file}, "
                "this might take a while... (to be done only once!)"
            )
            await download_artifact(self.settings.jar_url, jar_file, transport=self._transport)

        dist = config.abs_path(config.dist)
        log_file = None
        log_stream = None
        stdout = subprocess.DEVNULL
        if self.verbose:
            log_file = self.settings.log_file or os.path.join(dist, "openwhisk-local.log.txt")
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            log_stream = open(log_file, "w")
            stdout = log_stream

        apihost = self.settings.apihost or await asyncio.to_thread(get_docker_network_address)

        logger.info("starting local OpenWhisk stack...")
        try:
            process = await run_emulator(
                jar_file,
                self.settings.runtimes_file,
                apihost,
                self.settings,
                stdout=stdout,
                transport=self._transport
            )
        except BaseException:
            if log_stream is not None:
                log_stream.close()
            raise

        handle = EmulatorHandle(
            process=process,
            apihost=apihost,
            namespace=self.settings.namespace,
            auth_token=self.settings.auth,
            log_file=log_file
        )

        try:
            return self._switch_credentials(config, handle, log_stream)
        except BaseException:
            await terminate_process(process)
            if log_stream is not None:
                log_stream.close()
            raise

    def _switch_credentials(
        self,
        config: AppConfig,
        handle: EmulatorHandle,
        log_stream: Optional[IO]
    ) -> EmulatorSession:
        logger.info("setting local openwhisk credentials...")
        runtime = RuntimeCredentials(
            namespace=handle.namespace,
            auth=handle.auth_token,
            apihost=handle.apihost,
            package=config.runtime.package
        )
        dev_config = config.update(
            runtime=runtime,
            env_file=os.path.join(config.dist, ".env.local")
        )

        # Remote identity must not leak into the local session
        for name in RUNTIME_ENV_VARS:
            os.environ.pop(name, None)

        env_file = dev_config.abs_path(dev_config.env_file)
        backup = f"{env_file}.save"
        logger.info(f"writing credentials to tmp wskdebug config '{dev_config.env_file}'")
        backup_file(env_file, backup)
        write_env_file(
            env_file,
            {
                "OW_NAMESPACE": runtime.namespace,
                "OW_AUTH": runtime.auth,
                "OW_APIHOST": runtime.apihost,
            },
            ENV_FILE_HEADER
        )

        return EmulatorSession(
            config=dev_config,
            handle=handle,
            env_file=env_file,
            backup_file=backup,
            log_stream=log_stream
        )

"""
Clients for the runtime build/deploy service
"""

import asyncio
import base64
import hashlib
import json
import os
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urlparse

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.config import AppConfig
from ..core.schemas import ActivationLog, BuildUnit, DeployOptions, DeployedUnit, DeployResult
from ..exceptions.base import BuildError, ConfigurationError, CredentialsError, DeployError

logger = structlog.get_logger(__name__)

BUILD_HASHES_FILE = ".build-hashes.json"


def select_units(config: AppConfig, unit_filter: Optional[List[str]] = None) -> List[BuildUnit]:
    """Units of the backend matching a filter of names or qualified names"""
    if config.backend is None:
        return []
    units = config.backend.units
    if not unit_filter:
        return list(units)
    wanted = set(unit_filter)
    return [u for u in units if u.name in wanted or u.qualified_name in wanted]


class RuntimeService(ABC):
    """
    Build/deploy collaborator of the development loop.

    Subclasses provide the compile and deploy protocol; credential checks and
    endpoint URL computation are derived from the configuration.
    """

    @abstractmethod
    async def build(
        self,
        config: AppConfig,
        unit_filter: Optional[List[str]] = None,
        force_build: bool = False
    ) -> List[str]:
        """Build units and return the names that were (re)built"""

    @abstractmethod
    async def deploy(self, config: AppConfig, options: DeployOptions) -> DeployResult:
        """Deploy built units"""

    def check_credentials(self, config: AppConfig) -> None:
        """
        Raises:
            CredentialsError: naming every missing credential
        """
        missing = config.runtime.missing()
        if missing:
            raise CredentialsError(
                f"missing runtime credentials: {', '.join(missing)}",
                missing=missing
            )

    def get_endpoint_urls(
        self,
        config: AppConfig,
        use_cdn: bool = True,
        is_local: bool = False
    ) -> Dict[str, str]:
        """Map of endpoint name to URL for every backend unit"""
        default_group = config.default_group
        urls = {}
        for unit in select_units(config):
            key = unit.name if unit.group == default_group else unit.qualified_name
            urls[key] = self.endpoint_url(config, unit, use_cdn=use_cdn, is_local=is_local)
        return urls

    def endpoint_url(
        self,
        config: AppConfig,
        unit: BuildUnit,
        use_cdn: bool = True,
        is_local: bool = False
    ) -> str:
        namespace = config.runtime.namespace
        apihost = config.runtime.apihost.rstrip("/")

        if not unit.web:
            return f"{apihost}/api/v1/namespaces/{namespace}/actions/{unit.group}/{unit.name}"
        if is_local:
            return f"{apihost}/api/v1/web/{namespace}/{unit.group}/{unit.name}"
        if use_cdn:
            return f"https://{namespace}.{config.app_hostname}/api/v1/web/{unit.group}/{unit.name}"

        host = urlparse(apihost).netloc or apihost
        return f"https://{namespace}.{host}/api/v1/web/{unit.group}/{unit.name}"

    async def fetch_logs(
        self,
        config: AppConfig,
        limit: int = 1,
        since: Optional[int] = None
    ) -> Optional[int]:
        """Print recent activation logs; returns the last activation time seen"""
        return since

    async def close(self) -> None:
        """Release client resources"""


class OpenWhiskRuntime(RuntimeService):
    """
    Reference runtime client for OpenWhisk-compatible services.

    Provides methods for:
    - Packaging units into zip artifacts (skipping unchanged sources)
    - Deploying artifacts through the REST API
    - Reading recent activation logs
    """

    def __init__(self, timeout: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Build

    async def build(
        self,
        config: AppConfig,
        unit_filter: Optional[List[str]] = None,
        force_build: bool = False
    ) -> List[str]:
        if config.backend is None:
            return []
        return await asyncio.to_thread(self._build_sync, config, unit_filter, force_build)

    def artifact_path(self, config: AppConfig, unit: BuildUnit) -> str:
        return os.path.join(config.abs_path(config.backend.dist), unit.group, f"{unit.name}.zip")

    def _build_sync(self, config: AppConfig, unit_filter: Optional[List[str]], force_build: bool) -> List[str]:
        dist = Path(config.abs_path(config.backend.dist))
        dist.mkdir(parents=True, exist_ok=True)
        hashes_file = dist / BUILD_HASHES_FILE
        hashes = json.loads(hashes_file.read_text()) if hashes_file.exists() else {}

        built = []
        for unit in select_units(config, unit_filter):
            files = self._source_files(config, unit)
            digest = self._digest(files)
            artifact = self.artifact_path(config, unit)

            if not force_build and hashes.get(unit.qualified_name) == digest and os.path.exists(artifact):
                logger.debug(f"{unit.qualified_name} unchanged, skipping build")
                continue

            Path(artifact).parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(artifact, "w", zipfile.ZIP_DEFLATED) as archive:
                for file_path, arcname in files:
                    archive.write(file_path, arcname)

            hashes[unit.qualified_name] = digest
            built.append(unit.name)

        hashes_file.write_text(json.dumps(hashes, indent=2))
        return built

    def _source_files(self, config: AppConfig, unit: BuildUnit) -> List[tuple]:
        files = []
        for source in unit.sources:
            source_path = Path(config.abs_path(source))
            if source_path.is_file():
                files.append((source_path, source_path.name))
            elif source_path.is_dir():
                for file_path in sorted(source_path.rglob("*")):
                    if file_path.is_file():
                        files.append((file_path, file_path.relative_to(source_path).as_posix()))
            else:
                raise BuildError(f"source '{source}' of unit '{unit.name}' does not exist", units=[unit.name])
        return files

    @staticmethod
    def _digest(files: List[tuple]) -> str:
        sha = hashlib.sha256()
        for file_path, arcname in files:
            sha.update(arcname.encode())
            sha.update(Path(file_path).read_bytes())
        return sha.hexdigest()

    # Deploy

    async def deploy(self, config: AppConfig, options: DeployOptions) -> DeployResult:
        if config.backend is None:
            return DeployResult()

        self.check_credentials(config)
        units = select_units(config, options.unit_filter)
        deployed = []

        for group in sorted({unit.group for unit in units}):
            await self._put(config, f"packages/{group}", {"publish": False})

        for unit in units:
            artifact = self.artifact_path(config, unit)
            if not os.path.exists(artifact):
                raise DeployError(f"unit '{unit.qualified_name}' has not been built", unit=unit.name)

            code = base64.b64encode(Path(artifact).read_bytes()).decode()
            annotations = {**unit.annotations, "web-export": unit.web}
            await self._put(
                config,
                f"actions/{unit.group}/{unit.name}",
                {
                    "exec": {"kind": unit.runtime, "code": code, "binary": True},
                    "annotations": [{"key": k, "value": v} for k, v in annotations.items()],
                }
            )
            deployed.append(DeployedUnit(
                name=unit.qualified_name,
                url=self.endpoint_url(config, unit, use_cdn=False, is_local=options.is_local),
                annotations=annotations
            ))

        return DeployResult(units=deployed)

    def _auth(self, config: AppConfig) -> httpx.BasicAuth:
        user, _, password = (config.runtime.auth or "").partition(":")
        if not password:
            raise ConfigurationError("runtime auth must have the form '<uuid>:<key>'", config_key="runtime.auth")
        return httpx.BasicAuth(user, password)

    def _namespace_url(self, config: AppConfig, path: str) -> str:
        apihost = config.runtime.apihost.rstrip("/")
        return f"{apihost}/api/v1/namespaces/{config.runtime.namespace}/{path}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True
    )
    async def _put_with_retry(self, config: AppConfig, path: str, body: dict) -> httpx.Response:
        return await self.client.put(
            self._namespace_url(config, path),
            params={"overwrite": "true"},
            json=body,
            auth=self._auth(config)
        )

    async def _put(self, config: AppConfig, path: str, body: dict) -> dict:
        try:
            response = await self._put_with_retry(config, path, body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise DeployError(
                f"deploy of '{path}' failed with status {e.response.status_code}: {e.response.text}",
                unit=path,
                original_error=e
            )
        except httpx.HTTPError as e:
            raise DeployError(f"HTTP error during deploy of '{path}': {e}", unit=path, original_error=e)

    # Logs

    async def fetch_logs(
        self,
        config: AppConfig,
        limit: int = 1,
        since: Optional[int] = None
    ) -> Optional[int]:
        params = {"limit": limit, "docs": "true"}
        if since is not None:
            params["since"] = since

        try:
            response = await self.client.get(
                self._namespace_url(config, "activations"),
                params=params,
                auth=self._auth(config)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeployError(f"could not fetch activation logs: {e}", original_error=e)

        activations = [
            ActivationLog(
                activation_id=item.get("activationId", ""),
                name=item.get("name", ""),
                start=item.get("start", 0),
                logs=item.get("logs", [])
            )
            for item in response.json()
        ]

        last_time = since
        for activation in sorted(activations, key=lambda a: a.start):
            for line in activation.logs:
                logger.info(f"{activation.name}: {line}")
            last_time = max(last_time or 0, activation.start + 1)

        return last_time

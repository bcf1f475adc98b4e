"""
Configuration management for devloop
"""

import copy
import os
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import asdict, dataclass, field

import yaml

from .schemas import BuildUnit
from ..exceptions.base import ConfigurationError


DEFAULT_HTTP_PORT = 9080
DEFAULT_APP_HOSTNAME = "adobeio-static.net"
DEFAULT_RUNTIME_APIHOST = "https://adobeioruntime.net"

# Environment variables that carry the remote runtime identity
RUNTIME_ENV_VARS = (
    "DEVLOOP_RUNTIME_NAMESPACE",
    "DEVLOOP_RUNTIME_AUTH",
    "DEVLOOP_RUNTIME_APIHOST",
)


def _default_data_dir() -> str:
    return os.getenv(
        "DEVLOOP_DATA_DIR",
        str(Path(os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")) / "devloop")
    )


@dataclass
class RuntimeCredentials:
    """Deploy target of the backend units"""

    namespace: Optional[str] = field(default_factory=lambda: os.getenv("DEVLOOP_RUNTIME_NAMESPACE"))
    auth: Optional[str] = field(default_factory=lambda: os.getenv("DEVLOOP_RUNTIME_AUTH"))
    apihost: str = field(default_factory=lambda: os.getenv("DEVLOOP_RUNTIME_APIHOST", DEFAULT_RUNTIME_APIHOST))
    package: Optional[str] = field(default_factory=lambda: os.getenv("DEVLOOP_RUNTIME_PACKAGE"))

    def missing(self) -> List[str]:
        """Names of the credential fields that are not set"""
        return [
            name for name in ("namespace", "auth", "apihost")
            if not getattr(self, name)
        ]


@dataclass
class BackendConfig:
    """Backend source/output locations and units"""

    src: str = "actions"
    dist: str = "dist/actions"
    units: List[BuildUnit] = field(default_factory=list)

    def __post_init__(self):
        self.units = [
            unit if isinstance(unit, BuildUnit) else BuildUnit(**unit)
            for unit in self.units
        ]
        seen = set()
        for unit in self.units:
            if unit.qualified_name in seen:
                raise ConfigurationError(
                    f"Duplicate build unit '{unit.qualified_name}'",
                    config_key="backend.units"
                )
            seen.add(unit.qualified_name)


@dataclass
class FrontendConfig:
    """Frontend source/output locations"""

    src: str = "web-src"
    dist_dev: str = "dist/web-dev"
    injected_config: str = "web-src/src/config.json"


@dataclass
class AppConfig:
    """Application configuration consumed by the development loop"""

    root: str = field(default_factory=lambda: os.getcwd())
    backend: Optional[BackendConfig] = None
    frontend: Optional[FrontendConfig] = None
    runtime: RuntimeCredentials = field(default_factory=RuntimeCredentials)
    hooks: Dict[str, str] = field(default_factory=dict)
    data_dir: str = field(default_factory=_default_data_dir)
    dist: str = "dist"
    app_hostname: str = field(default_factory=lambda: os.getenv("DEVLOOP_APP_HOSTNAME", DEFAULT_APP_HOSTNAME))
    env_file: str = ".env"

    def __post_init__(self):
        """Validate configuration after initialization"""
        if isinstance(self.backend, dict):
            self.backend = BackendConfig(**self.backend)
        if isinstance(self.frontend, dict):
            self.frontend = FrontendConfig(**self.frontend)
        if isinstance(self.runtime, dict):
            self.runtime = RuntimeCredentials(**self.runtime)
        if not self.root:
            raise ConfigurationError("root must be set", config_key="root")
        for name, command in self.hooks.items():
            if command is not None and not isinstance(command, str):
                raise ConfigurationError(
                    f"Hook '{name}' must be a shell command string",
                    config_key=f"hooks.{name}"
                )

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "AppConfig":
        """Create configuration from dictionary"""
        try:
            return cls(**config_dict)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def from_yaml(cls, path: str) -> "AppConfig":
        """Load configuration from a single YAML file"""
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

        config_data.setdefault("root", str(config_path.resolve().parent))
        return cls.from_dict(config_data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        data = asdict(self)
        if self.backend is not None:
            data["backend"]["units"] = [unit.model_dump() for unit in self.backend.units]
        return data

    def update(self, **updates) -> "AppConfig":
        """Create an independent copy of this configuration with updates"""
        config = copy.deepcopy(self)
        for key, value in updates.items():
            if not hasattr(config, key):
                raise ConfigurationError(f"Unknown configuration key: {key}", config_key=key)
            setattr(config, key, value)
        return config

    def get(self, key: str, default=None):
        """Get configuration value by key with optional default"""
        return getattr(self, key, default)

    @property
    def has_backend(self) -> bool:
        return self.backend is not None

    @property
    def has_frontend(self) -> bool:
        return self.frontend is not None

    @property
    def default_group(self) -> Optional[str]:
        """Group used for unqualified endpoint names"""
        if self.runtime.package:
            return self.runtime.package
        if self.backend and self.backend.units:
            return self.backend.units[0].group
        return None

    def abs_path(self, path: str) -> str:
        """Resolve a project-relative path against the project root"""
        if os.path.isabs(path):
            return os.path.normpath(path)
        return os.path.normpath(os.path.join(self.root, path))

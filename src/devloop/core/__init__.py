"""
devloop core configuration and schemas
"""

from .config import (
    AppConfig,
    BackendConfig,
    FrontendConfig,
    RuntimeCredentials,
    DEFAULT_HTTP_PORT,
)
from .schemas import BuildUnit, DeployOptions, DeployedUnit, DeployResult, ActivationLog

__all__ = [
    "AppConfig",
    "BackendConfig",
    "FrontendConfig",
    "RuntimeCredentials",
    "DEFAULT_HTTP_PORT",
    "BuildUnit",
    "DeployOptions",
    "DeployedUnit",
    "DeployResult",
    "ActivationLog",
]

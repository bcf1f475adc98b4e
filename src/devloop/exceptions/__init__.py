"""
devloop Exceptions
"""

from .base import (
    DevLoopError,
    PreconditionError,
    DownloadError,
    EmulatorTimeoutError,
    BuildError,
    DeployError,
    CredentialsError,
    HookError,
    ConfigurationError,
)

__all__ = [
    "DevLoopError",
    "PreconditionError",
    "DownloadError",
    "EmulatorTimeoutError",
    "BuildError",
    "DeployError",
    "CredentialsError",
    "HookError",
    "ConfigurationError",
]

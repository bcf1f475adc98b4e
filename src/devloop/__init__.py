"""
devloop - local development loop for serverless apps

Builds and deploys backend units to a local emulator or a remote runtime,
redeploys them as their sources change, and serves the frontend with the
backend endpoint URLs injected.
"""

from .core.config import AppConfig, BackendConfig, FrontendConfig, RuntimeCredentials
from .exceptions.base import DevLoopError

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "AppConfig",
    "BackendConfig",
    "FrontendConfig",
    "RuntimeCredentials",

    # Exceptions
    "DevLoopError",

    # Version info
    "__version__",
]

"""
Base exceptions for devloop
"""

from typing import Optional, Dict, Any, List


class DevLoopError(Exception):
    """Base exception for all devloop errors"""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class PreconditionError(DevLoopError):
    """Raised when a host tool required by the local emulator is missing"""

    def __init__(
        self,
        message: str = "Precondition not met",
        tool: Optional[str] = None
    ):
        super().__init__(message, "PRECONDITION_FAILED")
        self.tool = tool


class DownloadError(DevLoopError):
    """Raised when the emulator artifact cannot be fetched"""

    def __init__(
        self,
        message: str = "Download failed",
        url: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, "DOWNLOAD_FAILED")
        self.url = url
        self.original_error = original_error


class EmulatorTimeoutError(DevLoopError):
    """Raised when the local emulator never becomes healthy"""

    def __init__(
        self,
        message: str = "Local emulator did not become ready",
        timeout_ms: Optional[int] = None
    ):
        super().__init__(message, "EMULATOR_TIMEOUT")
        self.timeout_ms = timeout_ms


class BuildError(DevLoopError):
    """Raised when building backend units fails"""

    def __init__(
        self,
        message: str = "Build failed",
        units: Optional[List[str]] = None
    ):
        super().__init__(message, "BUILD_FAILED")
        self.units = units


class DeployError(DevLoopError):
    """Raised when deploying backend units fails"""

    def __init__(
        self,
        message: str = "Deploy failed",
        unit: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message, "DEPLOY_FAILED")
        self.unit = unit
        self.original_error = original_error


class CredentialsError(DevLoopError):
    """Raised when deploy credentials are missing"""

    def __init__(
        self,
        message: str = "Missing deploy credentials",
        missing: Optional[List[str]] = None
    ):
        super().__init__(message, "CREDENTIALS_MISSING")
        self.missing = missing or []


class HookError(DevLoopError):
    """Raised when a project hook exits with a non-zero status"""

    def __init__(
        self,
        message: str = "Hook failed",
        hook: Optional[str] = None,
        exit_code: Optional[int] = None
    ):
        super().__init__(message, "HOOK_FAILED")
        self.hook = hook
        self.exit_code = exit_code


class ConfigurationError(DevLoopError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str = "Configuration error",
        config_key: Optional[str] = None
    ):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.config_key = config_key

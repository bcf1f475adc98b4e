"""
Project hooks

A hook is a shell command configured under a well-known name. Every override
point of the development loop goes through :meth:`HookRunner.try_run`: if a
command is configured it runs instead of (or around) the default logic.
"""

import asyncio
import os
from typing import Dict, Mapping, Optional

import structlog

from ..exceptions.base import HookError

logger = structlog.get_logger(__name__)

PRE_APP_RUN = "pre-app-run"
POST_APP_RUN = "post-app-run"
PRE_APP_BUILD = "pre-app-build"
POST_APP_BUILD = "post-app-build"
PRE_APP_DEPLOY = "pre-app-deploy"
POST_APP_DEPLOY = "post-app-deploy"
BUILD_ACTIONS = "build-actions"
DEPLOY_ACTIONS = "deploy-actions"
BUILD_STATIC = "build-static"
SERVE_STATIC = "serve-static"


class HookRunner:
    """Runs configured hook commands in the project root"""

    def __init__(self, hooks: Optional[Mapping[str, Optional[str]]] = None, cwd: Optional[str] = None):
        self.hooks = dict(hooks or {})
        self.cwd = cwd or os.getcwd()

    def has(self, name: str) -> bool:
        return bool(self.hooks.get(name))

    async def try_run(self, name: str, env: Optional[Dict[str, str]] = None) -> bool:
        """
        Run the hook registered under ``name``

        Args:
            name: Hook name
            env: Extra environment variables for the hook process

        Returns:
            True if a hook ran, False if none is configured

        Raises:
            HookError: If the hook exits with a non-zero status
        """
        command = self.hooks.get(name)
        if not command:
            logger.debug(f"no '{name}' hook configured")
            return False

        logger.debug(f"running '{name}' hook: {command}")
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=self.cwd,
            env={**os.environ, **(env or {})}
        )
        exit_code = await process.wait()

        if exit_code != 0:
            raise HookError(
                f"Hook '{name}' failed with exit code {exit_code}",
                hook=name,
                exit_code=exit_code
            )
        return True

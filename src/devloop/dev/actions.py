"""
Build and deploy cycle for backend units, wrapped in the project hooks
"""

from typing import Dict, List, Optional

import structlog

from ..clients.runtime import RuntimeService
from ..core.config import AppConfig
from ..core.schemas import DeployOptions, DeployResult
from .hooks import (
    BUILD_ACTIONS,
    DEPLOY_ACTIONS,
    POST_APP_BUILD,
    POST_APP_DEPLOY,
    PRE_APP_BUILD,
    PRE_APP_DEPLOY,
    HookRunner,
)

logger = structlog.get_logger(__name__)


def _hook_env(unit_filter: Optional[List[str]]) -> Dict[str, str]:
    return {"DEVLOOP_UNITS": ",".join(unit_filter)} if unit_filter else {}


async def build_units(
    config: AppConfig,
    runtime: RuntimeService,
    hooks: HookRunner,
    unit_filter: Optional[List[str]] = None,
    force_build: bool = False
) -> None:
    """Build backend units unless a ``build-actions`` hook replaces the build"""
    env = _hook_env(unit_filter)

    await hooks.try_run(PRE_APP_BUILD, env)
    if not await hooks.try_run(BUILD_ACTIONS, env):
        await runtime.build(config, unit_filter, force_build)
    await hooks.try_run(POST_APP_BUILD, env)


async def deploy_units(
    config: AppConfig,
    runtime: RuntimeService,
    hooks: HookRunner,
    is_local: bool = False,
    unit_filter: Optional[List[str]] = None
) -> Optional[DeployResult]:
    """Deploy backend units unless a ``deploy-actions`` hook replaces the deploy"""
    env = _hook_env(unit_filter)
    result = None

    await hooks.try_run(PRE_APP_DEPLOY, env)
    if not await hooks.try_run(DEPLOY_ACTIONS, env):
        result = await runtime.deploy(
            config,
            DeployOptions(is_local=is_local, unit_filter=unit_filter)
        )
        log_deployed_units(result)
    await hooks.try_run(POST_APP_DEPLOY, env)

    return result


async def build_and_deploy(
    config: AppConfig,
    runtime: RuntimeService,
    hooks: HookRunner,
    is_local: bool = False,
    unit_filter: Optional[List[str]] = None
) -> Optional[DeployResult]:
    await build_units(config, runtime, hooks, unit_filter)
    return await deploy_units(config, runtime, hooks, is_local, unit_filter)


def log_deployed_units(result: DeployResult) -> None:
    """Log the deployed units, web endpoints first"""
    if not result.units:
        return

    web = [unit for unit in result.units if unit.is_web]
    non_web = [unit for unit in result.units if not unit.is_web]

    logger.info("Your deployed actions:")
    if web:
        logger.info("web actions:")
        for unit in web:
            logger.info(f"  -> {unit.url or unit.name}")
    if non_web:
        logger.info("non-web actions:")
        for unit in non_web:
            logger.info(f"  -> {unit.url or unit.name}")

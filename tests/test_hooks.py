"""
Tests for project hooks
"""

import os

import pytest

from devloop.dev.actions import build_units, deploy_units
from devloop.dev.hooks import HookRunner
from devloop.exceptions import HookError


class TestHookRunner:
    """Running shell hooks"""

    @pytest.mark.asyncio
    async def test_missing_hook_returns_false(self, tmp_path):
        runner = HookRunner({}, cwd=str(tmp_path))

        assert await runner.try_run("build-static") is False
        assert not runner.has("build-static")

    @pytest.mark.asyncio
    async def test_empty_hook_is_not_configured(self, tmp_path):
        runner = HookRunner({"build-static": ""}, cwd=str(tmp_path))

        assert await runner.try_run("build-static") is False

    @pytest.mark.asyncio
    async def test_hook_runs_in_project_root(self, tmp_path):
        runner = HookRunner({"build-static": "echo built > marker.txt"}, cwd=str(tmp_path))

        assert await runner.try_run("build-static") is True
        assert (tmp_path / "marker.txt").read_text().strip() == "built"

    @pytest.mark.asyncio
    async def test_hook_receives_extra_env(self, tmp_path):
        runner = HookRunner({"build-actions": 'echo "$DEVLOOP_UNITS" > units.txt'}, cwd=str(tmp_path))

        await runner.try_run("build-actions", {"DEVLOOP_UNITS": "my-app/action"})

        assert (tmp_path / "units.txt").read_text().strip() == "my-app/action"

    @pytest.mark.asyncio
    async def test_failing_hook_raises(self, tmp_path):
        runner = HookRunner({"pre-app-build": "exit 2"}, cwd=str(tmp_path))

        with pytest.raises(HookError) as exc_info:
            await runner.try_run("pre-app-build")

        assert exc_info.value.hook == "pre-app-build"
        assert exc_info.value.exit_code == 2


class TestActionHooks:
    """Hooks around and instead of builds and deploys"""

    @pytest.mark.asyncio
    async def test_build_hook_replaces_build(self, app_config, fake_runtime):
        hooks = HookRunner({"build-actions": "true"}, cwd=app_config.root)

        await build_units(app_config, fake_runtime, hooks)

        assert fake_runtime.build_calls == []

    @pytest.mark.asyncio
    async def test_deploy_hook_replaces_deploy(self, app_config, fake_runtime):
        hooks = HookRunner({"deploy-actions": "true"}, cwd=app_config.root)

        result = await deploy_units(app_config, fake_runtime, hooks)

        assert result is None
        assert fake_runtime.deploy_calls == []

    @pytest.mark.asyncio
    async def test_pre_and_post_hooks_wrap_build(self, app_config, fake_runtime):
        hooks = HookRunner(
            {
                "pre-app-build": "echo pre >> order.txt",
                "post-app-build": "echo post >> order.txt",
            },
            cwd=app_config.root
        )

        await build_units(app_config, fake_runtime, hooks, unit_filter=["my-app/action"])

        order = open(os.path.join(app_config.root, "order.txt")).read().split()
        assert order == ["pre", "post"]
        assert fake_runtime.build_calls == [["my-app/action"]]

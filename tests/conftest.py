"""
Shared fixtures for devloop tests
"""

import asyncio
from typing import List, Optional
from unittest.mock import Mock

import pytest

from devloop.clients.runtime import RuntimeService
from devloop.core.config import AppConfig
from devloop.core.schemas import DeployedUnit, DeployResult
from devloop.dev.hooks import HookRunner


class FakeWatcher:
    """In-memory stand-in for FileWatcher"""

    instances: List["FakeWatcher"] = []

    def __init__(self, paths, callback, **kwargs):
        self.paths = list(paths)
        self.callback = callback
        self.kwargs = kwargs
        self.is_running = False
        self.stop_calls = 0
        FakeWatcher.instances.append(self)

    def start(self):
        self.is_running = True

    def stop(self):
        self.is_running = False
        self.stop_calls += 1

    async def emit(self, path: str, event_type: str = "modified"):
        await self.callback(path, event_type)


class FakeRuntime(RuntimeService):
    """Runtime that records build/deploy calls instead of talking to a service"""

    def __init__(self, build_delay: float = 0.0, fail_build: bool = False):
        self.build_calls = []
        self.deploy_calls = []
        self.build_delay = build_delay
        self.fail_build = fail_build
        self.closed = False

    async def build(self, config, unit_filter=None, force_build=False):
        self.build_calls.append(unit_filter)
        if self.build_delay:
            await asyncio.sleep(self.build_delay)
        if self.fail_build:
            raise RuntimeError("build failed")
        return [unit.name for unit in config.backend.units]

    async def deploy(self, config, options):
        self.deploy_calls.append(options)
        return DeployResult(units=[
            DeployedUnit(name=unit.qualified_name, annotations={"web-export": unit.web})
            for unit in config.backend.units
        ])

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_fake_watchers():
    FakeWatcher.instances = []
    yield
    FakeWatcher.instances = []


@pytest.fixture
def project_root(tmp_path):
    actions = tmp_path / "actions"
    (actions / "action-zip").mkdir(parents=True)
    (actions / "action.js").write_text("function main() { return {} }\n")
    (actions / "action-zip" / "index.js").write_text("exports.main = () => ({})\n")

    web = tmp_path / "web-src"
    (web / "src").mkdir(parents=True)
    (web / "index.html").write_text("<html><body>hello</body></html>\n")
    return tmp_path


@pytest.fixture
def app_config(project_root):
    return AppConfig(
        root=str(project_root),
        backend={
            "src": "actions",
            "dist": "dist/actions",
            "units": [
                {"name": "action", "sources": "actions/action.js", "group": "my-app"},
                {"name": "action-zip", "sources": "actions/action-zip", "group": "my-app"},
            ],
        },
        frontend={
            "src": "web-src",
            "dist_dev": "dist/web-dev",
            "injected_config": "web-src/src/config.json",
        },
        runtime={
            "namespace": "my-ns",
            "auth": "user:secret",
            "apihost": "https://runtime.example.com",
        },
        data_dir=str(project_root / "data"),
    )


@pytest.fixture
def backend_only_config(app_config):
    return app_config.update(frontend=None)


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def no_hooks(project_root):
    return HookRunner({}, cwd=str(project_root))


@pytest.fixture
def dispatcher():
    """Interrupt dispatcher that never touches real signal handlers"""
    return Mock()

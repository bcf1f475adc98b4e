"""
Tests for the editor debug configuration
"""

import json
import os

from devloop.dev.debug_config import DebugConfig


def _read(path):
    with open(path) as f:
        return json.load(f)


class TestDebugConfig:
    """launch.json generation and restore"""

    def test_backend_and_frontend(self, app_config):
        debug_config = DebugConfig(app_config)

        debug_config.update(has_frontend=True, with_backend=True, frontend_url="http://localhost:9080")

        content = _read(debug_config.main_file)
        action, action_zip, web = content["configurations"]
        assert action["runtimeArgs"][:2] == ["my-app/action", app_config.abs_path("actions/action.js")]
        assert action_zip["runtimeArgs"][1] == app_config.abs_path("actions/action-zip/index.js")
        assert web["url"] == "http://localhost:9080"
        assert [c["name"] for c in content["compounds"]] == ["Actions", "WebAndActions"]

    def test_no_frontend(self, app_config):
        debug_config = DebugConfig(app_config)

        debug_config.update(has_frontend=False, with_backend=True)

        content = _read(debug_config.main_file)
        assert "Web" not in [c["name"] for c in content["configurations"]]
        assert len(content["compounds"]) == 1

    def test_package_main_is_entry(self, app_config):
        with open(app_config.abs_path("actions/action-zip/package.json"), "w") as f:
            json.dump({"main": "main.js"}, f)

        content = DebugConfig(app_config).generate(has_frontend=False, with_backend=True)

        assert content["configurations"][1]["runtimeArgs"][1] == app_config.abs_path("actions/action-zip/main.js")

    def test_cleanup_removes_generated_file(self, app_config):
        debug_config = DebugConfig(app_config)
        debug_config.update(has_frontend=False, with_backend=True)

        debug_config.cleanup()

        assert not os.path.exists(debug_config.main_file)
        assert not os.path.exists(os.path.dirname(debug_config.main_file))

    def test_existing_file_backed_up_and_restored(self, app_config):
        debug_config = DebugConfig(app_config)
        os.makedirs(os.path.dirname(debug_config.main_file))
        with open(debug_config.main_file, "w") as f:
            f.write('{"mine": true}')

        debug_config.update(has_frontend=False, with_backend=True)
        assert _read(debug_config.backup_file) == {"mine": True}

        debug_config.cleanup()
        assert _read(debug_config.main_file) == {"mine": True}
        assert not os.path.exists(debug_config.backup_file)

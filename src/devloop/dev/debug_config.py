"""
Editor debug configuration (.vscode/launch.json) for a dev session
"""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from ..core.config import AppConfig

logger = structlog.get_logger(__name__)

LAUNCH_JSON_FILE = os.path.join(".vscode", "launch.json")
LAUNCH_JSON_FILE_BACKUP = os.path.join(".vscode", "launch.json.save")


class DebugConfig:
    """Writes a launch.json for the session and puts the user's one back afterwards"""

    def __init__(self, config: AppConfig):
        self.config = config
        self.main_file = config.abs_path(LAUNCH_JSON_FILE)
        self.backup_file = config.abs_path(LAUNCH_JSON_FILE_BACKUP)

    def update(
        self,
        has_frontend: bool,
        with_backend: bool,
        frontend_url: Optional[str] = None
    ) -> None:
        Path(self.main_file).parent.mkdir(parents=True, exist_ok=True)
        if os.path.exists(self.main_file) and not os.path.exists(self.backup_file):
            shutil.move(self.main_file, self.backup_file)

        content = self.generate(has_frontend, with_backend, frontend_url)
        with open(self.main_file, "w") as f:
            json.dump(content, f, indent=2)
        logger.debug(f"wrote debug configuration to {self.main_file}")

    def cleanup(self) -> None:
        if os.path.exists(self.main_file) and not os.path.exists(self.backup_file):
            logger.debug(f"removing {self.main_file}...")
            os.remove(self.main_file)
            vscode_dir = os.path.dirname(self.main_file)
            if not os.listdir(vscode_dir):
                os.rmdir(vscode_dir)

        if os.path.exists(self.backup_file):
            logger.debug(f"restoring previous {self.main_file}")
            shutil.move(self.backup_file, self.main_file)

    def generate(
        self,
        has_frontend: bool,
        with_backend: bool,
        frontend_url: Optional[str] = None
    ) -> Dict[str, Any]:
        configurations: List[Dict[str, Any]] = []
        names: List[str] = []

        if with_backend and self.config.backend is not None:
            for unit in self.config.backend.units:
                name = f"Action:{unit.qualified_name}"
                names.append(name)
                configurations.append(self._unit_config(unit, name))

        debug_config = {
            "configurations": configurations,
            "compounds": [{"name": "Actions", "configurations": names}]
        }

        if has_frontend and self.config.frontend is not None:
            configurations.append({
                "type": "chrome",
                "request": "launch",
                "name": "Web",
                "url": frontend_url,
                "webRoot": self.config.frontend.src,
                "breakOnLoad": True,
                "sourceMapPathOverrides": {
                    "*": os.path.join(self.config.frontend.dist_dev, "*")
                }
            })
            debug_config["compounds"].append({
                "name": "WebAndActions",
                "configurations": ["Web"] + names
            })

        return debug_config

    def _unit_config(self, unit, name: str) -> Dict[str, Any]:
        entry = self.config.abs_path(unit.sources[0])
        if os.path.isdir(entry):
            entry = os.path.join(entry, self._entry_file(entry))

        return {
            "type": "pwa-node",
            "request": "launch",
            "name": name,
            "runtimeExecutable": self.config.abs_path(os.path.join("node_modules", ".bin", "wskdebug")),
            "envFile": os.path.join("${workspaceFolder}", self.config.env_file),
            "timeout": 30000,
            "localRoot": self.config.abs_path("."),
            "remoteRoot": "/code",
            "outputCapture": "std",
            "attachSimplePort": 0,
            "runtimeArgs": [unit.qualified_name, entry, "-v", "--kind", unit.runtime]
        }

    @staticmethod
    def _entry_file(folder: str) -> str:
        """``main`` of the folder's package.json, else index.js"""
        package_json = os.path.join(folder, "package.json")
        if os.path.exists(package_json):
            with open(package_json) as f:
                return json.load(f).get("main") or "index.js"
        return "index.js"

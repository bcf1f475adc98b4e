"""
File helpers shared by the development loop
"""

import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Mapping


def write_config(file_path: str, data: Mapping[str, Any]) -> None:
    """
    Write the injected frontend configuration as compact JSON.

    The parent directory is created if needed. The write is synchronous so it
    completes before any bundling step that reads the file starts.
    """
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(dict(data), separators=(",", ":")), encoding="utf-8")


def read_config(file_path: str) -> Dict[str, Any]:
    """Read back a configuration written by :func:`write_config`"""
    return json.loads(Path(file_path).read_text(encoding="utf-8"))


def write_env_file(file_path: str, values: Mapping[str, Any], header: str) -> None:
    """Write ``KEY=VALUE`` lines preceded by ``#`` header comments"""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [f"# {line}" for line in header.splitlines()]
    lines.extend(f"{key}={value}" for key, value in values.items())
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def backup_file(file_path: str, backup_path: str) -> bool:
    """
    Move ``file_path`` to ``backup_path``.

    An existing backup is never overwritten: if one is already present the
    original file is left where it is.

    Returns:
        True if a backup was taken by this call
    """
    if not os.path.exists(file_path) or os.path.exists(backup_path):
        return False
    Path(backup_path).parent.mkdir(parents=True, exist_ok=True)
    shutil.move(file_path, backup_path)
    return True


def restore_backup(backup_path: str, file_path: str) -> bool:
    """Move a backup back over ``file_path``; returns False if there is none"""
    if not os.path.exists(backup_path):
        return False
    os.replace(backup_path, file_path)
    return True


def remove_file(file_path: str) -> bool:
    """Remove a file if present; returns False when it was already gone"""
    try:
        os.unlink(file_path)
    except FileNotFoundError:
        return False
    return True

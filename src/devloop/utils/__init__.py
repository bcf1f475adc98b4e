"""
Utility modules for devloop
"""

from .logging import setup_logging, get_logger
from .files import write_config, read_config, write_env_file

__all__ = [
    "setup_logging",
    "get_logger",
    "write_config",
    "read_config",
    "write_env_file",
]

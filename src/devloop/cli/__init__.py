"""devloop Command Line Interface

This module provides the CLI that runs the development loop.
"""

from .main import main

__all__ = ['main']

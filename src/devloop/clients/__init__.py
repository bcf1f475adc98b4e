"""
Client libraries for the runtime build/deploy service
"""

from .runtime import RuntimeService, OpenWhiskRuntime, select_units

__all__ = [
    "RuntimeService",
    "OpenWhiskRuntime",
    "select_units",
]

"""
sy-common: Shared library for Switchyard.

Provides common data models, configuration management, structured
logging, error types, and the transport session contract used by the
reconciler and conference packages.
"""

from sy_common.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]

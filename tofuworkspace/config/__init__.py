"""
Configuration management for the workspace provider.

This module handles provider settings, defaults, and environment overrides.
"""

from .settings import Settings
from .defaults import DEFAULT_SETTINGS

__all__ = ["Settings", "DEFAULT_SETTINGS"]

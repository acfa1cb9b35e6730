"""
Utility functions for the workspace provider.
"""

from .logger import setup_logging
from .validators import check_environment, validate_tofu_installed

__all__ = ["setup_logging", "check_environment", "validate_tofu_installed"]

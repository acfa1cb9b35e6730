"""
Environment validation for the workspace provider.
"""

import os
import shutil
import subprocess
import tempfile
from typing import Tuple, Optional

from ..errors import ProviderError


def validate_tofu_installed(tofu_binary: str = "tofu") -> Tuple[bool, Optional[str]]:
    """
    Check if OpenTofu is installed and accessible.

    Args:
        tofu_binary: Path or name of tofu binary

    Returns:
        Tuple of (is_installed, version_string)
        If not installed, version_string is None
    """
    # Check if binary exists in PATH
    if not shutil.which(tofu_binary):
        return False, None

    try:
        result = subprocess.run(
            [tofu_binary, "version"],
            capture_output=True,
            text=True,
            timeout=5,
        )

        if result.returncode == 0:
            # First line holds the version, e.g. "OpenTofu v1.9.0"
            version_line = result.stdout.split('\n')[0]
            return True, version_line
        else:
            return False, None

    except (subprocess.TimeoutExpired, OSError):
        return False, None


def validate_dir_writable(path: str) -> bool:
    """
    Check that a directory exists (or can be created) and accepts new files.

    Args:
        path: Directory to check

    Returns:
        True if a file can be created in the directory
    """
    try:
        os.makedirs(path, mode=0o700, exist_ok=True)
        with tempfile.TemporaryFile(dir=path):
            pass
    except OSError:
        return False
    return True


def check_environment(settings) -> str:
    """
    Verify the provider can run: tofu is installed and tf_dir is writable.

    Args:
        settings: Provider settings

    Returns:
        The tofu version line

    Raises:
        ProviderError: If a requirement is not met
    """
    binary = settings.get("tofu_binary")
    installed, version = validate_tofu_installed(binary)
    if not installed:
        raise ProviderError(f"OpenTofu binary not found or not working: {binary}")

    if not validate_dir_writable(settings.tf_dir):
        raise ProviderError(f"Working directory root is not writable: {settings.tf_dir}")

    return version

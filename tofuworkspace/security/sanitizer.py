"""
Input sanitization and validation for the workspace provider.

This module provides secure input validation to prevent:
- Working directory escape through entrypoint paths
- Credential files being written outside their directory
- Unsafe arguments being passed to the tofu binary
"""

import os
import re


class SecurityError(Exception):
    """Raised when a security validation fails."""
    pass


class InputSanitizer:
    """
    Provides input validation and sanitization methods.

    All methods raise SecurityError if validation fails.
    """

    # Characters a URL path segment carries unescaped; tofu rejects any
    # workspace name that would need escaping
    WORKSPACE_NAME_PATTERN = re.compile(r'^[A-Za-z0-9\-._~$&+:=@]+$')

    # Maximum length to prevent resource exhaustion
    MAX_COMMAND_ARG_LENGTH = 131072

    PARENT_DIR_SEQUENCE = "../"

    @staticmethod
    def sanitize_entrypoint(base_dir: str, entrypoint: str) -> str:
        """
        Resolve an entrypoint subpath against a working directory.

        Every ``../`` sequence is stripped before joining, and the result
        must still lie inside ``base_dir``.

        Args:
            base_dir: The resource's working directory
            entrypoint: Declared entrypoint subpath

        Returns:
            Normalized path of the effective working directory

        Raises:
            SecurityError: If the entrypoint resolves outside base_dir
        """
        if not entrypoint:
            return base_dir

        if '\x00' in entrypoint:
            raise SecurityError("Entrypoint contains a null byte")

        stripped = entrypoint.replace(InputSanitizer.PARENT_DIR_SEQUENCE, "")
        # A leading separator would make os.path.join discard base_dir
        stripped = stripped.lstrip("/")
        path = os.path.normpath(os.path.join(base_dir, stripped))

        base = os.path.normpath(base_dir)
        if path != base and not path.startswith(base + os.sep):
            raise SecurityError(f"Entrypoint escapes working directory: {entrypoint}")

        return path

    @staticmethod
    def sanitize_filename(directory: str, filename: str) -> str:
        """
        Build the path of a file written into a directory.

        Only the base name of ``filename`` is used, so credentials declared
        as ``../../etc/passwd`` land inside ``directory`` as ``passwd``.

        Args:
            directory: Target directory
            filename: Declared file name

        Returns:
            Normalized path inside directory

        Raises:
            SecurityError: If the base name is empty or refers to a directory
        """
        name = os.path.basename(filename)
        if not name or name in (".", ".."):
            raise SecurityError(f"Invalid file name: {filename!r}")
        return os.path.normpath(os.path.join(directory, name))

    @staticmethod
    def sanitize_workspace_name(name: str) -> str:
        """
        Validate an OpenTofu workspace name.

        Rules:
        - Must be usable unescaped as a URL path segment: ASCII letters,
          digits and any of ``-._~$&+:=@``
        - Cannot be empty
        - Cannot start with hyphen

        Args:
            name: Workspace name to validate

        Returns:
            Validated workspace name (unchanged if valid)

        Raises:
            SecurityError: If name is invalid
        """
        if not name:
            raise SecurityError("Workspace name cannot be empty")

        if name.startswith("-"):
            raise SecurityError("Workspace name cannot start with hyphen")

        if not InputSanitizer.WORKSPACE_NAME_PATTERN.fullmatch(name):
            raise SecurityError(
                f"Invalid workspace name '{name}': the name must contain only URL "
                "safe characters"
            )

        return name

    @staticmethod
    def is_safe_command_arg(arg: str) -> bool:
        """
        Check if a command argument is safe to pass to subprocess.

        Commands always run with shell=False; this rejects the arguments
        the OS would truncate or refuse.

        Args:
            arg: Command argument to check

        Returns:
            True if safe, False otherwise
        """
        if not isinstance(arg, str):
            return False

        if '\x00' in arg:
            return False

        if len(arg) > InputSanitizer.MAX_COMMAND_ARG_LENGTH:
            return False

        return True

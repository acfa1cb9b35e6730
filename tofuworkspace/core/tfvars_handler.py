"""
Handler for var-files passed to tofu.

Var-files reach the harness as raw bytes. They are written to temporary
``.tfvars`` / ``.tfvars.json`` files inside the working directory for the
duration of a single command, and can be inspected for the variable names
they define.
"""

import json
import logging
import os
import tempfile
from typing import List, Optional, Set

import hcl2

from .options import VarFileFormat

logger = logging.getLogger(__name__)

VAR_FILE_PREFIX = "crossplane-provider-tofu-"


class TfvarsHandler:
    """Write and inspect tofu var-files."""

    @staticmethod
    def suffix_for(fmt: VarFileFormat) -> str:
        """File suffix tofu uses to pick a var-file's parser."""
        return ".tfvars.json" if VarFileFormat(fmt) == VarFileFormat.JSON else ".tfvars"

    @staticmethod
    def write_var_file(directory: str, data: bytes, fmt: VarFileFormat) -> str:
        """
        Write var-file content to a new temporary file.

        Args:
            directory: Directory to create the file in
            data: Raw var-file content
            fmt: Encoding of the content

        Returns:
            Absolute path of the new file (the caller removes it)
        """
        fd, path = tempfile.mkstemp(
            prefix=VAR_FILE_PREFIX,
            suffix=TfvarsHandler.suffix_for(fmt),
            dir=directory,
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError:
            os.unlink(path)
            raise
        return os.path.abspath(path)

    @staticmethod
    def remove_var_files(paths: List[str]) -> None:
        """Remove temporary var-files, ignoring ones already gone."""
        for path in paths:
            try:
                os.unlink(path)
            except FileNotFoundError:
                pass

    @staticmethod
    def defined_keys(data: bytes, fmt: VarFileFormat) -> Optional[Set[str]]:
        """
        Return the variable names a var-file defines.

        Uses hcl2 for HCL content and json for JSON content. The content is
        not validated here; tofu remains the authority on its syntax.

        Args:
            data: Raw var-file content
            fmt: Encoding of the content

        Returns:
            Set of top-level names, or None if the content cannot be parsed
        """
        try:
            text = data.decode()
            if VarFileFormat(fmt) == VarFileFormat.JSON:
                parsed = json.loads(text) if text.strip() else {}
            else:
                parsed = hcl2.loads(text)
        except Exception as e:
            logger.debug(f"Cannot inspect {VarFileFormat(fmt).value} var-file: {e}")
            return None

        if not isinstance(parsed, dict):
            return None
        # hcl2 may add "__start_line__"-style metadata keys
        return {key for key in parsed if not key.startswith("__")}

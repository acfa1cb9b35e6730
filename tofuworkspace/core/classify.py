"""
Classification of tofu process errors.

OpenTofu prints diagnostics as boxed blocks on stderr:

    ╷
    │ Error: Unsupported argument
    │
    │   on main.tf line 10, in resource "aws_s3_bucket" "example":
    ...
    ╵

A block like this spans many lines. It is collapsed into a single line that
carries the summary and the full block, gzipped and base64 encoded, together
with the shell command that recovers it.
"""

import base64
import gzip
import re
from typing import Optional, Tuple

from ..errors import ProviderError

TOOL_NAME = "OpenTofu"

DIAGNOSTIC_MARKER = "│"

_SUMMARY_RE = re.compile(r"^\s*" + DIAGNOSTIC_MARKER + r"\s*Error: (.*)$", re.MULTILINE)


class TofuError(ProviderError):
    """Raised when a tofu command exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
        summary: str = "",
    ):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        self.summary = summary


class TofuTimeoutError(TofuError):
    """Raised when a tofu command exceeds its timeout and is killed."""


def format_error_output(error_output: str) -> Tuple[str, str]:
    """
    Split a diagnostic block into a summary and a compressed payload.

    Args:
        error_output: Raw stderr of a tofu command

    Returns:
        (summary, base64 of the gzipped error output)

    Raises:
        ValueError: If no diagnostic error line is present
    """
    match = _SUMMARY_RE.search(error_output)
    if match is None:
        raise ValueError("no diagnostic error block found")

    summary = match.group(1).strip()
    compressed = gzip.compress(error_output.encode(), mtime=0)
    return summary, base64.b64encode(compressed).decode()


def decode_error_payload(payload: str) -> str:
    """Reverse the encoding applied by format_error_output."""
    return gzip.decompress(base64.b64decode(payload)).decode()


def classify(
    stderr: str,
    exit_code: Optional[int] = None,
    fallback: str = "",
) -> TofuError:
    """
    Turn a failed command's stderr into a TofuError.

    Args:
        stderr: Raw stderr of the command
        exit_code: Process exit status
        fallback: Message to use when stderr is empty

    Returns:
        A TofuError with a one-line message when stderr holds a diagnostic
        block, or with the raw text otherwise
    """
    try:
        summary, payload = format_error_output(stderr)
    except ValueError:
        message = stderr.strip() or fallback or f"{TOOL_NAME} exited with status {exit_code}"
        return TofuError(message, exit_code=exit_code, stderr=stderr)

    message = (
        f"{TOOL_NAME} encountered an error. Summary: {summary}. "
        f'To see the full error run: echo "{payload}" | base64 -d | gunzip'
    )
    return TofuError(message, exit_code=exit_code, stderr=stderr, summary=summary)

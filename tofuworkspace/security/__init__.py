"""
Security module for the workspace provider.

This module provides input validation for paths and command arguments, and
redaction of sensitive values from CLI output.
"""

from .sanitizer import InputSanitizer, SecurityError
from .secure_memory import OutputRedactor, REDACTED

__all__ = ["InputSanitizer", "SecurityError", "OutputRedactor", "REDACTED"]

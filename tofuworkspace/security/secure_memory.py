"""
Redaction of sensitive values from tofu CLI output.

The harness can log the stdout and stderr of every tofu invocation. Values
resolved from Secrets must never reach those logs.
"""

from typing import Iterable, List, Optional

REDACTED = "[REDACTED]"


class OutputRedactor:
    """
    Redacts sensitive values from text output.

    Example:
        >>> redactor = OutputRedactor(["secret123"])
        >>> redactor.redact("Connecting with key: secret123")
        'Connecting with key: [REDACTED]'
    """

    def __init__(self, sensitive_values: Optional[Iterable[str]] = None):
        self.sensitive_values: List[str] = []

        if sensitive_values:
            self.add_sensitive_values(sensitive_values)

    def add_sensitive_values(self, sensitive_values: Iterable[str]):
        """Add values to the redaction list, ignoring empty ones."""
        for value in sensitive_values:
            if value and value not in self.sensitive_values:
                self.sensitive_values.append(value)
        # Longest first so a secret containing another secret is fully masked
        self.sensitive_values.sort(key=len, reverse=True)

    def redact(self, text: str) -> str:
        """
        Replace any occurrence of sensitive values with [REDACTED].

        Uses exact, case-sensitive string matching rather than regex.

        Args:
            text: Text to redact

        Returns:
            Text with sensitive values replaced by [REDACTED]
        """
        if not text:
            return text

        redacted = text
        for sensitive_value in self.sensitive_values:
            redacted = redacted.replace(sensitive_value, REDACTED)

        return redacted

    def clear(self):
        """Forget all sensitive values."""
        self.sensitive_values.clear()

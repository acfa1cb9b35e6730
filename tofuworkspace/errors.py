"""
Error definitions for the workspace provider.

Every error that crosses a component boundary carries a short, static stage
label (for example "cannot initialize tofu configuration") and chains the
original cause, so the rendered message reads "<label>: <cause>".
"""

from typing import Any, Dict, Optional


class ProviderError(Exception):
    """Base exception class for all provider errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        message = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            message = f"{message} ({details_str})"
        if self.__cause__ is not None:
            return f"{message}: {self.__cause__}"
        return message


class ConnectError(ProviderError):
    """Raised when a Workspace cannot be bound to a working directory and harness."""


class ObserveError(ProviderError):
    """Raised when the external state of a Workspace cannot be observed."""


class ApplyError(ProviderError):
    """Raised when a Workspace configuration cannot be applied."""


class DestroyError(ProviderError):
    """Raised when a Workspace configuration cannot be destroyed."""


class VariableResolutionError(ProviderError):
    """Raised when a variable, var-file or environment value cannot be resolved."""


class CredentialsError(ProviderError):
    """Raised when credentials cannot be extracted from their source."""


class ModuleFetchError(ProviderError):
    """Raised when a remote module cannot be fetched."""


class GarbageCollectionError(ProviderError):
    """Raised when one or more working directories could not be collected."""

    def __init__(self, message: str, failed: Optional[list] = None):
        super().__init__(message)
        self.failed = list(failed or [])

"""
ProviderConfig resource model.

A ProviderConfig holds what every Workspace using it shares: credential
files, provider configuration, backend configuration and the plugin cache
toggle. The reconciler only reads it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .workspace import KeyReference


class CredentialsSource(str, Enum):
    """Where credential bytes are extracted from."""

    NONE = "None"
    SECRET = "Secret"
    ENVIRONMENT = "Environment"
    FILESYSTEM = "Filesystem"


@dataclass
class EnvSelector:
    name: str


@dataclass
class FsSelector:
    path: str


@dataclass
class ProviderCredentials:
    """One credential file written into the working directory."""
    filename: str
    source: CredentialsSource = CredentialsSource.NONE
    secret_ref: Optional[KeyReference] = None
    env: Optional[EnvSelector] = None
    fs: Optional[FsSelector] = None


@dataclass
class ProviderConfig:
    """Shared configuration for Workspaces."""
    name: str = "default"
    credentials: List[ProviderCredentials] = field(default_factory=list)
    configuration: Optional[str] = None
    backend_file: Optional[str] = None
    plugin_cache: Optional[bool] = None

    def uses_plugin_cache(self) -> bool:
        """The plugin cache is enabled unless explicitly turned off."""
        return True if self.plugin_cache is None else self.plugin_cache

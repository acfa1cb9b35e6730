"""
Interface to the orchestration API server.

The API server, its object model and its watch machinery live outside this
package. The reconciler and garbage collector only need the handful of reads
described by KubeClient.
"""

from typing import Dict, List, Optional, Protocol

from ..apis.providerconfig import ProviderConfig
from ..apis.workspace import Workspace


class NotFoundError(LookupError):
    """Raised when a requested object does not exist."""

    def __init__(self, kind: str, namespace: str, name: str):
        self.kind = kind
        self.namespace = namespace
        self.name = name
        ref = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {ref} not found")


class KubeClient(Protocol):
    """Reads the reconciler and garbage collector perform against the API server."""

    def get_config_map(self, namespace: str, name: str) -> Dict[str, str]:
        """Return the data of a ConfigMap, raising NotFoundError if absent."""
        ...

    def get_secret(self, namespace: str, name: str) -> Dict[str, bytes]:
        """Return the decoded data of a Secret, raising NotFoundError if absent."""
        ...

    def resolve_provider_config(self, workspace: Workspace) -> ProviderConfig:
        """Return the ProviderConfig a Workspace references and record its usage."""
        ...

    def list_workspace_uids(self, namespaced: bool, namespace: Optional[str] = None) -> List[str]:
        """Return the UIDs of every live Workspace of the given scope."""
        ...

"""
Clients for the collaborators outside this package.
"""

from .kube import KubeClient, NotFoundError
from .credentials import extract_credentials

__all__ = ["KubeClient", "NotFoundError", "extract_credentials"]

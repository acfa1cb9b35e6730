"""
Workspace controller: reconciliation and working-directory garbage collection.
"""

from .gc import GarbageCollector, start_collectors
from .managed import ManagedReconciler, ReconcileResult, WorkspaceController
from .startup import ProviderRuntime, setup
from .variables import resolve_env, resolve_options
from .workspace import (
    Connector,
    External,
    ExternalCreation,
    ExternalObservation,
    ExternalUpdate,
    generate_workspace_observation,
    op2cd,
)

__all__ = [
    "GarbageCollector",
    "start_collectors",
    "ManagedReconciler",
    "ReconcileResult",
    "WorkspaceController",
    "ProviderRuntime",
    "setup",
    "resolve_env",
    "resolve_options",
    "Connector",
    "External",
    "ExternalCreation",
    "ExternalObservation",
    "ExternalUpdate",
    "generate_workspace_observation",
    "op2cd",
]

"""
Resource models for the workspace provider.
"""

from .workspace import (
    Condition,
    ConditionReason,
    EnvVar,
    FileFormat,
    KeyReference,
    ModuleSource,
    ProviderConfigReference,
    Var,
    VarFile,
    VarFileSource,
    Workspace,
    WorkspaceObservation,
    WorkspaceParameters,
    WorkspaceStatus,
)
from .providerconfig import (
    CredentialsSource,
    EnvSelector,
    FsSelector,
    ProviderConfig,
    ProviderCredentials,
)

__all__ = [
    "Condition",
    "ConditionReason",
    "EnvVar",
    "FileFormat",
    "KeyReference",
    "ModuleSource",
    "ProviderConfigReference",
    "Var",
    "VarFile",
    "VarFileSource",
    "Workspace",
    "WorkspaceObservation",
    "WorkspaceParameters",
    "WorkspaceStatus",
    "CredentialsSource",
    "EnvSelector",
    "FsSelector",
    "ProviderConfig",
    "ProviderCredentials",
]

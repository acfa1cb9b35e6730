"""
Workspace resource model.

A Workspace declares one OpenTofu root module together with its variables,
environment and per-phase CLI arguments, and records what was last observed
about it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ModuleSource(str, Enum):
    """Where a Workspace's root module comes from."""

    REMOTE = "Remote"
    INLINE = "Inline"


class FileFormat(str, Enum):
    """Encoding of inline modules and var-files."""

    HCL = "HCL"
    JSON = "JSON"


class VarFileSource(str, Enum):
    """Store a var-file is read from."""

    CONFIG_MAP_KEY = "ConfigMapKey"
    SECRET_KEY = "SecretKey"


@dataclass
class KeyReference:
    """Reference to one key of a ConfigMap or Secret."""
    namespace: str
    name: str
    key: str


@dataclass
class Var:
    """A literal tofu variable."""
    key: str
    value: str


@dataclass
class VarFile:
    """A var-file read from a ConfigMap or Secret key."""
    source: VarFileSource
    format: Optional[FileFormat] = None
    config_map_key_ref: Optional[KeyReference] = None
    secret_key_ref: Optional[KeyReference] = None


@dataclass
class EnvVar:
    """
    An environment variable for the tofu process.

    A non-empty literal value wins; otherwise the value is read from the
    ConfigMap reference, then the Secret reference.
    """
    name: str
    value: str = ""
    config_map_key_ref: Optional[KeyReference] = None
    secret_key_ref: Optional[KeyReference] = None


@dataclass
class WorkspaceParameters:
    """Desired state of a Workspace."""
    module: str = ""
    source: ModuleSource = ModuleSource.INLINE
    inline_format: FileFormat = FileFormat.HCL
    entrypoint: str = ""
    env: List[EnvVar] = field(default_factory=list)
    vars: List[Var] = field(default_factory=list)
    var_map: Optional[Dict[str, Any]] = None
    var_files: List[VarFile] = field(default_factory=list)
    init_args: List[str] = field(default_factory=list)
    plan_args: List[str] = field(default_factory=list)
    apply_args: List[str] = field(default_factory=list)
    destroy_args: List[str] = field(default_factory=list)
    enable_tofu_cli_logging: bool = False


@dataclass
class WorkspaceObservation:
    """Observed state of a Workspace."""
    checksum: str = ""
    # Output name -> raw JSON encoding of the value
    outputs: Dict[str, bytes] = field(default_factory=dict)


class ConditionReason(str, Enum):
    AVAILABLE = "Available"
    UNAVAILABLE = "Unavailable"
    CREATING = "Creating"
    DELETING = "Deleting"
    RECONCILE_SUCCESS = "ReconcileSuccess"
    RECONCILE_ERROR = "ReconcileError"


READY = "Ready"
SYNCED = "Synced"


@dataclass
class Condition:
    """A status condition in the Kubernetes style."""
    type: str
    status: str
    reason: ConditionReason
    message: str = ""
    last_transition_time: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def equal(self, other: "Condition") -> bool:
        """Compare ignoring the transition time."""
        return (
            self.type == other.type
            and self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
        )


def available() -> Condition:
    return Condition(type=READY, status="True", reason=ConditionReason.AVAILABLE)


def creating() -> Condition:
    return Condition(type=READY, status="False", reason=ConditionReason.CREATING)


def deleting() -> Condition:
    return Condition(type=READY, status="False", reason=ConditionReason.DELETING)


def reconcile_success() -> Condition:
    return Condition(type=SYNCED, status="True", reason=ConditionReason.RECONCILE_SUCCESS)


def reconcile_error(err: Exception) -> Condition:
    return Condition(
        type=SYNCED,
        status="False",
        reason=ConditionReason.RECONCILE_ERROR,
        message=str(err),
    )


@dataclass
class WorkspaceStatus:
    """Conditions plus the observation recorded by the last pass."""
    conditions: List[Condition] = field(default_factory=list)
    at_provider: WorkspaceObservation = field(default_factory=WorkspaceObservation)

    def set_conditions(self, *conditions: Condition):
        """
        Set conditions, replacing any existing condition of the same type.

        The transition time of an unchanged condition is preserved.
        """
        for new in conditions:
            for i, existing in enumerate(self.conditions):
                if existing.type != new.type:
                    continue
                if not existing.equal(new):
                    self.conditions[i] = new
                break
            else:
                self.conditions.append(new)

    def get_condition(self, condition_type: str) -> Optional[Condition]:
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


@dataclass
class ProviderConfigReference:
    """Name (and kind) of the ProviderConfig a Workspace uses."""
    name: str = "default"
    kind: str = "ProviderConfig"


@dataclass
class Workspace:
    """
    A declarative OpenTofu workspace.

    Attributes:
        uid: Stable unique identifier; names the working directory
        name: Resource name
        namespace: Resource namespace, empty for cluster-scoped Workspaces
        external_name: Name of the tofu workspace to select (defaults to name)
        deletion_timestamp: Set once the resource is marked for deletion
        spec: Desired state
        status: Observed state
        provider_config_ref: ProviderConfig to use
    """
    uid: str
    name: str
    namespace: str = ""
    external_name: str = ""
    deletion_timestamp: Optional[datetime] = None
    spec: WorkspaceParameters = field(default_factory=WorkspaceParameters)
    status: WorkspaceStatus = field(default_factory=WorkspaceStatus)
    provider_config_ref: ProviderConfigReference = field(
        default_factory=ProviderConfigReference
    )
    connection_details: Dict[str, bytes] = field(default_factory=dict)

    def get_external_name(self) -> str:
        return self.external_name or self.name

    def was_deleted(self) -> bool:
        return self.deletion_timestamp is not None

    def mark_deleted(self):
        if self.deletion_timestamp is None:
            self.deletion_timestamp = datetime.now(timezone.utc)

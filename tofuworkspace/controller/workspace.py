"""
Workspace reconciliation against OpenTofu.

The Connector prepares a Workspace's working directory and returns an
External bound to a tofu harness for it. The External observes, applies and
destroys the Workspace's configuration.

Every step is idempotent. Nothing is retried here: a failed pass raises an
error tagged with the stage that failed, and the next pass starts over from
connect().
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type

from ..apis.providerconfig import ProviderConfig, ProviderCredentials
from ..apis.workspace import (
    FileFormat,
    ModuleSource,
    Workspace,
    WorkspaceObservation,
    available,
)
from ..clients.credentials import extract_credentials
from ..clients.kube import KubeClient, NotFoundError
from ..config import Settings
from ..core.deadline import Deadline
from ..core.getter import ModuleGetter
from ..core.harness import Harness, TofuClient
from ..core.options import Option, with_args, with_init_args
from ..core.outputs import Output, OutputType
from ..errors import (
    ApplyError,
    ConnectError,
    CredentialsError,
    DestroyError,
    ModuleFetchError,
    ObserveError,
    ProviderError,
    VariableResolutionError,
)
from ..security.sanitizer import InputSanitizer, SecurityError
from ..security.secure_memory import OutputRedactor
from .variables import ERR_VAR_RESOLUTION, resolve_env, resolve_options

logger = logging.getLogger(__name__)

TF_MAIN = "main.tf"
TF_MAIN_JSON = "main.tf.json"
TF_CONFIG = "crossplane-provider-config.tf"
TF_BACKEND_FILE = "crossplane.remote.tfbackend"
GIT_CREDENTIALS_FILENAME = ".git-credentials"

# Stage labels
ERR_MKDIR = "cannot make tofu configuration directory"
ERR_PROVIDER_CONFIG = "failed to resolve provider config"
ERR_GET_CREDS = "cannot get credentials"
ERR_REMOTE_MODULE = "cannot get remote tofu module"
ERR_ENTRYPOINT = "cannot resolve tofu entrypoint"
ERR_WRITE_CREDS = "cannot write tofu credentials"
ERR_WRITE_GIT_CREDS = "cannot write .git-credentials to /tmp dir"
ERR_WRITE_CONFIG = "cannot write tofu configuration " + TF_CONFIG
ERR_WRITE_MAIN = "cannot write tofu configuration "
ERR_WRITE_BACKEND = "cannot write tofu configuration " + TF_BACKEND_FILE
ERR_INIT = "cannot initialize tofu configuration"
ERR_WORKSPACE = "cannot select tofu workspace"
ERR_RESOURCES = "cannot list tofu resources"
ERR_DIFF = "cannot diff (i.e. plan) tofu configuration"
ERR_OUTPUTS = "cannot list tofu outputs"
ERR_OPTIONS = "cannot determine tofu options"
ERR_APPLY = "cannot apply tofu configuration"
ERR_DESTROY = "cannot destroy tofu configuration"
ERR_DELETE_WORKSPACE = "cannot delete tofu workspace"
ERR_CHECKSUM = "cannot calculate workspace checksum"

# Errors a tofu command can raise
TOFU_ERRORS = (ProviderError, SecurityError)

HarnessFactory = Callable[..., TofuClient]


@dataclass
class ExternalObservation:
    """What observe() learned about a Workspace's external state."""
    resource_exists: bool = False
    resource_up_to_date: bool = False
    connection_details: Dict[str, bytes] = field(default_factory=dict)


@dataclass
class ExternalUpdate:
    """Connection details published by a successful apply."""
    connection_details: Dict[str, bytes] = field(default_factory=dict)


# tofu has no separate create operation
ExternalCreation = ExternalUpdate


def _write_file(path: str, data: bytes):
    """Write a file readable only by its owner, replacing any previous content."""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


class Connector:
    """
    Binds Workspaces to working directories and tofu harnesses.

    Args:
        kube: Client for ProviderConfig, ConfigMap and Secret reads
        settings: Provider settings (directories, binary, timeout)
        getter: Fetcher for remote modules
        harness_factory: Called with the effective directory and harness
            keyword arguments; defaults to building a Harness
    """

    def __init__(
        self,
        kube: KubeClient,
        settings: Optional[Settings] = None,
        getter: Optional[ModuleGetter] = None,
        harness_factory: Optional[HarnessFactory] = None,
    ):
        self.kube = kube
        self.settings = settings or Settings()
        self.getter = getter or ModuleGetter()
        self.harness_factory = harness_factory or self._new_harness

    def _new_harness(
        self,
        directory: str,
        use_plugin_cache: bool,
        enable_cli_logging: bool,
        envs: List[str],
        redactor: OutputRedactor,
        deadline: Optional[Deadline] = None,
    ) -> TofuClient:
        return Harness(
            directory,
            path=self.settings.get("tofu_binary"),
            use_plugin_cache=use_plugin_cache,
            enable_cli_logging=enable_cli_logging,
            envs=envs,
            timeout=self.settings.get("timeout_seconds"),
            plugin_cache_dir=self.settings.plugin_cache_dir,
            redactor=redactor,
            deadline=deadline,
        )

    def working_dir(self, workspace: Workspace) -> str:
        """The working directory of a Workspace, derived from its UID."""
        return os.path.join(self.settings.tf_dir, workspace.uid)

    def git_cred_dir(self, workspace: Workspace) -> str:
        """Directory holding a Workspace's .git-credentials, outside its working directory."""
        return os.path.normpath(os.path.join(self.settings.tmp_dir, workspace.uid))

    def connect(self, workspace: Workspace, deadline: Optional[Deadline] = None) -> "External":
        """
        Prepare a Workspace's working directory and return an External for it.

        Args:
            workspace: The Workspace being reconciled
            deadline: Deadline of the reconcile pass, shared by the module
                fetch and every tofu command; defaults to one of timeout_seconds

        Returns:
            External bound to a harness for the effective working directory

        Raises:
            ConnectError: Tagged with the stage that failed
        """
        params = workspace.spec
        directory = self.working_dir(workspace)
        if deadline is None:
            deadline = Deadline(self.settings.get("timeout_seconds"))
        try:
            os.makedirs(directory, mode=0o700, exist_ok=True)
            os.makedirs(self.settings.tmp_dir, mode=0o700, exist_ok=True)
        except OSError as e:
            raise ConnectError(ERR_MKDIR) from e

        try:
            pc = self.kube.resolve_provider_config(workspace)
        except (LookupError, ProviderError) as e:
            raise ConnectError(ERR_PROVIDER_CONFIG) from e

        # Git credentials live outside the working directory so that fetching
        # a remote module into it cannot remove or overwrite them.
        git_cred_dir = None
        for creds in pc.credentials:
            if creds.filename != GIT_CREDENTIALS_FILENAME:
                continue
            data = self._extract(creds)
            git_cred_dir = self.git_cred_dir(workspace)
            try:
                os.makedirs(git_cred_dir, mode=0o700, exist_ok=True)
                _write_file(os.path.join(git_cred_dir, GIT_CREDENTIALS_FILENAME), data)
            except OSError as e:
                raise ConnectError(ERR_WRITE_GIT_CREDS) from e

        if ModuleSource(params.source) == ModuleSource.REMOTE:
            try:
                self.getter.get(
                    params.module, directory, git_cred_dir=git_cred_dir, deadline=deadline
                )
            except (ModuleFetchError, OSError) as e:
                raise ConnectError(ERR_REMOTE_MODULE) from e
        else:
            filename = TF_MAIN
            if FileFormat(params.inline_format) == FileFormat.JSON:
                filename = TF_MAIN_JSON
            try:
                _write_file(os.path.join(directory, filename), params.module.encode())
            except OSError as e:
                raise ConnectError(ERR_WRITE_MAIN + filename) from e

        if params.entrypoint:
            try:
                directory = InputSanitizer.sanitize_entrypoint(directory, params.entrypoint)
            except SecurityError as e:
                raise ConnectError(ERR_ENTRYPOINT) from e

        self._write_provider_files(pc, directory)

        try:
            envs, secret_values = resolve_env(self.kube, params.env)
        except (NotFoundError, VariableResolutionError) as e:
            raise ConnectError(ERR_VAR_RESOLUTION) from e

        tofu = self.harness_factory(
            directory=directory,
            use_plugin_cache=pc.uses_plugin_cache(),
            enable_cli_logging=params.enable_tofu_cli_logging,
            envs=envs,
            redactor=OutputRedactor(secret_values),
            deadline=deadline,
        )
        external = External(tofu, self.kube)

        observed = workspace.status.at_provider.checksum
        if observed:
            try:
                checksum = tofu.generate_checksum()
            except (OSError, ValueError) as e:
                raise ConnectError(ERR_CHECKSUM) from e
            if observed == checksum:
                logger.debug(f"Checksums match for {workspace.name}, skipping tofu init")
                self._select_workspace(tofu, workspace)
                return external
            logger.debug(
                f"Checksums don't match for {workspace.name}, running tofu init "
                f"(old {observed}, new {checksum})"
            )

        init_options = []
        if pc.backend_file is not None:
            backend = os.path.join(directory, TF_BACKEND_FILE)
            init_options.append(with_init_args([f"-backend-config={backend}"]))
        init_options.append(with_init_args(params.init_args))
        try:
            tofu.init(*init_options)
        except TOFU_ERRORS as e:
            raise ConnectError(ERR_INIT) from e

        self._select_workspace(tofu, workspace)
        return external

    def _extract(self, creds: ProviderCredentials) -> bytes:
        try:
            return extract_credentials(creds, self.kube)
        except CredentialsError as e:
            raise ConnectError(ERR_GET_CREDS) from e

    def _write_provider_files(self, pc: ProviderConfig, directory: str):
        """Write credentials, provider configuration and backend configuration."""
        for creds in pc.credentials:
            data = self._extract(creds)
            try:
                path = InputSanitizer.sanitize_filename(directory, creds.filename)
                _write_file(path, data)
            except (OSError, SecurityError) as e:
                raise ConnectError(ERR_WRITE_CREDS) from e

        if pc.configuration is not None:
            try:
                _write_file(os.path.join(directory, TF_CONFIG), pc.configuration.encode())
            except OSError as e:
                raise ConnectError(ERR_WRITE_CONFIG) from e

        if pc.backend_file is not None:
            try:
                _write_file(os.path.join(directory, TF_BACKEND_FILE), pc.backend_file.encode())
            except OSError as e:
                raise ConnectError(ERR_WRITE_BACKEND) from e

    @staticmethod
    def _select_workspace(tofu: TofuClient, workspace: Workspace):
        try:
            tofu.workspace(workspace.get_external_name())
        except TOFU_ERRORS as e:
            raise ConnectError(ERR_WORKSPACE) from e


class External:
    """Observes and changes the external state of one connected Workspace."""

    def __init__(self, tofu: TofuClient, kube: KubeClient):
        self.tofu = tofu
        self.kube = kube

    def _options(
        self,
        workspace: Workspace,
        args: List[str],
        error_cls: Type[ProviderError],
    ) -> List[Option]:
        try:
            options = resolve_options(self.kube, workspace.spec)
        except VariableResolutionError as e:
            raise error_cls(ERR_OPTIONS) from e
        options.append(with_args(args))
        return options

    def _check_diff(self, workspace: Workspace) -> bool:
        options = self._options(workspace, workspace.spec.plan_args, ObserveError)
        try:
            return self.tofu.diff(*options)
        except TOFU_ERRORS as e:
            if not workspace.was_deleted():
                raise ObserveError(ERR_DIFF) from e
            # Plan can fail for a resource being deleted; let delete() run
            # if resources remain in the state.
            logger.debug(f"Ignoring plan failure for deleted Workspace {workspace.name}: {e}")
            return False

    def observe(self, workspace: Workspace) -> ExternalObservation:
        """
        Compare the desired configuration with the tofu state.

        Updates the Workspace's observed outputs and checksum, and marks it
        available when the plan shows no changes.

        Raises:
            ObserveError: Tagged with the stage that failed
        """
        differs = self._check_diff(workspace)

        try:
            resources = self.tofu.resources()
        except TOFU_ERRORS as e:
            raise ObserveError(ERR_RESOURCES) from e

        if workspace.was_deleted() and not resources:
            # Nothing left to destroy, so the tofu workspace itself can go
            try:
                self.tofu.delete_current_workspace()
            except TOFU_ERRORS as e:
                raise ObserveError(ERR_DELETE_WORKSPACE) from e

        try:
            outputs = self.tofu.outputs()
        except TOFU_ERRORS as e:
            raise ObserveError(ERR_OUTPUTS) from e
        observation = generate_workspace_observation(outputs)

        try:
            observation.checksum = self.tofu.generate_checksum()
        except (OSError, ValueError) as e:
            raise ObserveError(ERR_CHECKSUM) from e
        workspace.status.at_provider = observation

        if not differs:
            workspace.status.set_conditions(available())

        return ExternalObservation(
            resource_exists=len(resources) + len(outputs) > 0,
            resource_up_to_date=not differs,
            connection_details=op2cd(outputs),
        )

    def create(self, workspace: Workspace) -> ExternalCreation:
        return self.update(workspace)

    def update(self, workspace: Workspace) -> ExternalUpdate:
        """
        Apply the Workspace's configuration.

        Raises:
            ApplyError: Tagged with the stage that failed
        """
        options = self._options(workspace, workspace.spec.apply_args, ApplyError)
        try:
            self.tofu.apply(*options)
        except TOFU_ERRORS as e:
            raise ApplyError(ERR_APPLY) from e

        try:
            outputs = self.tofu.outputs()
        except TOFU_ERRORS as e:
            raise ApplyError(ERR_OUTPUTS) from e

        # The checksum is cleared, so the next connect() runs init again
        workspace.status.at_provider = generate_workspace_observation(outputs)
        workspace.status.set_conditions(available())
        return ExternalUpdate(connection_details=op2cd(outputs))

    def delete(self, workspace: Workspace):
        """
        Destroy the Workspace's infrastructure.

        Raises:
            DestroyError: Tagged with the stage that failed
        """
        options = self._options(workspace, workspace.spec.destroy_args, DestroyError)
        try:
            self.tofu.destroy(*options)
        except TOFU_ERRORS as e:
            raise DestroyError(ERR_DESTROY) from e


def op2cd(outputs: List[Output]) -> Dict[str, bytes]:
    """
    Convert outputs to connection details.

    String outputs are passed through as raw bytes, all others as their JSON
    encoding. Sensitive outputs are never published.
    """
    details: Dict[str, bytes] = {}
    for output in outputs:
        if output.sensitive:
            continue
        if output.type == OutputType.STRING:
            details[output.name] = output.string_value().encode()
        else:
            details[output.name] = output.json_value()
    return details


def generate_workspace_observation(outputs: List[Output]) -> WorkspaceObservation:
    """Build the observed state from outputs, leaving out sensitive ones."""
    return WorkspaceObservation(
        outputs={o.name: o.json_value() for o in outputs if not o.sensitive},
    )

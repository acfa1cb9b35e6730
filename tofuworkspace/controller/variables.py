"""
Resolution of a Workspace's variables and environment.

Variables become an ordered list of harness options; environment variables
become ``NAME=value`` strings. Values are looked up in ConfigMaps and Secrets
through the KubeClient on every pass, so changes to referenced data are picked
up without touching the Workspace.
"""

import json
import logging
from typing import List, Set, Tuple

from ..apis.workspace import EnvVar, FileFormat, KeyReference, VarFile, VarFileSource, WorkspaceParameters
from ..clients.kube import KubeClient, NotFoundError
from ..core.options import Option, VarFileFormat, VarFileOption, with_var, with_var_file
from ..core.tfvars_handler import TfvarsHandler
from ..errors import VariableResolutionError

logger = logging.getLogger(__name__)

ERR_VAR_FILE = "cannot get tfvars"
ERR_VAR_MAP = "cannot get tfvars from var map"
ERR_VAR_RESOLUTION = "cannot resolve variables"


def config_map_value(kube: KubeClient, ref: KeyReference) -> str:
    """
    Read one key of a ConfigMap.

    Raises:
        NotFoundError: If the ConfigMap does not exist
        VariableResolutionError: If the key is absent
    """
    data = kube.get_config_map(ref.namespace, ref.name)
    if ref.key not in data:
        raise VariableResolutionError(
            f"couldn't find key {ref.key} in ConfigMap {ref.namespace}/{ref.name}"
        )
    return data[ref.key]


def secret_value(kube: KubeClient, ref: KeyReference) -> bytes:
    """
    Read one key of a Secret.

    Raises:
        NotFoundError: If the Secret does not exist
        VariableResolutionError: If the key is absent
    """
    data = kube.get_secret(ref.namespace, ref.name)
    if ref.key not in data:
        raise VariableResolutionError(
            f"couldn't find key {ref.key} in Secret {ref.namespace}/{ref.name}"
        )
    return data[ref.key]


def _var_file_option(kube: KubeClient, var_file: VarFile) -> VarFileOption:
    fmt = VarFileFormat.HCL
    if var_file.format is not None and FileFormat(var_file.format) == FileFormat.JSON:
        fmt = VarFileFormat.JSON

    if VarFileSource(var_file.source) == VarFileSource.CONFIG_MAP_KEY:
        if var_file.config_map_key_ref is None:
            raise VariableResolutionError("var-file has no ConfigMap key reference")
        data = config_map_value(kube, var_file.config_map_key_ref).encode()
    else:
        if var_file.secret_key_ref is None:
            raise VariableResolutionError("var-file has no Secret key reference")
        data = secret_value(kube, var_file.secret_key_ref)

    return with_var_file(data, fmt)


def resolve_options(kube: KubeClient, params: WorkspaceParameters) -> List[Option]:
    """
    Build the variable options of a Workspace.

    The list holds one option per literal var, then one per var-file, then
    the var map as a JSON var-file. The harness passes var-files before
    literal vars, so a literal var wins over a file defining the same key.

    Args:
        kube: Client used for ConfigMap and Secret lookups
        params: Workspace parameters

    Returns:
        Ordered list of harness options

    Raises:
        VariableResolutionError: If a referenced value cannot be read
    """
    options: List[Option] = [with_var(v.key, v.value) for v in params.vars]

    var_files: List[VarFileOption] = []
    for var_file in params.var_files:
        try:
            var_files.append(_var_file_option(kube, var_file))
        except (NotFoundError, VariableResolutionError) as e:
            raise VariableResolutionError(ERR_VAR_FILE) from e

    if params.var_map is not None:
        try:
            encoded = json.dumps(params.var_map)
        except (TypeError, ValueError) as e:
            raise VariableResolutionError(ERR_VAR_MAP) from e
        var_files.append(with_var_file(encoded, VarFileFormat.JSON))

    options.extend(var_files)
    _log_shadowed_keys(params, var_files)
    return options


def _log_shadowed_keys(params: WorkspaceParameters, var_files: List[VarFileOption]):
    literal = {v.key for v in params.vars}
    if not literal or not var_files or not logger.isEnabledFor(logging.DEBUG):
        return
    shadowed: Set[str] = set()
    for var_file in var_files:
        keys = TfvarsHandler.defined_keys(var_file.data, var_file.format)
        if keys:
            shadowed |= keys & literal
    if shadowed:
        logger.debug(f"Literal vars override var-file values for: {', '.join(sorted(shadowed))}")


def resolve_env(kube: KubeClient, env: List[EnvVar]) -> Tuple[List[str], List[str]]:
    """
    Resolve environment variables for the tofu process.

    A non-empty literal value wins; otherwise the ConfigMap reference is read,
    then the Secret reference. A variable with neither resolves to empty.

    Args:
        kube: Client used for ConfigMap and Secret lookups
        env: Declared environment variables

    Returns:
        Tuple of (``NAME=value`` strings, values read from Secrets)

    Raises:
        NotFoundError: If a referenced ConfigMap or Secret does not exist
        VariableResolutionError: If a referenced key is absent
    """
    resolved: List[str] = []
    secret_values: List[str] = []
    for var in env:
        value = var.value
        if value == "":
            if var.config_map_key_ref is not None:
                value = config_map_value(kube, var.config_map_key_ref)
            elif var.secret_key_ref is not None:
                value = secret_value(kube, var.secret_key_ref).decode()
                secret_values.append(value)
        resolved.append(f"{var.name}={value}")
    return resolved, secret_values

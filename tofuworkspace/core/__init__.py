"""
Core OpenTofu functionality for the workspace provider.

This module provides the pieces that talk to tofu and the filesystem:
- Running tofu commands in a working directory
- Classifying tofu errors
- Fingerprinting working directories
- Fetching remote modules
"""

from .checksum import hash_dir
from .classify import TofuError, TofuTimeoutError, classify, decode_error_payload
from .getter import ModuleGetter, parse_module_address
from .harness import CommandResult, Harness, TofuClient
from .options import (
    VarFileFormat,
    with_args,
    with_init_args,
    with_var,
    with_var_file,
)
from .outputs import Output, OutputType, parse_outputs
from .tfvars_handler import TfvarsHandler

__all__ = [
    "hash_dir",
    "TofuError",
    "TofuTimeoutError",
    "classify",
    "decode_error_payload",
    "ModuleGetter",
    "parse_module_address",
    "CommandResult",
    "Harness",
    "TofuClient",
    "VarFileFormat",
    "with_args",
    "with_init_args",
    "with_var",
    "with_var_file",
    "Output",
    "OutputType",
    "parse_outputs",
    "TfvarsHandler",
]

"""
Options accepted by the tofu harness.

Options are small immutable values so that an ordered option list can be
built up by the reconciler, compared in tests, and consumed by the harness.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Tuple, Union


class VarFileFormat(str, Enum):
    """Encoding of a var-file passed to the harness."""

    HCL = "HCL"
    JSON = "JSON"


@dataclass(frozen=True)
class VarOption:
    """A literal variable, passed as ``-var=key=value``."""
    key: str
    value: str


@dataclass(frozen=True)
class VarFileOption:
    """A var-file's content, written to a temporary file and passed as ``-var-file``."""
    data: bytes
    format: VarFileFormat = VarFileFormat.HCL


@dataclass(frozen=True)
class ArgsOption:
    """Extra arguments appended to a plan, apply or destroy command."""
    args: Tuple[str, ...]


@dataclass(frozen=True)
class InitArgsOption:
    """Extra arguments appended to an init command."""
    args: Tuple[str, ...]


Option = Union[VarOption, VarFileOption, ArgsOption]
InitOption = InitArgsOption


def with_var(key: str, value: str) -> VarOption:
    return VarOption(key=key, value=value)


def with_var_file(data: Union[bytes, str], fmt: VarFileFormat = VarFileFormat.HCL) -> VarFileOption:
    if isinstance(data, str):
        data = data.encode()
    return VarFileOption(data=data, format=VarFileFormat(fmt))


def with_args(args: Iterable[str]) -> ArgsOption:
    return ArgsOption(args=tuple(args or ()))


def with_init_args(args: Iterable[str]) -> InitArgsOption:
    return InitArgsOption(args=tuple(args or ()))


@dataclass
class CommandOptions:
    """Options of one command, grouped by kind in declaration order."""
    vars: List[VarOption]
    var_files: List[VarFileOption]
    args: List[str]

    @classmethod
    def collect(cls, options: Iterable[Option]) -> "CommandOptions":
        collected = cls(vars=[], var_files=[], args=[])
        for option in options:
            if isinstance(option, VarOption):
                collected.vars.append(option)
            elif isinstance(option, VarFileOption):
                collected.var_files.append(option)
            elif isinstance(option, ArgsOption):
                collected.args.extend(option.args)
            else:
                raise TypeError(f"Unsupported harness option: {option!r}")
        return collected


def collect_init_args(options: Iterable[InitOption]) -> List[str]:
    args: List[str] = []
    for option in options:
        if not isinstance(option, InitArgsOption):
            raise TypeError(f"Unsupported init option: {option!r}")
        args.extend(option.args)
    return args

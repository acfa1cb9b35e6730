"""
OpenTofu command execution.

This module provides the Harness, which runs the tofu binary against one
working directory (init, workspace selection, plan, apply, destroy, state
and output inspection) and turns failures into classified errors.
"""

import contextlib
import logging
import os
import subprocess
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Protocol

from ..security.sanitizer import InputSanitizer, SecurityError
from ..security.secure_memory import OutputRedactor
from .checksum import hash_dir
from .classify import TofuError, TofuTimeoutError, classify
from .deadline import Deadline
from .options import (
    CommandOptions,
    InitOption,
    Option,
    collect_init_args,
)
from .outputs import Output, parse_outputs
from .tfvars_handler import TfvarsHandler

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE = "default"

# Exit status of `plan -detailed-exitcode` when the plan contains changes
PLAN_HAS_CHANGES = 2


@dataclass
class CommandResult:
    """Result of a tofu command execution."""
    exit_code: int
    stdout: str
    stderr: str
    success: bool
    command: str  # operation name (e.g. "init", "plan")


class ReadWriteLock:
    """
    A lock held either by many readers or by one writer.

    Writers are preferred: once a writer waits, new readers queue behind it.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# Shared by every Harness in the process: an init that populates the shared
# plugin cache must not run alongside any other command that reads it.
plugin_cache_lock = ReadWriteLock()


class TofuClient(Protocol):
    """The operations the reconciler needs from tofu."""

    def init(self, *options: InitOption) -> None: ...

    def workspace(self, name: str) -> None: ...

    def outputs(self) -> List[Output]: ...

    def resources(self) -> List[str]: ...

    def diff(self, *options: Option) -> bool: ...

    def apply(self, *options: Option) -> None: ...

    def destroy(self, *options: Option) -> None: ...

    def delete_current_workspace(self) -> None: ...

    def generate_checksum(self) -> str: ...


class Harness:
    """
    Runs tofu commands in one working directory.

    Security features:
    - shell=False always (no shell interpretation)
    - -input=false prevents stdin prompts
    - All command args validated via is_safe_command_arg()
    - Secret values redacted from logged output
    - Process timeout; the process is killed when it expires

    ``timeout`` caps a single command. ``deadline`` is shared with the other
    commands of the same reconcile pass: every command only gets the time
    the pass has left, and none is started once it has expired.
    """

    def __init__(
        self,
        directory: str,
        path: str = "tofu",
        use_plugin_cache: bool = True,
        enable_cli_logging: bool = False,
        envs: Optional[Iterable[str]] = None,
        timeout: Optional[float] = 1200,
        plugin_cache_dir: Optional[str] = None,
        redactor: Optional[OutputRedactor] = None,
        deadline: Optional[Deadline] = None,
    ):
        self.dir = directory
        self.path = path
        self.use_plugin_cache = use_plugin_cache
        self.enable_cli_logging = enable_cli_logging
        self.envs = list(envs or [])
        self.timeout = timeout
        self.plugin_cache_dir = plugin_cache_dir
        self.deadline = deadline
        self._redactor = redactor or OutputRedactor()

    # ------------------------------------------------------------------
    # CLI contract
    # ------------------------------------------------------------------

    def init(self, *options: InitOption) -> None:
        """Run tofu init."""
        cmd = self._build_base_command("init", "-input=false", "-no-color")
        cmd.extend(collect_init_args(options))
        with self._plugin_cache_locked(exclusive=True):
            result = self._execute(cmd, "init")
        self._raise_for_result(result)

    def workspace(self, name: str) -> None:
        """Select the named tofu workspace, creating it if it does not exist."""
        InputSanitizer.sanitize_workspace_name(name)
        with self._plugin_cache_locked():
            result = self._execute(
                self._build_base_command("workspace", "select", "-no-color", name),
                "workspace select",
            )
            if result.success:
                return
            logger.debug(f"Workspace {name} could not be selected, creating it")
            result = self._execute(
                self._build_base_command("workspace", "new", "-no-color", name),
                "workspace new",
            )
        self._raise_for_result(result)

    def delete_current_workspace(self) -> None:
        """
        Delete the currently selected tofu workspace.

        The default workspace cannot be deleted and is left alone.
        """
        with self._plugin_cache_locked():
            result = self._execute(self._build_base_command("workspace", "show"), "workspace show")
            self._raise_for_result(result)

            name = result.stdout.strip()
            if not name or name == DEFAULT_WORKSPACE:
                return

            result = self._execute(
                self._build_base_command("workspace", "select", "-no-color", DEFAULT_WORKSPACE),
                "workspace select",
            )
            self._raise_for_result(result)

            result = self._execute(
                self._build_base_command("workspace", "delete", "-no-color", name),
                "workspace delete",
            )
        self._raise_for_result(result)
        logger.info(f"Deleted tofu workspace {name} in {self.dir}")

    def outputs(self) -> List[Output]:
        """Return all outputs of the current workspace."""
        with self._plugin_cache_locked():
            result = self._execute(self._build_base_command("output", "-json"), "output")
        self._raise_for_result(result)
        try:
            return parse_outputs(result.stdout)
        except ValueError as e:
            raise TofuError(str(e), exit_code=result.exit_code) from e

    def resources(self) -> List[str]:
        """Return the address of every resource in the current state."""
        with self._plugin_cache_locked():
            result = self._execute(self._build_base_command("state", "list"), "state list")
        self._raise_for_result(result)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def diff(self, *options: Option) -> bool:
        """
        Run tofu plan and report whether it contains changes.

        Returns:
            True if applying would change infrastructure.
        """
        result = self._run_with_options(
            ["plan", "-no-color", "-input=false", "-detailed-exitcode", "-lock=false"],
            "plan",
            options,
        )
        if result.exit_code == 0:
            return False
        if result.exit_code == PLAN_HAS_CHANGES:
            return True
        raise classify(result.stderr, result.exit_code)

    def apply(self, *options: Option) -> None:
        """Run tofu apply."""
        result = self._run_with_options(
            ["apply", "-no-color", "-auto-approve", "-input=false"], "apply", options
        )
        self._raise_for_result(result)

    def destroy(self, *options: Option) -> None:
        """Run tofu destroy."""
        result = self._run_with_options(
            ["destroy", "-no-color", "-auto-approve", "-input=false"], "destroy", options
        )
        self._raise_for_result(result)

    def generate_checksum(self) -> str:
        """Return the content fingerprint of the working directory."""
        return hash_dir(self.dir)

    # ------------------------------------------------------------------
    # Command construction
    # ------------------------------------------------------------------

    def _build_base_command(self, *operation: str) -> List[str]:
        """Construct the base command list [binary, -chdir=dir, operation...]."""
        return [self.path, f"-chdir={self.dir}", *operation]

    def _build_environment(self) -> Dict[str, str]:
        """The process environment: ours, then the Workspace's, then tofu settings."""
        env = dict(os.environ)
        for entry in self.envs:
            name, _, value = entry.partition("=")
            env[name] = value
        env["TF_IN_AUTOMATION"] = "1"
        if self.use_plugin_cache and self.plugin_cache_dir:
            env["TF_PLUGIN_CACHE_DIR"] = self.plugin_cache_dir
        return env

    def _run_with_options(
        self,
        operation: List[str],
        name: str,
        options: Iterable[Option],
    ) -> CommandResult:
        """
        Run a command that takes variables.

        Var-files are passed before literal variables, so a literal variable
        wins over a var-file defining the same name.
        """
        opts = CommandOptions.collect(options)
        cmd = self._build_base_command(*operation)

        var_file_paths: List[str] = []
        try:
            for var_file in opts.var_files:
                path = TfvarsHandler.write_var_file(self.dir, var_file.data, var_file.format)
                var_file_paths.append(path)
                cmd.append(f"-var-file={path}")

            for var in opts.vars:
                cmd.append(f"-var={var.key}={var.value}")

            cmd.extend(opts.args)

            with self._plugin_cache_locked():
                return self._execute(cmd, name)
        finally:
            TfvarsHandler.remove_var_files(var_file_paths)

    @contextlib.contextmanager
    def _plugin_cache_locked(self, exclusive: bool = False) -> Iterator[None]:
        if not self.use_plugin_cache:
            yield
            return
        lock = plugin_cache_lock.write_locked() if exclusive else plugin_cache_lock.read_locked()
        with lock:
            yield

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _execute(self, cmd: List[str], operation: str) -> CommandResult:
        """
        Execute a command and capture its output.

        Raises:
            SecurityError: If an argument is unsafe
            TofuTimeoutError: If the command exceeds the timeout
            TofuError: If the binary cannot be started
        """
        for arg in cmd:
            if not InputSanitizer.is_safe_command_arg(arg):
                raise SecurityError(f"Unsafe command argument for tofu {operation}")

        timeout = self.timeout
        if self.deadline is not None:
            if self.deadline.expired():
                raise TofuTimeoutError(
                    f"tofu {operation} not started: reconcile timeout of "
                    f"{self.deadline.timeout} seconds exceeded"
                )
            timeout = self.deadline.bound(timeout)

        logger.debug(f"Running tofu {operation} in {self.dir}")
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                shell=False,
                env=self._build_environment(),
            )
        except OSError as e:
            raise TofuError(f"cannot run {self.path} {operation}: {e}") from e

        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            stdout, stderr = process.communicate()
            self._log_output(operation, stdout, stderr)
            raise TofuTimeoutError(
                f"tofu {operation} timed out after {timeout:.0f} seconds",
                exit_code=process.returncode,
                stderr=stderr or "",
            )

        self._log_output(operation, stdout, stderr)
        exit_code = process.returncode
        return CommandResult(
            exit_code=exit_code,
            stdout=stdout or "",
            stderr=stderr or "",
            success=exit_code == 0,
            command=operation,
        )

    def _log_output(self, operation: str, stdout: Optional[str], stderr: Optional[str]):
        if not self.enable_cli_logging:
            return
        for stream in (stdout, stderr):
            for line in (stream or "").splitlines():
                if line.strip():
                    logger.info(f"tofu {operation}: {self._redactor.redact(line)}")

    @staticmethod
    def _raise_for_result(result: CommandResult) -> None:
        if not result.success:
            raise classify(result.stderr, result.exit_code, fallback=f"tofu {result.command} failed")

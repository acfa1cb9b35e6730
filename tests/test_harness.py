"""Tests for Harness. All mocked, no real tofu needed."""

import logging
import os
import subprocess
import threading
from unittest.mock import MagicMock, patch

import pytest

from tofuworkspace.core.classify import TofuError, TofuTimeoutError
from tofuworkspace.core.deadline import Deadline
from tofuworkspace.core.harness import CommandResult, Harness, ReadWriteLock
from tofuworkspace.core.options import (
    VarFileFormat,
    with_args,
    with_init_args,
    with_var,
    with_var_file,
)
from tofuworkspace.core.outputs import OutputType
from tofuworkspace.security.sanitizer import SecurityError
from tofuworkspace.security.secure_memory import OutputRedactor


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tf_dir(tmp_path):
    (tmp_path / "main.tf").write_text('variable "example" {}')
    return str(tmp_path)


@pytest.fixture
def harness(tf_dir):
    return Harness(tf_dir, plugin_cache_dir="/tofu/plugin-cache")


def ok(command="", stdout=""):
    return CommandResult(0, stdout, "", True, command)


def failed(command="", stderr="Error: something", exit_code=1):
    return CommandResult(exit_code, "", stderr, False, command)


def commands(mock_exec):
    return [call[0][0] for call in mock_exec.call_args_list]


# ---------------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------------

class TestBuildBaseCommand:
    def test_build_base_command(self, harness, tf_dir):
        assert harness._build_base_command("init") == ["tofu", f"-chdir={tf_dir}", "init"]

    def test_custom_binary(self, tf_dir):
        harness = Harness(tf_dir, path="/opt/tofu/bin/tofu")
        assert harness._build_base_command("plan")[0] == "/opt/tofu/bin/tofu"


class TestInitCommand:
    def test_init_command_structure(self, harness, tf_dir):
        with patch.object(harness, "_execute", return_value=ok("init")) as mock_exec:
            harness.init()
        assert commands(mock_exec) == [["tofu", f"-chdir={tf_dir}", "init", "-input=false", "-no-color"]]

    def test_init_args_in_order(self, harness):
        with patch.object(harness, "_execute", return_value=ok("init")) as mock_exec:
            harness.init(
                with_init_args(["-backend-config=/tofu/x/crossplane.remote.tfbackend"]),
                with_init_args(["-upgrade"]),
            )
        assert commands(mock_exec)[0][-2:] == [
            "-backend-config=/tofu/x/crossplane.remote.tfbackend",
            "-upgrade",
        ]

    def test_init_takes_exclusive_lock(self, harness):
        with patch.object(harness, "_execute", return_value=ok("init")), \
                patch.object(harness, "_plugin_cache_locked") as mock_lock:
            harness.init()
        mock_lock.assert_called_once_with(exclusive=True)

    def test_init_failure_classified(self, harness):
        stderr = "╷\n│ Error: Failed to query available provider packages\n╵\n"
        with patch.object(harness, "_execute", return_value=failed("init", stderr)):
            with pytest.raises(TofuError, match="Summary: Failed to query available provider packages"):
                harness.init()


class TestWorkspaceCommand:
    def test_select_existing(self, harness):
        with patch.object(harness, "_execute", return_value=ok("workspace select")) as mock_exec:
            harness.workspace("prod")
        assert commands(mock_exec)[0][2:] == ["workspace", "select", "-no-color", "prod"]

    def test_create_when_select_fails(self, harness):
        results = [failed("workspace select"), ok("workspace new")]
        with patch.object(harness, "_execute", side_effect=results) as mock_exec:
            harness.workspace("prod")
        assert commands(mock_exec)[1][2:] == ["workspace", "new", "-no-color", "prod"]

    def test_create_failure(self, harness):
        results = [failed("workspace select"), failed("workspace new", "cannot create")]
        with patch.object(harness, "_execute", side_effect=results):
            with pytest.raises(TofuError, match="cannot create"):
                harness.workspace("prod")

    def test_invalid_name(self, harness):
        with patch.object(harness, "_execute") as mock_exec:
            with pytest.raises(SecurityError):
                harness.workspace("-chdir=/etc")
        mock_exec.assert_not_called()


class TestDeleteCurrentWorkspace:
    def test_default_not_deleted(self, harness):
        with patch.object(harness, "_execute", return_value=ok("workspace show", "default\n")) as mock_exec:
            harness.delete_current_workspace()
        assert len(mock_exec.call_args_list) == 1

    def test_selects_default_then_deletes(self, harness):
        results = [ok("workspace show", "prod\n"), ok("workspace select"), ok("workspace delete")]
        with patch.object(harness, "_execute", side_effect=results) as mock_exec:
            harness.delete_current_workspace()
        cmds = commands(mock_exec)
        assert cmds[1][2:] == ["workspace", "select", "-no-color", "default"]
        assert cmds[2][2:] == ["workspace", "delete", "-no-color", "prod"]

    def test_delete_failure(self, harness):
        results = [ok("workspace show", "prod\n"), ok("workspace select"), failed("workspace delete")]
        with patch.object(harness, "_execute", side_effect=results):
            with pytest.raises(TofuError):
                harness.delete_current_workspace()


class TestStateCommands:
    def test_outputs(self, harness):
        stdout = (
            '{"bucket": {"sensitive": false, "type": "string", "value": "b"},'
            ' "tags": {"sensitive": true, "type": ["map", "string"], "value": {"a": "b"}}}'
        )
        with patch.object(harness, "_execute", return_value=ok("output", stdout)) as mock_exec:
            outputs = harness.outputs()
        assert commands(mock_exec)[0][2:] == ["output", "-json"]
        assert [o.name for o in outputs] == ["bucket", "tags"]
        assert outputs[1].type == OutputType.OBJECT
        assert outputs[1].sensitive is True

    def test_outputs_invalid_json(self, harness):
        with patch.object(harness, "_execute", return_value=ok("output", "not json")):
            with pytest.raises(TofuError, match="cannot parse tofu outputs"):
                harness.outputs()

    def test_resources(self, harness):
        stdout = "aws_s3_bucket.a\n\naws_s3_bucket.b\n"
        with patch.object(harness, "_execute", return_value=ok("state list", stdout)) as mock_exec:
            resources = harness.resources()
        assert commands(mock_exec)[0][2:] == ["state", "list"]
        assert resources == ["aws_s3_bucket.a", "aws_s3_bucket.b"]

    def test_resources_failure(self, harness):
        with patch.object(harness, "_execute", return_value=failed("state list", "no state")):
            with pytest.raises(TofuError, match="no state"):
                harness.resources()


class TestDiffCommand:
    def test_plan_structure(self, harness):
        with patch.object(harness, "_execute", return_value=ok("plan")) as mock_exec:
            harness.diff()
        assert commands(mock_exec)[0][2:] == [
            "plan", "-no-color", "-input=false", "-detailed-exitcode", "-lock=false",
        ]

    def test_no_changes(self, harness):
        with patch.object(harness, "_execute", return_value=ok("plan")):
            assert harness.diff() is False

    def test_changes(self, harness):
        with patch.object(harness, "_execute", return_value=failed("plan", "", exit_code=2)):
            assert harness.diff() is True

    def test_error(self, harness):
        with patch.object(harness, "_execute", return_value=failed("plan", "Invalid thing", exit_code=1)):
            with pytest.raises(TofuError, match="Invalid thing"):
                harness.diff()

    def test_plan_args_last(self, harness):
        with patch.object(harness, "_execute", return_value=ok("plan")) as mock_exec:
            harness.diff(with_var("a", "1"), with_args(["-refresh=false"]))
        assert commands(mock_exec)[0][-2:] == ["-var=a=1", "-refresh=false"]


class TestApplyDestroyCommands:
    def test_apply_structure(self, harness):
        with patch.object(harness, "_execute", return_value=ok("apply")) as mock_exec:
            harness.apply(with_var("region", "us-east-1"))
        cmd = commands(mock_exec)[0]
        assert cmd[2:6] == ["apply", "-no-color", "-auto-approve", "-input=false"]
        assert "-var=region=us-east-1" in cmd

    def test_destroy_structure(self, harness):
        with patch.object(harness, "_execute", return_value=ok("destroy")) as mock_exec:
            harness.destroy()
        assert commands(mock_exec)[0][2:] == ["destroy", "-no-color", "-auto-approve", "-input=false"]

    def test_apply_failure(self, harness):
        with patch.object(harness, "_execute", return_value=failed("apply", "", exit_code=1)):
            with pytest.raises(TofuError, match="tofu apply failed"):
                harness.apply()


class TestVarFiles:
    def test_var_files_before_vars(self, harness):
        with patch.object(harness, "_execute", return_value=ok("apply")) as mock_exec:
            harness.apply(
                with_var("region", "literal"),
                with_var_file(b'region = "from-file"'),
                with_args(["-parallelism=1"]),
            )
        cmd = commands(mock_exec)[0]
        var_file_index = next(i for i, arg in enumerate(cmd) if arg.startswith("-var-file="))
        var_index = cmd.index("-var=region=literal")
        assert var_file_index < var_index
        assert cmd[-1] == "-parallelism=1"

    def test_var_file_content_and_cleanup(self, harness, tf_dir):
        seen = {}

        def execute(cmd, operation):
            for arg in cmd:
                if arg.startswith("-var-file="):
                    path = arg.split("=", 1)[1]
                    with open(path, "rb") as f:
                        seen[path] = f.read()
            return ok(operation)

        with patch.object(harness, "_execute", side_effect=execute):
            harness.apply(
                with_var_file(b'a = "1"'),
                with_var_file(b'{"b": "2"}', VarFileFormat.JSON),
            )

        paths = list(seen)
        assert seen[paths[0]] == b'a = "1"'
        assert paths[0].endswith(".tfvars")
        assert paths[1].endswith(".tfvars.json")
        assert all(os.path.dirname(p) == tf_dir for p in paths)
        assert not any(os.path.exists(p) for p in paths)

    def test_var_files_removed_on_failure(self, harness, tf_dir):
        with patch.object(harness, "_execute", side_effect=TofuTimeoutError("timed out")):
            with pytest.raises(TofuTimeoutError):
                harness.apply(with_var_file(b'a = "1"'))
        assert not [f for f in os.listdir(tf_dir) if "tfvars" in f]


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

class TestBuildEnvironment:
    def test_workspace_envs(self, tf_dir):
        harness = Harness(tf_dir, envs=["TF_LOG=DEBUG", "EQUALS=a=b"])
        env = harness._build_environment()
        assert env["TF_LOG"] == "DEBUG"
        assert env["EQUALS"] == "a=b"
        assert env["TF_IN_AUTOMATION"] == "1"

    def test_plugin_cache_dir(self, harness):
        assert harness._build_environment()["TF_PLUGIN_CACHE_DIR"] == "/tofu/plugin-cache"

    def test_plugin_cache_disabled(self, tf_dir, monkeypatch):
        monkeypatch.delenv("TF_PLUGIN_CACHE_DIR", raising=False)
        harness = Harness(tf_dir, use_plugin_cache=False, plugin_cache_dir="/tofu/plugin-cache")
        assert "TF_PLUGIN_CACHE_DIR" not in harness._build_environment()


# ---------------------------------------------------------------------------
# Execution (mocked subprocess)
# ---------------------------------------------------------------------------

def _make_mock_popen(stdout="", stderr="", returncode=0):
    mock_proc = MagicMock()
    mock_proc.communicate = MagicMock(return_value=(stdout, stderr))
    mock_proc.returncode = returncode
    return mock_proc


class TestExecute:
    def test_execute_captures_output(self, harness):
        mock_proc = _make_mock_popen("line1\nline2\n")
        with patch("subprocess.Popen", return_value=mock_proc) as mock_popen:
            result = harness._execute(["tofu", "init"], "init")
        assert result.success is True
        assert result.stdout == "line1\nline2\n"
        assert result.command == "init"
        kwargs = mock_popen.call_args[1]
        assert kwargs["shell"] is False
        assert kwargs["stdin"] == subprocess.DEVNULL

    def test_execute_failure_exit_code(self, harness):
        mock_proc = _make_mock_popen(stderr="Error: something", returncode=1)
        with patch("subprocess.Popen", return_value=mock_proc):
            result = harness._execute(["tofu", "plan"], "plan")
        assert result.success is False
        assert result.exit_code == 1
        assert result.stderr == "Error: something"

    def test_execute_timeout_kills_process(self, tf_dir):
        harness = Harness(tf_dir, timeout=5)
        mock_proc = MagicMock()
        mock_proc.communicate = MagicMock(side_effect=[
            subprocess.TimeoutExpired(cmd="tofu", timeout=5),
            ("", "killed"),
        ])
        mock_proc.returncode = -9
        with patch("subprocess.Popen", return_value=mock_proc):
            with pytest.raises(TofuTimeoutError, match="timed out after 5 seconds"):
                harness._execute(["tofu", "apply"], "apply")
        mock_proc.kill.assert_called_once()

    def test_execute_binary_missing(self, harness):
        with patch("subprocess.Popen", side_effect=FileNotFoundError("tofu")):
            with pytest.raises(TofuError, match="cannot run tofu init"):
                harness._execute(["tofu", "init"], "init")

    def test_execute_rejects_unsafe_args(self, harness):
        with patch("subprocess.Popen") as mock_popen:
            with pytest.raises(SecurityError):
                harness._execute(["tofu", "plan", "-var=a=\x00"], "plan")
        mock_popen.assert_not_called()

    def test_cli_logging_redacted(self, tf_dir, caplog):
        harness = Harness(tf_dir, enable_cli_logging=True, redactor=OutputRedactor(["s3cr3t"]))
        mock_proc = _make_mock_popen("token is s3cr3t\n")
        with patch("subprocess.Popen", return_value=mock_proc), \
                caplog.at_level(logging.INFO, logger="tofuworkspace.core.harness"):
            harness._execute(["tofu", "apply"], "apply")
        assert "[REDACTED]" in caplog.text
        assert "s3cr3t" not in caplog.text

    def test_cli_logging_off_by_default(self, harness, caplog):
        mock_proc = _make_mock_popen("plan output\n")
        with patch("subprocess.Popen", return_value=mock_proc), \
                caplog.at_level(logging.INFO, logger="tofuworkspace.core.harness"):
            harness._execute(["tofu", "plan"], "plan")
        assert "plan output" not in caplog.text


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestPassDeadline:
    def test_command_gets_remaining_time(self, tf_dir):
        clock = FakeClock()
        harness = Harness(tf_dir, timeout=1200, deadline=Deadline(100, clock=clock))
        clock.now = 40
        mock_proc = _make_mock_popen()
        with patch("subprocess.Popen", return_value=mock_proc):
            harness._execute(["tofu", "plan"], "plan")
        mock_proc.communicate.assert_called_once_with(timeout=60)

    def test_per_command_timeout_still_caps(self, tf_dir):
        harness = Harness(tf_dir, timeout=30, deadline=Deadline(100, clock=FakeClock()))
        mock_proc = _make_mock_popen()
        with patch("subprocess.Popen", return_value=mock_proc):
            harness._execute(["tofu", "plan"], "plan")
        mock_proc.communicate.assert_called_once_with(timeout=30)

    def test_second_command_not_started_after_deadline(self, tf_dir):
        clock = FakeClock()
        harness = Harness(
            tf_dir, use_plugin_cache=False, timeout=1200, deadline=Deadline(100, clock=clock)
        )
        with patch("subprocess.Popen", return_value=_make_mock_popen()) as mock_popen:
            harness.init()
            clock.now = 100
            with pytest.raises(TofuTimeoutError, match="not started: reconcile timeout of 100"):
                harness.apply()
        assert mock_popen.call_count == 1

    def test_second_command_killed_at_deadline(self, tf_dir):
        clock = FakeClock()
        harness = Harness(
            tf_dir, use_plugin_cache=False, timeout=1200, deadline=Deadline(100, clock=clock)
        )
        first = _make_mock_popen()
        second = MagicMock()
        second.communicate = MagicMock(side_effect=[
            subprocess.TimeoutExpired(cmd="tofu", timeout=30),
            ("", "killed"),
        ])
        second.returncode = -9
        with patch("subprocess.Popen", side_effect=[first, second]):
            harness.init()
            clock.now = 70
            with pytest.raises(TofuTimeoutError, match="timed out after 30 seconds"):
                harness.apply()
        assert second.communicate.call_args_list[0][1] == {"timeout": 30}
        second.kill.assert_called_once()


class TestChecksum:
    def test_generate_checksum(self, harness, tf_dir):
        with patch("tofuworkspace.core.harness.hash_dir", return_value="h1:abc") as mock_hash:
            assert harness.generate_checksum() == "h1:abc"
        mock_hash.assert_called_once_with(tf_dir)


# ---------------------------------------------------------------------------
# Plugin cache lock
# ---------------------------------------------------------------------------

class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        with lock.read_locked():
            acquired = threading.Event()

            def reader():
                with lock.read_locked():
                    acquired.set()

            thread = threading.Thread(target=reader)
            thread.start()
            assert acquired.wait(5)
            thread.join(5)

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        acquired = threading.Event()

        def reader():
            with lock.read_locked():
                acquired.set()

        with lock.write_locked():
            thread = threading.Thread(target=reader)
            thread.start()
            assert not acquired.wait(0.1)
        assert acquired.wait(5)
        thread.join(5)

    def test_lock_skipped_without_plugin_cache(self, tf_dir):
        harness = Harness(tf_dir, use_plugin_cache=False)
        with patch("tofuworkspace.core.harness.plugin_cache_lock") as mock_lock, \
                patch.object(harness, "_execute", return_value=ok("init")):
            harness.init()
        mock_lock.write_locked.assert_not_called()

"""Tests for CommandRunner."""

import shutil
import sys
import threading
import time
from pathlib import Path

import pytest

from skillforks.errors import OperationCancelledError, SubprocessFailureError
from skillforks.shell import CommandRunner

pytestmark = pytest.mark.skipif(
    sys.platform == "win32" or shutil.which("sh") is None, reason="requires a POSIX shell"
)


class TestRun:
    """Tests for CommandRunner.run()."""

    def test_returns_combined_output(self):
        """stdout and stderr are merged."""
        output = CommandRunner().run(["sh", "-c", "echo out; echo err 1>&2"])
        assert "out" in output
        assert "err" in output

    def test_non_interactive_environment(self):
        """CI and npm_config_yes are forced on."""
        output = CommandRunner().run(["sh", "-c", 'echo "$CI $npm_config_yes"'])
        assert output.strip() == "true true"

    def test_env_overrides(self):
        output = CommandRunner().run(["sh", "-c", 'echo "$FORKS_TEST"'], env={"FORKS_TEST": "x"})
        assert output.strip() == "x"

    def test_stdin_is_closed(self):
        """Commands reading stdin see EOF instead of blocking."""
        output = CommandRunner().run(["sh", "-c", "cat; echo done"])
        assert output.strip() == "done"

    def test_cwd(self, tmp_path):
        output = CommandRunner().run(["pwd"], cwd=tmp_path)
        assert Path(output.strip()).resolve() == tmp_path.resolve()

    def test_failure_carries_output(self):
        """Non-zero exit raises with the captured output and exit code."""
        with pytest.raises(SubprocessFailureError) as exc_info:
            CommandRunner().run(["sh", "-c", "echo boom; exit 3"])
        assert exc_info.value.returncode == 3
        assert "boom" in exc_info.value.output

    def test_missing_executable(self):
        with pytest.raises(SubprocessFailureError) as exc_info:
            CommandRunner().run(["skillforks-definitely-not-a-command"])
        assert exc_info.value.returncode == 127


class TestLogs:
    """Recorded commands are appended to the runner log."""

    def test_records_command_and_output(self):
        runner = CommandRunner()
        runner.run(["sh", "-c", "echo hello"], record=True)
        assert "$ sh -c echo hello" in runner.logs
        assert "hello" in runner.logs
        assert "Command completed successfully" in runner.logs

    def test_unrecorded_commands_not_logged(self):
        runner = CommandRunner()
        runner.run(["true"])
        assert runner.logs == ""

    def test_reset_clears(self):
        runner = CommandRunner()
        runner.run(["true"], record=True)
        runner.cancel()
        runner.reset()
        assert runner.logs == ""
        assert runner.cancelled is False


class TestCancel:
    """Tests for CommandRunner.cancel()."""

    def test_cancel_terminates_running_process(self):
        """A cancelled command raises OperationCancelledError, not a failure."""
        runner = CommandRunner()
        errors = []

        def target():
            try:
                runner.run(["sleep", "30"], record=True)
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=target)
        thread.start()
        deadline = time.monotonic() + 10
        while not runner._processes and time.monotonic() < deadline:
            time.sleep(0.01)
        runner.cancel()
        thread.join(timeout=10)

        assert not thread.is_alive()
        assert len(errors) == 1
        assert isinstance(errors[0], OperationCancelledError)
        assert "Operation cancelled by user" in runner.logs

    def test_recorded_command_refused_after_cancel(self):
        runner = CommandRunner()
        runner.cancel()
        with pytest.raises(OperationCancelledError):
            runner.run(["true"], record=True)

    def test_cancel_terminates_every_active_process(self):
        """A concurrent unrecorded command cannot shadow the recorded one."""
        runner = CommandRunner()
        outcomes = {}

        def target(key, record):
            try:
                runner.run(["sleep", "30"], record=record)
                outcomes[key] = "completed"
            except OperationCancelledError:
                outcomes[key] = "cancelled"

        threads = [
            threading.Thread(target=target, args=("install", True)),
            threading.Thread(target=target, args=("check", False)),
        ]
        for thread in threads:
            thread.start()
        deadline = time.monotonic() + 10
        while len(runner._processes) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        started = time.monotonic()
        runner.cancel()
        for thread in threads:
            thread.join(timeout=10)

        assert outcomes == {"install": "cancelled", "check": "cancelled"}
        assert time.monotonic() - started < 10
        assert runner._processes == set()

    def test_cancelled_command_exiting_zero_is_not_success(self):
        """A process that ignores SIGTERM and exits 0 still reports cancellation."""
        runner = CommandRunner()
        errors = []

        def target():
            try:
                runner.run(["sh", "-c", "trap  TERM; sleep 1; echo finished"], record=True)
            except OperationCancelledError as e:
                errors.append(e)

        thread = threading.Thread(target=target)
        thread.start()
        deadline = time.monotonic() + 10
        while not runner._processes and time.monotonic() < deadline:
            time.sleep(0.01)
        runner.cancel()
        thread.join(timeout=10)

        assert len(errors) == 1
        assert "Command completed successfully" not in runner.logs


class TestOperation:
    """Tests for CommandRunner.operation()."""

    def test_stale_cancel_cleared_on_entry(self):
        runner = CommandRunner()
        runner.cancel()
        with runner.operation():
            assert runner.run(["sh", "-c", "echo ok"], record=True).strip() == "ok"

    def test_nested_operation_keeps_cancel(self):
        """Only the outermost block resets the flag."""
        runner = CommandRunner()
        with runner.operation():
            runner.cancel()
            with runner.operation():
                with pytest.raises(OperationCancelledError):
                    runner.run(["true"], record=True)

    def test_logs_survive_operations(self):
        runner = CommandRunner()
        with runner.operation():
            runner.run(["sh", "-c", "echo first"], record=True)
        with runner.operation():
            runner.run(["sh", "-c", "echo second"], record=True)
        assert "first" in runner.logs
        assert "second" in runner.logs

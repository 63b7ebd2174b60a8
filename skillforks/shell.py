"""Subprocess execution for git and the external skill installer.

Every command runs with:
- stdin closed (DEVNULL) so prompts can't block
- stdout and stderr merged into one captured output
- CI=true, npm_config_yes=true and GIT_TERMINAL_PROMPT=0 in the environment

A cancelled command raises OperationCancelledError rather than
SubprocessFailureError so callers can stay quiet about it.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from .errors import OperationCancelledError, SubprocessFailureError

logger = logging.getLogger(__name__)

NON_INTERACTIVE_ENV = {
    "CI": "true",
    "npm_config_yes": "true",
    "GIT_TERMINAL_PROMPT": "0",
}

TERMINATE_TIMEOUT = 5.0


class CommandRunner:
    """Run external commands and support cancelling the active ones.

    Cancellation is scoped to an operation: the flag set by ``cancel()`` is
    cleared when the next outermost ``operation()`` block starts.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._processes: set[subprocess.Popen[str]] = set()
        self._depth = 0
        self._cancelled = threading.Event()
        self.logs = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancelled

    def reset(self) -> None:
        """Clear the cancelled flag and the recorded log."""
        self._cancelled.clear()
        self.logs = ""

    @contextmanager
    def operation(self) -> Iterator[None]:
        """Scope a user-facing command; a stale cancel does not leak into it."""
        with self._lock:
            if self._depth == 0:
                self._cancelled.clear()
            self._depth += 1
        try:
            yield
        finally:
            with self._lock:
                self._depth -= 1

    def cancel(self) -> None:
        """Mark the current operation cancelled and terminate its processes."""
        self._cancelled.set()
        with self._lock:
            running = [p for p in self._processes if p.poll() is None]
        for process in running:
            process.terminate()
        if running:
            self.logs += "\nOperation cancelled by user\n"

    def _append_log(self, text: str) -> None:
        self.logs += text

    def run(
        self,
        args: list[str],
        *,
        cwd: Path | None = None,
        env: dict[str, str] | None = None,
        record: bool = False,
    ) -> str:
        """Run a command and return its combined output.

        Args:
            args: Command line, executable first.
            cwd: Working directory for the process.
            env: Variables layered over the current environment.
            record: Append the command line and its output to ``logs``.
                A recorded command refuses to start once cancelled.

        Returns:
            Combined stdout and stderr.

        Raises:
            OperationCancelledError: The run was cancelled.
            SubprocessFailureError: The command exited non-zero or could not
                be started.
        """
        command_line = " ".join(args)
        logger.debug("Executing: %s%s", command_line, f" (in {cwd})" if cwd else "")

        if record:
            if self.cancelled:
                raise OperationCancelledError()
            self._append_log(f"$ {command_line}\n")
            if cwd:
                self._append_log(f"  (in {cwd})\n")

        full_env = dict(os.environ)
        if env:
            full_env.update(env)
        full_env.update(NON_INTERACTIVE_ENV)

        try:
            process = subprocess.Popen(
                args,
                cwd=str(cwd) if cwd else None,
                env=full_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except OSError as e:
            if record:
                self._append_log(f"\nError: {e}\n")
            raise SubprocessFailureError(args, 127, str(e)) from e

        with self._lock:
            self._processes.add(process)
        if self.cancelled:
            process.terminate()
        try:
            output, _ = process.communicate()
        finally:
            with self._lock:
                self._processes.discard(process)
            if process.poll() is None:
                process.kill()
                process.wait(timeout=TERMINATE_TIMEOUT)

        returncode = process.returncode
        if record:
            self._append_log(output)

        if self.cancelled:
            raise OperationCancelledError()

        if returncode == 0:
            if record:
                self._append_log("\nCommand completed successfully\n")
            return output

        if record:
            self._append_log(f"\nCommand failed with exit code {returncode}\n")
        if returncode == -signal.SIGTERM:
            raise OperationCancelledError()
        raise SubprocessFailureError(args, returncode, output)

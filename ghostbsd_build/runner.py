"""Command runner for executing build host tools.

This module handles:
- A runner protocol so pipeline components never call subprocess directly
- Executing commands with subprocess and capturing their output
- Appending every command and its outcome to a build log file
- Streaming stdout into a file (zfs send into the system image)
- Enforcing command timeouts
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from ghostbsd_build.errors import ExternalToolError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Result of a command execution.

    Attributes:
        argv: The command that was executed.
        returncode: Process exit code.
        stdout: Captured standard output (empty when redirected to a file).
        stderr: Captured standard error.
    """

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return shlex.join(self.argv)


class CommandRunner(Protocol):
    """Capability to run an external command and report its outcome."""

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
        stdout_path: Path | None = None,
        check: bool = True,
    ) -> CommandResult: ...


def raise_for_result(result: CommandResult) -> None:
    """Raise ExternalToolError if a command did not exit cleanly."""
    if result.ok:
        return
    diagnostic = result.stderr.strip() or result.stdout.strip()
    raise ExternalToolError(
        f"Command failed with exit code {result.returncode}: {result.command}",
        argv=result.argv,
        exit_code=result.returncode,
        diagnostic=diagnostic,
    )


class SubprocessRunner:
    """Run commands on the build host with subprocess.

    Args:
        log_path: Optional file every command and its output is appended to.
        timeout: Per-command timeout in seconds (None = no timeout).
    """

    def __init__(self, log_path: Path | None = None, timeout: int | None = None) -> None:
        self.log_path = log_path
        self.timeout = timeout

    def _log(self, text: str) -> None:
        if self.log_path is None:
            return
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with self.log_path.open("a", encoding="utf-8") as log_file:
            log_file.write(text)

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input_text: str | None = None,
        stdout_path: Path | None = None,
        check: bool = True,
    ) -> CommandResult:
        """Execute a command.

        Args:
            argv: Command and arguments.
            cwd: Working directory.
            env: Extra environment variables, added to the current environment.
            input_text: Text fed to the command's standard input.
            stdout_path: Write standard output to this file instead of capturing it.
            check: Raise ExternalToolError on a non-zero exit code.

        Returns:
            CommandResult with the exit code and captured output.

        Raises:
            ExternalToolError: If the command cannot be started, times out,
                or exits non-zero while ``check`` is set.
        """
        argv_list = [str(a) for a in argv]
        cmd_str = shlex.join(argv_list)
        logger.info("Executing: %s", cmd_str)
        if cwd is not None:
            logger.debug("Working directory: %s", cwd)

        started_at = datetime.now(timezone.utc)
        self._log(f"# Command: {cmd_str}\n# Started: {started_at.isoformat()}\n")

        full_env: dict[str, str] | None = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        try:
            if stdout_path is not None:
                stdout_path.parent.mkdir(parents=True, exist_ok=True)
                with stdout_path.open("wb") as out_file:
                    proc = subprocess.run(
                        argv_list,
                        cwd=cwd,
                        env=full_env,
                        input=input_text.encode() if input_text is not None else None,
                        stdout=out_file,
                        stderr=subprocess.PIPE,
                        timeout=self.timeout,
                        check=False,
                    )
                result = CommandResult(
                    argv=argv_list,
                    returncode=proc.returncode,
                    stderr=proc.stderr.decode(errors="replace"),
                )
            else:
                proc = subprocess.run(
                    argv_list,
                    cwd=cwd,
                    env=full_env,
                    input=input_text,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
                result = CommandResult(
                    argv=argv_list,
                    returncode=proc.returncode,
                    stdout=proc.stdout,
                    stderr=proc.stderr,
                )

        except subprocess.TimeoutExpired as e:
            message = f"Command timed out after {self.timeout} seconds: {cmd_str}"
            logger.error(message)
            self._log(f"# TIMEOUT after {self.timeout} seconds\n\n")
            raise ExternalToolError(
                message, argv=argv_list, exit_code=-1, code="timeout"
            ) from e

        except OSError as e:
            message = f"Failed to execute {argv_list[0]}: {e}"
            logger.error(message)
            self._log(f"# ERROR: {e}\n\n")
            raise ExternalToolError(
                message, argv=argv_list, code="execution_error"
            ) from e

        finished_at = datetime.now(timezone.utc)
        duration = (finished_at - started_at).total_seconds()
        if result.stdout:
            self._log(result.stdout if result.stdout.endswith("\n") else result.stdout + "\n")
        if result.stderr:
            self._log(result.stderr if result.stderr.endswith("\n") else result.stderr + "\n")
        self._log(f"# Exit code: {result.returncode}\n# Duration: {duration:.1f}s\n\n")

        if not result.ok:
            log = logger.error if check else logger.debug
            log("Command exited with %d: %s", result.returncode, cmd_str)
            if check:
                raise_for_result(result)

        return result


__all__ = [
    "CommandResult",
    "CommandRunner",
    "SubprocessRunner",
    "raise_for_result",
]

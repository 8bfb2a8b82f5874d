"""
Bounded subprocess execution.

Runs external commands (compose, docker, git) with captured output and an
explicit timeout. A command that cannot be started or that exceeds its
timeout resolves to a failed CommandResult instead of raising, so callers
decide whether the failure is fatal.

Each command runs in its own session, so a timeout kills the whole process
tree. That matters for `docker compose`, which the docker CLI runs as a
child plugin process holding the output pipes.
"""

from __future__ import annotations

import asyncio
import os
import signal
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

# Exit codes used by coreutils/shells for "timed out" and "command not found"
TIMEOUT_EXIT_CODE = 124
NOT_FOUND_EXIT_CODE = 127

# Seconds to collect output after killing a timed-out process group
KILL_GRACE_SECONDS = 2.0


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """True when the command exited 0 within its timeout."""
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class CommandRunner:
    """
    Async command runner.

    Stages receive a runner instead of calling subprocesses directly so tests
    can substitute a scripted runner.

    Example:
        >>> runner = CommandRunner(default_timeout=30)
        >>> result = await runner.run(["docker", "compose", "version"])
        >>> result.ok
        True
    """

    def __init__(self, default_timeout: float | None = None) -> None:
        self._default_timeout = default_timeout

    async def run(
        self,
        argv: Sequence[str],
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            argv: Command and arguments
            cwd: Working directory
            env: Full process environment (inherits the current one if None)
            timeout: Seconds before the process is killed (default_timeout if None)

        Returns:
            CommandResult with exit status and captured output
        """
        argv = tuple(argv)
        timeout = timeout if timeout is not None else self._default_timeout

        logger.debug("command_start", argv=list(argv), cwd=str(cwd) if cwd else None)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            logger.debug("command_not_started", argv=list(argv), error=str(e))
            return CommandResult(argv=argv, returncode=NOT_FOUND_EXIT_CODE, stderr=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _kill_group(process)
            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=KILL_GRACE_SECONDS
                )
            except asyncio.TimeoutError:
                # A descendant outside the group still holds the pipes
                stdout, stderr = b"", b""
            logger.warning("command_timeout", argv=list(argv), timeout=timeout)
            return CommandResult(
                argv=argv,
                returncode=TIMEOUT_EXIT_CODE,
                stdout=_decode(stdout),
                stderr=_decode(stderr) or f"Timed out after {timeout}s",
                timed_out=True,
            )

        result = CommandResult(
            argv=argv,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

        logger.debug("command_complete", argv=list(argv), returncode=result.returncode)
        return result


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """Kill the process and everything it spawned."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except (AttributeError, PermissionError):
        process.kill()


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")

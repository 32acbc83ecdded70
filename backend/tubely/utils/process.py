"""
Async subprocess execution with a timeout.

Wraps ``asyncio.create_subprocess_exec`` for the external media tools. Output is
captured, the run is bounded by ``asyncio.wait_for``, and the child is killed and
reaped if the wait times out or the awaiting task is cancelled.
"""

import asyncio
import logging

from dataclasses import dataclass


logger = logging.getLogger(__name__)


class CommandError(Exception):
    """Base exception for external command failures."""


class CommandNotFoundError(CommandError):
    """Raised when the executable cannot be found or started."""


class CommandTimeoutError(CommandError):
    """Raised when a command does not finish within its timeout."""


@dataclass(frozen=True)
class CommandResult:
    """Exit status and captured output of a finished command."""

    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_text(self, limit: int = 2000) -> str:
        """Decoded stderr, truncated to its last ``limit`` characters."""
        return self.stderr.decode("utf-8", errors="replace").strip()[-limit:]


async def run_command(command: list[str], timeout: float) -> CommandResult:
    """
    Run an external command and capture its output.

    Args:
        command: Executable followed by its arguments
        timeout: Maximum seconds to wait for the command to exit

    Returns:
        CommandResult: Exit status and captured stdout/stderr. A non-zero exit
        status is returned, not raised.

    Raises:
        CommandNotFoundError: If the executable cannot be started.
        CommandTimeoutError: If the command runs longer than ``timeout``.
    """
    logger.debug("Running command: %s", " ".join(command))

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandNotFoundError(f"Could not start '{command[0]}': {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise CommandTimeoutError(
            f"'{command[0]}' did not finish within {timeout:g} seconds"
        ) from e
    finally:
        if process.returncode is None:
            logger.warning("Killing unfinished process %s (pid %s)", command[0], process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    result = CommandResult(returncode=process.returncode, stdout=stdout, stderr=stderr)
    if not result.ok:
        logger.debug("%s exited with %d: %s", command[0], result.returncode, result.stderr_text())
    return result

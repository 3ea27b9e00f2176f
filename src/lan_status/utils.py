"""
Utility functions for the LAN status monitor.

Includes:
- Logging setup
- Process execution helpers
"""

import asyncio
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)


class CommandResult:
    """Result of a command execution."""

    def __init__(
        self,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration_sec: float
    ):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.duration_sec = duration_sec
        self.success = exit_code == 0

    def __repr__(self):
        return f"CommandResult(exit_code={self.exit_code}, success={self.success})"


async def run_command(
    cmd: list[str],
    timeout: Optional[float] = None,
) -> CommandResult:
    """
    Run a command asynchronously, capturing its output.

    Args:
        cmd: Command and arguments as list
        timeout: Timeout in seconds (None = no timeout)

    Returns:
        CommandResult with exit code, stdout, stderr, duration

    Raises:
        FileNotFoundError: If the executable does not exist
        asyncio.TimeoutError: If timeout exceeded
    """
    start = time.monotonic()

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        if timeout:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout,
            )
        else:
            stdout, stderr = await process.communicate()
    except (asyncio.TimeoutError, asyncio.CancelledError):
        # Never leave the child running
        if process.returncode is None:
            try:
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
        raise

    return CommandResult(
        exit_code=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
        stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
        duration_sec=time.monotonic() - start,
    )


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging for the service.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

import logging
import shutil
import subprocess
from typing import List

from strata.errors import CommandError, CommandTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


def run(cmd: List[str], timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Runs a host command and returns its combined stdout/stderr.

    Raises CommandTimeout when the deadline passes and CommandError on a
    non-zero exit. Both keep the raw output.
    """
    logger.debug(f"exec: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        output = e.output or ""
        if isinstance(output, bytes):
            output = output.decode(errors="replace")
        raise CommandTimeout(cmd, timeout, output=output)
    except FileNotFoundError:
        raise CommandError(cmd, output=f"{cmd[0]}: command not found", returncode=127)

    if result.returncode != 0:
        raise CommandError(cmd, output=result.stdout, returncode=result.returncode)
    return result.stdout


def run_quiet(cmd: List[str], timeout: float = DEFAULT_TIMEOUT) -> str:
    """Best-effort variant of run(): failures are logged and their output returned."""
    try:
        return run(cmd, timeout=timeout)
    except CommandError as e:
        logger.warning(f"ignored failure: {e}")
        return e.output


def require_binary(name: str) -> None:
    if shutil.which(name) is None:
        raise CommandError([name], output=f"{name} not found in PATH", returncode=127)

"""External process helpers shared by the multiplexer backends."""

import os
import shutil
import subprocess  # nosec B404

from ..utils.logging import BackendUnavailableError, MultiplexerError
from .logging_utils import log_command


def discover_binary(
    name: str,
    configured_path: str | None = None,
    fallbacks: tuple[str, ...] = (),
) -> str | None:
    """Locate an executable.

    Order: an explicitly configured path, the ``PATH`` search, then the
    fallback locations (``~`` is expanded in both paths).

    Returns:
        Absolute path to the executable, or None if it cannot be found
    """
    if configured_path:
        candidate = os.path.expanduser(configured_path)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate

    found = shutil.which(name)
    if found:
        return found

    for fallback in fallbacks:
        candidate = os.path.expanduser(fallback)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate

    return None


def run_captured(
    backend: str,
    binary: str,
    args: list[str],
    timeout: float,
    cwd: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a non-interactive backend command and capture its output.

    A non-zero exit status is returned, not raised; callers inspect stderr.

    Raises:
        BackendUnavailableError: If the binary disappeared
        MultiplexerError: If the command does not finish within ``timeout``
    """
    log_command(binary, args)

    try:
        return subprocess.run(  # nosec B603
            [binary, *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=cwd or None,
            check=False,
        )
    except FileNotFoundError as e:
        raise BackendUnavailableError(backend) from e
    except subprocess.TimeoutExpired as e:
        raise MultiplexerError(
            f"{backend} {args[0]} timed out after {timeout}s",
            {"command": args},
        ) from e


def run_interactive(backend: str, binary: str, args: list[str]) -> None:
    """Run a backend command on the caller's terminal until it exits.

    Standard input, output and error are inherited, not captured.

    Raises:
        BackendUnavailableError: If the binary disappeared
        MultiplexerError: If the command exits with a non-zero status
    """
    log_command(binary, args)

    try:
        result = subprocess.run([binary, *args], check=False)  # nosec B603
    except FileNotFoundError as e:
        raise BackendUnavailableError(backend) from e

    if result.returncode != 0:
        raise MultiplexerError(
            f"{backend} {args[0]} exited with status {result.returncode}",
            {"command": args, "returncode": result.returncode},
        )

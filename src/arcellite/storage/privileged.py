"""Runs commands through sudo.

Two flavours exist: `run_sudo` feeds an interactively supplied password on
stdin (mount/unmount), `run_sudo_noninteractive` uses `sudo -n` and only works
where the host grants passwordless rules (listing, stat, cat fallbacks).
Commands are always argument lists, never shell strings.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from arcellite.config.settings import config
from arcellite.storage.errors import (
    IncorrectPasswordError,
    PasswordRequiredError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

INCORRECT_PASSWORD_MARKERS = ("Sorry, try again", "incorrect password")
PASSWORD_REQUIRED_MARKERS = ("a password is required",)


@dataclass
class CommandResult:
    args: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def message(self) -> str:
        return (self.stderr or self.stdout or "").strip()


def _run(cmd: List[str], stdin: Optional[str], timeout: float) -> CommandResult:
    try:
        result = subprocess.run(
            cmd,
            input=stdin,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise UpstreamUnavailableError(f"Command not available: {cmd[0]}") from e
    except subprocess.TimeoutExpired as e:
        logger.error(f"Command timed out after {timeout}s: {' '.join(cmd)}")
        raise UpstreamUnavailableError(f"Command timed out: {cmd[1] if len(cmd) > 1 else cmd[0]}") from e

    return CommandResult(
        args=cmd,
        returncode=result.returncode,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
    )


def run_sudo(args: List[str], password: str, timeout: Optional[float] = None) -> CommandResult:
    """Run `args` as root, authenticating with `password` on stdin."""
    if not password:
        raise PasswordRequiredError()

    # -S reads the password from stdin, -p '' suppresses the prompt text
    cmd = ["sudo", "-S", "-p", ""] + list(args)
    result = _run(cmd, password + "\n", timeout or config.privileged_timeout)
    if not result.ok:
        logger.debug(f"sudo {' '.join(args)} exited {result.returncode}: {result.message}")
    return result


def run_sudo_noninteractive(args: List[str], timeout: Optional[float] = None) -> CommandResult:
    cmd = ["sudo", "-n"] + list(args)
    return _run(cmd, None, timeout or config.privileged_timeout)


def raise_for_auth(result: CommandResult):
    """Raises the matching 401 error when sudo rejected the credentials."""
    message = result.message
    if any(marker in message for marker in INCORRECT_PASSWORD_MARKERS):
        raise IncorrectPasswordError()
    if any(marker in message for marker in PASSWORD_REQUIRED_MARKERS):
        raise PasswordRequiredError()


def public_message(result: CommandResult, default: str) -> str:
    """
    First meaningful line of a failed command's output. The full output is
    only written to the server log.
    """
    for line in result.message.splitlines():
        line = line.strip()
        if line and not line.startswith("[sudo]"):
            return line
    return default

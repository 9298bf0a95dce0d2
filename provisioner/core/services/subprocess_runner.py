"""
Core subprocess runner.

The SINGLE PLACE where ``subprocess.run`` is called for provisioning
effects. Privilege escalation, timeouts, logging and error shaping are
centralised here.

Every call is bounded by a timeout; expiry is an EffectError, never a
hang.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass

from provisioner.core.target import Target

logger = logging.getLogger(__name__)

_TAIL = 2000


class EffectError(Exception):
    """Raised when an effect (install, clone, write, …) fails."""


@dataclass
class CommandResult:
    """Captured output of a successful command."""

    cmd: list[str]
    stdout: str = ""
    stderr: str = ""
    elapsed_ms: int = 0
    raw_stdout: bytes = b""         # untruncated, for binary output (gpg --dearmor)


def run_command(
    cmd: list[str],
    target: Target,
    *,
    sudo: bool = False,
    timeout: int | None = None,
    input: bytes | str | None = None,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> CommandResult:
    """Run a command on the target, optionally through sudo.

    Args:
        cmd: Command list for ``subprocess.run()``.
        target: Target environment (supplies env, escalation, default timeout).
        sudo: Whether the command requires root.
        timeout: Seconds before giving up (default: target.command_timeout).
        input: Data piped to stdin (bytes or text).
        env_overrides: Extra env vars for the command.
        cwd: Working directory.

    Returns:
        CommandResult on exit code 0.

    Raises:
        EffectError: Non-zero exit, timeout, or the command could not start.
    """
    timeout = timeout or target.command_timeout
    env = dict(target.env) if target.env else os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    if sudo and target.needs_sudo:
        assignments = [f"{k}={v}" for k, v in (env_overrides or {}).items()]
        cmd = ["sudo", *assignments, *cmd]

    text_mode = not isinstance(input, bytes)
    logger.debug("Executing: %s", shlex.join(cmd))
    start = time.monotonic()
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=text_mode,
            timeout=timeout,
            input=input,
            env=env,
            cwd=cwd,
        )
    except subprocess.TimeoutExpired as e:
        raise EffectError(f"Command timed out after {timeout}s: {shlex.join(cmd)}") from e
    except OSError as e:
        raise EffectError(f"Cannot execute {cmd[0]}: {e}") from e

    elapsed_ms = int((time.monotonic() - start) * 1000)
    stdout = _as_text(result.stdout)
    stderr = _as_text(result.stderr)

    if result.returncode != 0:
        detail = stderr.strip()[-_TAIL:] or stdout.strip()[-_TAIL:]
        message = f"Command failed (exit {result.returncode}): {shlex.join(cmd)}"
        if detail:
            message += f"\n{detail}"
        raise EffectError(message)

    return CommandResult(
        cmd=cmd,
        stdout=stdout[-_TAIL:],
        stderr=stderr[-_TAIL:],
        elapsed_ms=elapsed_ms,
        raw_stdout=result.stdout if isinstance(result.stdout, bytes) else b"",
    )


def install_file(
    data: bytes,
    dest: str,
    target: Target,
    *,
    mode: int = 0o644,
    sudo: bool = False,
) -> None:
    """Write ``data`` to ``dest`` on the target, creating parent dirs.

    Privileged writes go through ``sudo install -D /dev/stdin`` so the
    bytes never touch an intermediate file.
    """
    path = target.resolve(dest)
    if sudo and target.needs_sudo:
        run_command(
            ["install", "-D", "-m", f"{mode:o}", "/dev/stdin", str(path)],
            target,
            sudo=True,
            input=data,
        )
        return

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        os.chmod(path, mode)
    except OSError as e:
        raise EffectError(f"Cannot write {path}: {e}") from e


def _as_text(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value

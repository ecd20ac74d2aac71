# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Run setup scripts and git through one argument-list subprocess helper."""

from __future__ import annotations

import logging
import shutil

# Bandit: subprocess usage is intentional; setup scripts and git are invoked
# with argument lists and never through a shell.
import subprocess  # nosec B404
from collections.abc import Mapping, Sequence
from pathlib import Path

from .errors import RtpackError

LOGGER = logging.getLogger(__name__)

# Same status coreutils ``timeout`` reports.
_TIMED_OUT = 124


class SubprocessExecutionError(RtpackError):
    """A producer script or git command exited non-zero."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str | None,
        stderr: str | None,
    ) -> None:
        super().__init__(
            f"Command '{command[0]}' exited with status {returncode}. stderr: {stderr or '<none>'}",
        )
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _locate(args: Sequence[str]) -> list[str]:
    if not args:
        raise ValueError("subprocess command requires at least one argument")
    head, *rest = args
    if Path(head).is_absolute():
        return [head, *rest]
    executable = shutil.which(head)
    if executable is None:
        raise FileNotFoundError(f"Executable '{head}' was not found on PATH")
    return [executable, *rest]


def _timed_out(
    command: list[str],
    exc: subprocess.TimeoutExpired,
    timeout: float | None,
) -> subprocess.CompletedProcess[str]:
    def text(value: str | bytes | None) -> str:
        if isinstance(value, bytes):
            return value.decode(errors="ignore")
        return value or ""

    note = f"timed out after {timeout:.1f}s" if timeout is not None else "timed out"
    LOGGER.warning("%s %s", command[0], note)
    stderr = text(exc.stderr)
    return subprocess.CompletedProcess(
        args=command,
        returncode=_TIMED_OUT,
        stdout=text(exc.stdout),
        stderr=f"{stderr}\n{note}" if stderr else note,
    )


def run_command(
    args: Sequence[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
    capture_output: bool = False,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run ``args`` without a shell and with stdin closed.

    A timeout surfaces as exit status ``124`` so callers handle one failure
    shape; with ``check`` it raises like any other non-zero exit.

    Raises:
        FileNotFoundError: When the executable is not on ``PATH``.
        SubprocessExecutionError: When ``check`` is set and the command fails.
    """

    command = _locate(args)
    LOGGER.debug("running %s (cwd=%s)", " ".join(command), cwd or ".")
    try:
        # Bandit: arguments come from runtime directories and fixed git verbs.
        completed: subprocess.CompletedProcess[str] = subprocess.run(  # nosec B603
            command,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            check=False,
            capture_output=capture_output,
            text=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired as exc:
        completed = _timed_out(command, exc, timeout)

    if check and completed.returncode != 0:
        raise SubprocessExecutionError(command, completed.returncode, completed.stdout, completed.stderr)
    return completed


__all__ = ["SubprocessExecutionError", "run_command"]

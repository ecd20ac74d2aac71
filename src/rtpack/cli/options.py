# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Shared Typer options and the normalised context passed to every command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any

import typer

from ..config import Config, load_config
from ..errors import ConfigError
from ..logging import fail

ROOT_OPTION = Annotated[
    Path,
    typer.Option("--root", "-r", help="Project root holding runtimes/ and configuration."),
]
EMOJI_OPTION = Annotated[
    bool,
    typer.Option("--emoji/--no-emoji", help="Toggle emoji in CLI output."),
]
JOBS_OPTION = Annotated[
    int | None,
    typer.Option("--jobs", "-j", min=1, help="Number of runtimes to build in parallel."),
]
PLATFORM_OPTION = Annotated[
    str | None,
    typer.Option("--platform", help="Target platform tag, e.g. ubuntu-amd64."),
]
REGISTRY_OPTION = Annotated[
    str | None,
    typer.Option("--registry", help="Registry URL or path to read from."),
]


@dataclass(slots=True)
class CLIContext:
    """Resolved configuration plus console preferences for one invocation."""

    root: Path
    config: Config
    use_emoji: bool


def build_context(root: Path, *, emoji: bool, **overrides: Any) -> CLIContext:
    """Load configuration for ``root`` or exit with status 1 when it is invalid."""

    resolved = root.resolve()
    try:
        config = load_config(resolved, overrides=overrides)
    except ConfigError as exc:
        fail(str(exc), use_emoji=emoji)
        raise typer.Exit(code=1) from exc
    return CLIContext(root=resolved, config=config, use_emoji=emoji)


__all__ = [
    "CLIContext",
    "EMOJI_OPTION",
    "JOBS_OPTION",
    "PLATFORM_OPTION",
    "REGISTRY_OPTION",
    "ROOT_OPTION",
    "build_context",
]

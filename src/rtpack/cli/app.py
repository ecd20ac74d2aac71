# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI application entry point wiring the rtpack commands."""

from __future__ import annotations

import logging

import typer

from .build import build_command, validate_command
from .release import release_command
from .resolve import fetch_command, list_command, resolve_command

app = typer.Typer(
    help="Build, package, publish and resolve versioned runtime bundles.",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging from the pipeline."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


app.command("build")(build_command)
app.command("validate")(validate_command)
app.command("release")(release_command)
app.command("resolve")(resolve_command)
app.command("fetch")(fetch_command)
app.command("list")(list_command)


def main() -> None:
    """Console-script entry point."""

    app()


__all__ = ["app", "main"]

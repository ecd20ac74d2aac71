# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""``rtpack build`` and ``rtpack validate`` commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ..console import detect_tty
from ..definitions import discover_runtime_dirs, validate_runtime_dir
from ..errors import RtpackError
from ..logging import fail, info, ok, section, table, warn
from ..pipeline import BuildPipeline, RuntimeRun
from .options import EMOJI_OPTION, JOBS_OPTION, PLATFORM_OPTION, ROOT_OPTION, build_context

NAME_ARGUMENT = Annotated[
    str | None,
    typer.Argument(help="Runtime directory name under runtimes/.", show_default=False),
]
ALL_OPTION = Annotated[
    bool,
    typer.Option("--all", "-a", help="Build every runtime."),
]


def _summary_rows(runs: list[RuntimeRun]) -> list[tuple[str, str, str]]:
    rows: list[tuple[str, str, str]] = []
    for run in runs:
        if run.passed and run.artifact is not None:
            rows.append((run.label, "PASS", run.artifact.filename))
        else:
            rows.append((run.label, "FAIL", run.error or ""))
    return rows


def build_command(
    name: NAME_ARGUMENT = None,
    build_all: ALL_OPTION = False,
    root: ROOT_OPTION = Path("."),
    jobs: JOBS_OPTION = None,
    platform: PLATFORM_OPTION = None,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Build, validate and package one runtime or all of them."""

    if name is None and not build_all:
        fail("Specify a runtime name or --all", use_emoji=emoji)
        raise typer.Exit(code=2)
    context = build_context(root, emoji=emoji, jobs=jobs, platform=platform)
    pipeline = BuildPipeline(context.config)
    try:
        runs = pipeline.run(None if build_all or name is None else [name])
    except RtpackError as exc:
        fail(str(exc), use_emoji=emoji)
        raise typer.Exit(code=1) from exc
    if not runs:
        warn(f"No runtimes found in {context.config.runtimes_dir}", use_emoji=emoji)
        raise typer.Exit(code=0)

    for run in runs:
        for message in run.warnings:
            warn(f"{run.label}: {message}", use_emoji=emoji)
        if run.passed and run.artifact is not None:
            ok(f"{run.label}: {run.artifact.archive_path} (sha256 {run.artifact.sha256})", use_emoji=emoji)
        else:
            fail(f"{run.label}: {run.error}", use_emoji=emoji)

    use_color = detect_tty()
    section("Build summary", use_color=use_color)
    table("Runtimes", ("Runtime", "Result", "Detail"), _summary_rows(runs), use_color=use_color)
    failed = sum(1 for run in runs if not run.passed)
    if failed:
        fail(f"{failed} of {len(runs)} runtime(s) failed", use_emoji=emoji)
        raise typer.Exit(code=1)
    ok(f"Built {len(runs)} runtime(s)", use_emoji=emoji)


def validate_command(
    name: NAME_ARGUMENT = None,
    root: ROOT_OPTION = Path("."),
    emoji: EMOJI_OPTION = True,
) -> None:
    """Check runtime naming and version compliance."""

    context = build_context(root, emoji=emoji)
    runtimes_dir = context.config.runtimes_dir
    runtime_dirs = [runtimes_dir / name] if name else discover_runtime_dirs(runtimes_dir)
    if not runtime_dirs:
        warn(f"No runtimes found in {runtimes_dir}", use_emoji=emoji)
        raise typer.Exit(code=0)

    errors = 0
    for runtime_dir in runtime_dirs:
        report = validate_runtime_dir(runtime_dir)
        info(f"Checking {runtime_dir.name}", use_emoji=emoji)
        for violation in report.warnings:
            warn(violation.message, use_emoji=emoji)
        for violation in report.errors:
            fail(violation.message, use_emoji=emoji)
        if report.ok:
            ok(f"{report.subject} is valid", use_emoji=emoji)
        else:
            errors += 1
    if errors:
        fail(f"{errors} runtime(s) failed validation", use_emoji=emoji)
        raise typer.Exit(code=1)
    ok("All runtimes follow the naming conventions", use_emoji=emoji)


__all__ = ["build_command", "validate_command"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""``rtpack release`` command."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ..errors import RtpackError
from ..logging import fail, info, ok
from ..registry import PublishStatus
from ..release import ReleaseManager
from .options import EMOJI_OPTION, ROOT_OPTION, build_context

GIT_TAG_OPTION = Annotated[
    bool,
    typer.Option("--git-tag/--no-git-tag", help="Create an annotated git tag <name>@<version>."),
]
BUILD_OPTION = Annotated[
    bool,
    typer.Option("--build/--no-build", help="Rebuild the artifact even when one already exists."),
]


def release_command(
    name: Annotated[str, typer.Argument(help="Runtime directory name under runtimes/.")],
    git_tag: GIT_TAG_OPTION = False,
    build: BUILD_OPTION = False,
    root: ROOT_OPTION = Path("."),
    emoji: EMOJI_OPTION = True,
) -> None:
    """Publish one runtime's artifact and register it."""

    context = build_context(root, emoji=emoji)
    manager = ReleaseManager(context.config, repo_root=context.root)
    try:
        outcome = manager.release(name, rebuild=build, git_tag=git_tag)
    except RtpackError as exc:
        fail(str(exc), use_emoji=emoji)
        raise typer.Exit(code=1) from exc

    info(f"Tag: {outcome.tag}", use_emoji=emoji)
    info(f"Checksum: {outcome.artifact.checksum}", use_emoji=emoji)
    if outcome.published_path is not None:
        info(f"Published to {outcome.published_path}", use_emoji=emoji)
    if outcome.git_tagged:
        ok(f"Created git tag {outcome.tag}", use_emoji=emoji)
    if outcome.publish.status is PublishStatus.UNCHANGED:
        ok(f"{outcome.tag} already registered with identical content", use_emoji=emoji)
    else:
        ok(f"Registered {outcome.tag} ({outcome.publish.status.value})", use_emoji=emoji)


__all__ = ["release_command"]

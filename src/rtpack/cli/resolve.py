# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Consumer-side commands: ``resolve``, ``fetch`` and ``list``."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ..console import detect_tty
from ..errors import RtpackError
from ..logging import fail, info, ok, table, warn
from ..resolver import LATEST, RegistryCache, RegistryClient, Resolver
from ..validation import is_semantic_version, version_key
from .options import EMOJI_OPTION, REGISTRY_OPTION, ROOT_OPTION, CLIContext, build_context

NAME_ARGUMENT = Annotated[str, typer.Argument(help="Runtime name as published in the registry.")]
VERSION_ARGUMENT = Annotated[str, typer.Argument(help="MAJOR.MINOR.PATCH or 'latest'.")]
DEST_OPTION = Annotated[
    Path | None,
    typer.Option("--dest", "-d", help="Install directory (defaults to <install_root>/<name>/<version>)."),
]
REFRESH_OPTION = Annotated[
    bool,
    typer.Option("--refresh", help="Ignore the cached registry document."),
]


def _resolver(context: CLIContext) -> Resolver:
    config = context.config
    cache = RegistryCache(config.cache_dir, ttl_seconds=config.registry_ttl_seconds)
    client = RegistryClient(
        config.registry_location,
        cache=cache,
        timeout=config.fetch_timeout,
        attempts=config.fetch_retries,
    )
    return Resolver(
        client,
        install_root=config.install_root,
        timeout=config.fetch_timeout,
        attempts=config.fetch_retries,
    )


def resolve_command(
    name: NAME_ARGUMENT,
    version: VERSION_ARGUMENT = LATEST,
    root: ROOT_OPTION = Path("."),
    registry: REGISTRY_OPTION = None,
    refresh: REFRESH_OPTION = False,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Print the registry entry selected for NAME and VERSION."""

    context = build_context(root, emoji=emoji, registry_url=registry)
    resolver = _resolver(context)
    try:
        if refresh:
            resolver.client.load(refresh=True)
        entry = resolver.resolve(name, version)
    except RtpackError as exc:
        fail(str(exc), use_emoji=emoji)
        raise typer.Exit(code=1) from exc
    ok(f"{name}@{entry.version}", use_emoji=emoji)
    info(f"url: {resolver.client.resolve_url(entry)}", use_emoji=emoji)
    info(f"checksum: {entry.checksum}", use_emoji=emoji)
    info(f"size: {entry.size}", use_emoji=emoji)
    if entry.platforms:
        info(f"platforms: {', '.join(entry.platforms)}", use_emoji=emoji)


def fetch_command(
    name: NAME_ARGUMENT,
    version: VERSION_ARGUMENT = LATEST,
    dest: DEST_OPTION = None,
    root: ROOT_OPTION = Path("."),
    registry: REGISTRY_OPTION = None,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Download, verify and install a published runtime bundle."""

    context = build_context(root, emoji=emoji, registry_url=registry)
    try:
        installed = _resolver(context).fetch(name, version, dest)
    except RtpackError as exc:
        fail(str(exc), use_emoji=emoji)
        raise typer.Exit(code=1) from exc
    ok(f"Installed {name}@{installed.entry.version} into {installed.path}", use_emoji=emoji)


def list_command(
    root: ROOT_OPTION = Path("."),
    registry: REGISTRY_OPTION = None,
    emoji: EMOJI_OPTION = True,
) -> None:
    """List every published runtime and its versions, newest first."""

    context = build_context(root, emoji=emoji, registry_url=registry)
    try:
        document = _resolver(context).client.load()
    except RtpackError as exc:
        fail(str(exc), use_emoji=emoji)
        raise typer.Exit(code=1) from exc
    if not document.runtimes:
        warn("Registry is empty", use_emoji=emoji)
        return
    rows: list[tuple[str, str, str]] = []
    for runtime in sorted(document.runtimes):
        versions = [item for item in document.versions(runtime) if is_semantic_version(item)]
        ordered = sorted(versions, key=version_key, reverse=True)
        latest = ordered[0] if ordered else "-"
        rows.append((runtime, latest, ", ".join(ordered)))
    table("Published runtimes", ("Runtime", "Latest", "Versions"), rows, use_color=detect_tty())


__all__ = ["fetch_command", "list_command", "resolve_command"]

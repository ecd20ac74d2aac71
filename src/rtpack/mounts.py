# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Mount manifest compiler producing the ordered mount list and environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final

from .builder.skeleton import ISOLATED_DIRNAME
from .definitions import write_runtime_document
from .models import MountSpec, RuntimeDefinition

LOGGER = logging.getLogger(__name__)


class MountGroup(int, Enum):
    """Canonical emission order of mount groups."""

    BINARIES = 1
    LIBRARIES = 2
    ARCH_LIBRARIES = 3
    TRUST = 4
    LANGUAGE = 5
    PACKAGE_MANAGER = 6
    SCRATCH = 7


@dataclass(frozen=True, slots=True)
class CanonicalMount:
    path: str
    group: MountGroup

    @property
    def source(self) -> str:
        return f"{ISOLATED_DIRNAME}/{self.path}"

    @property
    def target(self) -> str:
        return f"/{self.path}"


def _group(group: MountGroup, *paths: str) -> tuple[CanonicalMount, ...]:
    return tuple(CanonicalMount(path=path, group=group) for path in paths)


CANONICAL_MOUNTS: Final[tuple[CanonicalMount, ...]] = (
    *_group(MountGroup.BINARIES, "usr/local/bin", "usr/bin", "bin", "sbin", "usr/sbin"),
    *_group(MountGroup.LIBRARIES, "lib", "lib64", "usr/lib", "usr/lib64", "usr/local/lib"),
    *_group(
        MountGroup.ARCH_LIBRARIES,
        "lib/x86_64-linux-gnu",
        "usr/lib/x86_64-linux-gnu",
        "lib/aarch64-linux-gnu",
        "usr/lib/aarch64-linux-gnu",
    ),
    *_group(MountGroup.TRUST, "etc/ssl", "etc/pki", "etc/ca-certificates", "usr/share/ca-certificates"),
    *_group(
        MountGroup.PACKAGE_MANAGER,
        "etc/apt",
        "usr/share/keyrings",
        "var/lib/dpkg",
        "var/cache/apt",
        "var/lib/apt",
    ),
    *_group(MountGroup.SCRATCH, "var/tmp", "tmp"),
)

# The only targets ever mounted writable.
WRITABLE_TARGETS: Final[frozenset[str]] = frozenset(
    {
        "/tmp",
        "/var/tmp",
        "/var/lib/dpkg",
        "/var/cache/apt",
        "/var/lib/apt",
    },
)


@dataclass(frozen=True, slots=True)
class CompiledMounts:
    """Ordered mounts and environment emitted for one bundle."""

    mounts: tuple[MountSpec, ...]
    environment: dict[str, str]


def _has_content(path: Path) -> bool:
    """Return ``True`` when a file or link exists anywhere below ``path``."""

    if not path.is_dir():
        return False
    for current, dirs, files in os.walk(path):
        if files or any(os.path.islink(os.path.join(current, name)) for name in dirs):
            return True
    return False


def _mount(source: str, target: str) -> MountSpec:
    return MountSpec(source=source, target=target, readonly=target not in WRITABLE_TARGETS)


def _ordered_candidates(authored: Sequence[MountSpec]) -> Iterable[tuple[str, str, MountGroup]]:
    for entry in CANONICAL_MOUNTS:
        if entry.group < MountGroup.LANGUAGE:
            yield entry.source, entry.target, entry.group
    for mount in authored:
        yield mount.source, mount.target, MountGroup.LANGUAGE
    for entry in CANONICAL_MOUNTS:
        if entry.group > MountGroup.LANGUAGE:
            yield entry.source, entry.target, entry.group


def compile_mounts(bundle_root: Path, definition: RuntimeDefinition) -> CompiledMounts:
    """Compile the mount list for a populated bundle.

    Only directories holding at least one file or link somewhere below them
    are emitted; a tree of bare directories counts as empty. Canonical mounts
    come first (binaries, libraries, architecture libraries, trust material),
    then the authored language mounts in their given order, then
    package-manager state and scratch space. Authored mounts take precedence
    over a canonical mount with the same target. ``readonly`` follows :data:`WRITABLE_TARGETS`.
    """

    authored_targets = {mount.target for mount in definition.mounts}
    mounts: list[MountSpec] = []
    emitted: set[str] = set()
    binary_targets: list[str] = []
    for source, target, group in _ordered_candidates(definition.mounts):
        if target in emitted or (group is not MountGroup.LANGUAGE and target in authored_targets):
            continue
        if not _has_content(bundle_root / source):
            LOGGER.debug("omitting empty mount source %s", source)
            continue
        mounts.append(_mount(source, target))
        emitted.add(target)
        if group is MountGroup.BINARIES:
            binary_targets.append(target)

    environment: dict[str, str] = {}
    if binary_targets and "PATH" not in definition.environment:
        environment["PATH"] = ":".join(binary_targets)
    environment.update(definition.environment)
    return CompiledMounts(mounts=tuple(mounts), environment=environment)


def finalize_definition(bundle_root: Path, definition: RuntimeDefinition) -> RuntimeDefinition:
    """Compile mounts for ``definition`` and rewrite ``runtime.yml`` with the result."""

    compiled = compile_mounts(bundle_root, definition)
    final = definition.model_copy(update={"mounts": compiled.mounts, "environment": compiled.environment})
    write_runtime_document(final, bundle_root)
    return final


__all__ = [
    "CANONICAL_MOUNTS",
    "CompiledMounts",
    "MountGroup",
    "WRITABLE_TARGETS",
    "compile_mounts",
    "finalize_definition",
]

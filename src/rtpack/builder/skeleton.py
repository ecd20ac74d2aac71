# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Fixed top-level layout of an isolated bundle tree."""

from __future__ import annotations

from pathlib import Path
from typing import Final

ISOLATED_DIRNAME: Final[str] = "isolated"

SKELETON_DIRS: Final[tuple[str, ...]] = (
    "bin",
    "sbin",
    "lib",
    "lib64",
    "usr/bin",
    "usr/sbin",
    "usr/lib",
    "usr/lib64",
    "usr/local/bin",
    "usr/local/lib",
    "usr/share",
    "etc",
    "etc/ssl/certs",
    "opt",
    "tmp",
    "var/tmp",
)


def create_skeleton(isolated_root: Path) -> tuple[Path, ...]:
    """Create the canonical directory skeleton below ``isolated_root``.

    Safe to call repeatedly on an existing tree.

    Returns:
        tuple[Path, ...]: Directories making up the skeleton.
    """

    created: list[Path] = []
    for relative in SKELETON_DIRS:
        path = isolated_root / relative
        path.mkdir(parents=True, exist_ok=True)
        created.append(path)
    return tuple(created)


__all__ = ["ISOLATED_DIRNAME", "SKELETON_DIRS", "create_skeleton"]

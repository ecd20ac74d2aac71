# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Generate ``versions.lock`` recording the Python distributions inside a bundle."""

from __future__ import annotations

from importlib.metadata import Distribution, PathDistribution
from pathlib import Path
from typing import Final

from packaging.utils import canonicalize_name

from .models import RuntimeDefinition

LOCKFILE_NAME: Final[str] = "versions.lock"
_METADATA_GLOBS: Final[tuple[str, ...]] = ("**/*.dist-info", "**/*.egg-info")
_METADATA_FILES: Final[tuple[str, ...]] = ("METADATA", "PKG-INFO")


def collect_distributions(isolated_root: Path) -> list[tuple[str, str]]:
    """Return sorted ``(name, version)`` pairs for distributions under ``isolated_root``."""

    found: set[tuple[str, str]] = set()
    for pattern in _METADATA_GLOBS:
        for metadata_dir in isolated_root.glob(pattern):
            has_metadata = any((metadata_dir / filename).is_file() for filename in _METADATA_FILES)
            if metadata_dir.is_symlink() or not has_metadata:
                continue
            distribution: Distribution = PathDistribution(metadata_dir)
            metadata = distribution.metadata
            name = metadata.get("Name")
            version = metadata.get("Version")
            if name and version:
                found.add((canonicalize_name(name), version))
    return sorted(found)


def render_lockfile(definition: RuntimeDefinition, distributions: list[tuple[str, str]]) -> str:
    lines = [
        f"# {definition.tag}",
        f"runtime {definition.name}=={definition.version}",
    ]
    lines.extend(f"{name}=={version}" for name, version in distributions)
    return "\n".join(lines) + "\n"


def write_lockfile(bundle_root: Path, isolated_root: Path, definition: RuntimeDefinition) -> Path:
    """Write ``versions.lock`` next to ``runtime.yml``; output is stable for identical trees."""

    path = bundle_root / LOCKFILE_NAME
    path.write_text(render_lockfile(definition, collect_distributions(isolated_root)), encoding="utf-8")
    return path


__all__ = ["LOCKFILE_NAME", "collect_distributions", "render_lockfile", "write_lockfile"]

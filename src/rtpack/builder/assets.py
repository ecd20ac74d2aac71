# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Copy-plan evaluation with explicit per-asset results and symlink policy."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Final

from ..errors import AssetCopyFailure
from ..models import AssetSpec

LOGGER = logging.getLogger(__name__)

# Trust material and security policy subtrees; always copied with links dereferenced.
SENSITIVE_PREFIXES: Final[tuple[str, ...]] = (
    "etc/ssl",
    "etc/pki",
    "etc/ca-certificates",
    "usr/share/ca-certificates",
)
SENSITIVE_COMPONENTS: Final[frozenset[str]] = frozenset({"conf", "security"})


class AssetStatus(str, Enum):
    """Classification of one copy-plan step."""

    COPIED = "copied"
    MISSING_OPTIONAL = "missing-non-critical"
    MISSING_CRITICAL = "missing-critical"


@dataclass(frozen=True, slots=True)
class AssetResult:
    """Outcome of populating one asset (or one pattern of an asset)."""

    name: str
    status: AssetStatus
    source: Path | None = None
    detail: str = ""

    @property
    def critical_failure(self) -> bool:
        return self.status is AssetStatus.MISSING_CRITICAL

    @classmethod
    def missing(cls, name: str, *, critical: bool, detail: str) -> AssetResult:
        status = AssetStatus.MISSING_CRITICAL if critical else AssetStatus.MISSING_OPTIONAL
        return cls(name=name, status=status, detail=detail)


def is_sensitive(relative: PurePosixPath) -> bool:
    """Return ``True`` when ``relative`` (inside the isolated tree) needs dereferencing."""

    text = relative.as_posix()
    if any(text == prefix or text.startswith(prefix + "/") for prefix in SENSITIVE_PREFIXES):
        return True
    return any(part in SENSITIVE_COMPONENTS for part in relative.parts)


@dataclass(slots=True)
class TreeCopier:
    """Copy directory trees into an isolated root applying the symlink policy.

    Symlinks are preserved in binary and library trees when their target lies
    inside the tree being copied; links leaving it (absolute or climbing out
    with ``..``) are replaced by a copy of what they point at. Sensitive
    subtrees, and everything when ``dereference`` is set, are always copied
    with links followed. Dangling links and special files are skipped and
    recorded in ``skipped``; followed external links land in ``dereferenced``.
    """

    isolated_root: Path
    skipped: list[str] = field(default_factory=list)
    dereferenced: list[str] = field(default_factory=list)

    def copy(self, source: Path, destination: PurePosixPath, *, dereference: bool) -> None:
        target = self.isolated_root / destination
        dereference = dereference or is_sensitive(destination)
        if source.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            self._copy_dir(source, destination, dereference=dereference, root=source)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            self._copy_entry(source, destination, dereference=dereference, root=source)

    def summary(self) -> str:
        parts: list[str] = []
        if self.skipped:
            parts.append(f"skipped: {', '.join(self.skipped)}")
        if self.dereferenced:
            parts.append(f"dereferenced external links: {', '.join(self.dereferenced)}")
        return "; ".join(parts)

    def _copy_dir(self, source: Path, destination: PurePosixPath, *, dereference: bool, root: Path) -> None:
        with os.scandir(source) as entries:
            for entry in sorted(entries, key=lambda item: item.name):
                child_dest = destination / entry.name
                child_deref = dereference or is_sensitive(child_dest)
                self._copy_entry(Path(entry.path), child_dest, dereference=child_deref, root=root)

    def _copy_entry(self, source: Path, destination: PurePosixPath, *, dereference: bool, root: Path) -> None:
        target = self.isolated_root / destination
        if source.is_symlink() and not dereference:
            if link_stays_inside(source, root):
                _clear(target)
                target.symlink_to(os.readlink(source))
                return
            if source.exists():
                LOGGER.debug("following external link %s -> %s", source, os.readlink(source))
                self.dereferenced.append(destination.as_posix())
            dereference = True
        if source.is_symlink() and not source.exists():
            LOGGER.warning("skipping dangling link %s in %s", source, destination)
            self.skipped.append(destination.as_posix())
            return
        if source.is_dir():
            if target.is_symlink():
                target.unlink()
            target.mkdir(parents=True, exist_ok=True)
            self._copy_dir(source, destination, dereference=dereference, root=root)
            return
        if not source.is_file():
            LOGGER.warning("skipping special file %s in %s", source, destination)
            self.skipped.append(destination.as_posix())
            return
        if target.is_symlink():
            target.unlink()
        shutil.copy2(source, target)


def link_stays_inside(link: Path, root: Path) -> bool:
    """Return ``True`` when ``link`` is relative and resolves (lexically) within ``root``."""

    reference = os.readlink(link)
    if os.path.isabs(reference):
        return False
    resolved = Path(os.path.normpath(link.parent / reference))
    return resolved.is_relative_to(root)


def _clear(target: Path) -> None:
    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.is_dir():
        shutil.rmtree(target)


def resolve_candidate(candidate: str, *, host_root: Path, runtime_dir: Path) -> Path:
    """Map a candidate string onto the filesystem used for this build.

    Absolute candidates are host paths re-rooted under ``host_root``; relative
    ones are files shipped next to the manifest.
    """

    if candidate.startswith("/"):
        return host_root / candidate.lstrip("/")
    return runtime_dir / candidate


def evaluate_asset(
    spec: AssetSpec,
    *,
    isolated_root: Path,
    host_root: Path,
    runtime_dir: Path,
) -> list[AssetResult]:
    """Populate one asset from the first existing candidate.

    Returns:
        list[AssetResult]: One result for a tree asset, or one per pattern for
        pattern assets plus a critical result when nothing at all was copied.

    Raises:
        AssetCopyFailure: When reading the source or writing the bundle fails.
    """

    chosen: Path | None = None
    for candidate in spec.candidates:
        path = resolve_candidate(candidate, host_root=host_root, runtime_dir=runtime_dir)
        if path.exists():
            chosen = path
            break
        LOGGER.debug("asset %s: candidate %s not present", spec.name, path)

    if chosen is None:
        detail = "none of the candidates exist: " + ", ".join(spec.candidates)
        return [AssetResult.missing(spec.name, critical=spec.critical, detail=detail)]

    copier = TreeCopier(isolated_root=isolated_root)
    destination = PurePosixPath(spec.destination)
    try:
        if not spec.patterns:
            copier.copy(chosen, destination, dereference=spec.dereference)
            return [AssetResult(name=spec.name, status=AssetStatus.COPIED, source=chosen, detail=copier.summary())]
        return _evaluate_patterns(spec, chosen, destination, copier)
    except OSError as exc:
        raise AssetCopyFailure(spec.name, str(exc)) from exc


def _evaluate_patterns(
    spec: AssetSpec,
    chosen: Path,
    destination: PurePosixPath,
    copier: TreeCopier,
) -> list[AssetResult]:
    results: list[AssetResult] = []
    copied_any = False
    for pattern in spec.patterns:
        matches = sorted(path for path in chosen.rglob(pattern) if path.is_file())
        label = f"{spec.name}:{pattern}"
        if not matches:
            results.append(AssetResult.missing(label, critical=False, detail=f"no match in {chosen}"))
            continue
        for match in matches:
            # Flattened like ``find -exec cp``; links are followed.
            copier.copy(match, destination / match.name, dereference=True)
        copied_any = True
        results.append(AssetResult(name=label, status=AssetStatus.COPIED, source=chosen))
    if spec.critical and not copied_any:
        results.append(
            AssetResult.missing(spec.name, critical=True, detail=f"no pattern matched in {chosen}"),
        )
    return results


__all__ = [
    "AssetResult",
    "AssetStatus",
    "SENSITIVE_COMPONENTS",
    "SENSITIVE_PREFIXES",
    "TreeCopier",
    "evaluate_asset",
    "is_sensitive",
    "link_stays_inside",
    "resolve_candidate",
]

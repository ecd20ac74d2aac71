# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Loading, discovery and validation of authored runtime manifests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any, Final

import yaml
from pydantic import ConfigDict, ValidationError

from .errors import ManifestError
from .models import AssetSpec, RuntimeDefinition
from .validation import ValidationReport, check_name, check_version

MANIFEST_FILENAME: Final[str] = "manifest.yaml"
RUNTIME_DOCUMENT: Final[str] = "runtime.yml"
SETUP_SCRIPT_GLOB: Final[str] = "setup*.sh"


class RuntimeManifest(RuntimeDefinition):
    """Authored ``manifest.yaml``: a runtime definition plus its build recipe."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    assets: tuple[AssetSpec, ...] = ()
    required_paths: tuple[str, ...] = ()

    def definition(self) -> RuntimeDefinition:
        """Return the draft :class:`RuntimeDefinition` carried by this manifest."""

        return RuntimeDefinition(
            name=self.name,
            version=self.version,
            description=self.description,
            platforms=self.platforms,
            mounts=self.mounts,
            environment=self.environment,
        )


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ManifestError(f"Unable to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ManifestError(f"{path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"{path} must contain a mapping at the top level")
    return data


def load_manifest(runtime_dir: Path) -> RuntimeManifest:
    """Parse ``manifest.yaml`` inside ``runtime_dir``.

    Raises:
        ManifestError: When the file is missing, unreadable or structurally invalid.
    """

    path = runtime_dir / MANIFEST_FILENAME
    if not path.is_file():
        raise ManifestError(f"{MANIFEST_FILENAME} not found in '{runtime_dir}'")
    data = _read_yaml(path)
    for key in ("name", "version"):
        if data.get(key) in (None, ""):
            raise ManifestError(f"Could not extract '{key}' from {path}")
    try:
        return RuntimeManifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(f"{path} is invalid: {exc}") from exc


def discover_runtime_dirs(runtimes_dir: Path) -> list[Path]:
    """Return every non-hidden runtime directory in name order."""

    if not runtimes_dir.is_dir():
        return []
    return sorted(
        entry for entry in runtimes_dir.iterdir() if entry.is_dir() and not entry.name.startswith(".")
    )


def iter_manifests(runtimes_dir: Path) -> Iterator[tuple[Path, RuntimeManifest | ManifestError]]:
    """Yield ``(directory, manifest-or-error)`` for each discovered runtime."""

    for runtime_dir in discover_runtime_dirs(runtimes_dir):
        try:
            yield runtime_dir, load_manifest(runtime_dir)
        except ManifestError as exc:
            yield runtime_dir, exc


def setup_scripts(runtime_dir: Path) -> list[Path]:
    return sorted(runtime_dir.glob(SETUP_SCRIPT_GLOB))


def validate_runtime_dir(runtime_dir: Path) -> ValidationReport:
    """Validate one runtime directory the same way the build and release gates do.

    Errors: missing or malformed manifest, bad name or version. Warnings:
    directory name differing from the declared name, and a runtime with
    neither setup scripts nor an asset plan.
    """

    report = ValidationReport(subject=runtime_dir.name)
    try:
        manifest = load_manifest(runtime_dir)
    except ManifestError as exc:
        report.error("manifest", str(exc))
        return report

    report.subject = manifest.name
    if runtime_dir.name != manifest.name:
        report.warn(
            "name-mismatch",
            f"Directory name '{runtime_dir.name}' does not match manifest name '{manifest.name}'",
        )
    report.add(check_name(manifest.name))
    report.add(check_version(manifest.version))
    if not setup_scripts(runtime_dir) and not manifest.assets:
        report.warn("no-producer", "No setup scripts (setup-*.sh) and no asset plan found")
    return report


def write_runtime_document(definition: RuntimeDefinition, bundle_root: Path) -> Path:
    """Write ``runtime.yml`` for ``definition`` into ``bundle_root``."""

    path = bundle_root / RUNTIME_DOCUMENT
    path.write_text(
        yaml.safe_dump(definition.to_document(), sort_keys=False, default_flow_style=False),
        encoding="utf-8",
    )
    return path


def read_runtime_document(bundle_root: Path) -> RuntimeDefinition:
    """Load the ``runtime.yml`` stored in a built or installed bundle."""

    path = bundle_root / RUNTIME_DOCUMENT
    if not path.is_file():
        raise ManifestError(f"{RUNTIME_DOCUMENT} not found in '{bundle_root}'")
    try:
        return RuntimeDefinition.model_validate(_read_yaml(path))
    except ValidationError as exc:
        raise ManifestError(f"{path} is invalid: {exc}") from exc


__all__ = [
    "MANIFEST_FILENAME",
    "RUNTIME_DOCUMENT",
    "RuntimeManifest",
    "discover_runtime_dirs",
    "iter_manifests",
    "load_manifest",
    "read_runtime_document",
    "setup_scripts",
    "validate_runtime_dir",
    "write_runtime_document",
]

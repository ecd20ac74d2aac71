# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Data models describing runtime definitions, artifacts and registry entries."""

from __future__ import annotations

import posixpath
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Final

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CHECKSUM_PREFIX: Final[str] = "sha256:"
ARCHIVE_SUFFIX: Final[str] = ".tar.gz"
CHECKSUM_SUFFIX: Final[str] = ".sha256"
REGISTRY_SCHEMA_VERSION: Final[int] = 1


class MountSpec(BaseModel):
    """Single ``source -> target`` mount exposed to the bundle consumer."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    readonly: bool = True

    @field_validator("source")
    @classmethod
    def _source_stays_inside_bundle(cls, value: str) -> str:
        if not value or value.startswith("/"):
            raise ValueError(f"mount source '{value}' must be relative to the bundle root")
        normalised = posixpath.normpath(value)
        if normalised == ".." or normalised.startswith("../"):
            raise ValueError(f"mount source '{value}' escapes the bundle root")
        return normalised

    @field_validator("target")
    @classmethod
    def _target_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"mount target '{value}' must be an absolute path")
        return posixpath.normpath(value)

    def to_dict(self) -> dict[str, str | bool]:
        return {"source": self.source, "target": self.target, "readonly": self.readonly}


class RuntimeDefinition(BaseModel):
    """Identity, mounts and environment of one runtime version.

    Mount order is significant and preserved exactly as given; targets must be
    unique within a definition.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    description: str = ""
    platforms: tuple[str, ...] = ()
    mounts: tuple[MountSpec, ...] = ()
    environment: dict[str, str] = Field(default_factory=dict)

    @field_validator("name", "version", mode="before")
    @classmethod
    def _coerce_scalars(cls, value: object) -> object:
        # YAML turns an unquoted ``1.0`` into a float.
        return str(value) if isinstance(value, (int, float)) else value

    @field_validator("platforms", mode="before")
    @classmethod
    def _normalise_platforms(cls, value: object) -> object:
        if isinstance(value, str):
            return (value,)
        if isinstance(value, Iterable):
            return tuple(sorted({str(item) for item in value}))
        return value

    @field_validator("environment", mode="before")
    @classmethod
    def _stringify_environment(cls, value: object) -> object:
        if isinstance(value, Mapping):
            return {str(key): str(item) for key, item in value.items()}
        return value

    @model_validator(mode="after")
    def _unique_targets(self) -> RuntimeDefinition:
        seen: set[str] = set()
        for mount in self.mounts:
            if mount.target in seen:
                raise ValueError(f"duplicate mount target '{mount.target}'")
            seen.add(mount.target)
        return self

    @property
    def tag(self) -> str:
        """Return the release identifier ``<name>@<version>``."""

        return f"{self.name}@{self.version}"

    @property
    def archive_name(self) -> str:
        return f"{self.name}-{self.version}{ARCHIVE_SUFFIX}"

    def to_document(self) -> dict[str, object]:
        """Return the ``runtime.yml`` document consumed by the bundle consumer."""

        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "platforms": list(self.platforms),
            "mounts": [mount.to_dict() for mount in self.mounts],
            "environment": dict(self.environment),
        }


class AssetSpec(BaseModel):
    """One entry of a bundle copy plan.

    ``candidates`` are tried in order and the first existing one wins. With
    ``patterns`` set, each glob is matched inside the winning candidate and
    copied flat into ``destination``; a pattern without matches is reported on
    its own and never fails the build.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    destination: str
    candidates: tuple[str, ...]
    patterns: tuple[str, ...] = ()
    critical: bool = False
    dereference: bool = False

    @field_validator("destination")
    @classmethod
    def _destination_stays_inside_bundle(cls, value: str) -> str:
        normalised = posixpath.normpath(value.lstrip("/"))
        if normalised == ".." or normalised.startswith("../"):
            raise ValueError(f"asset destination '{value}' escapes the bundle root")
        return normalised

    @field_validator("candidates")
    @classmethod
    def _at_least_one_candidate(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("asset requires at least one candidate source")
        return value


class BundleArtifact(BaseModel):
    """Packaged archive of one ``(name, version)`` pair."""

    model_config = ConfigDict(frozen=True)

    archive_path: Path
    sha256: str
    size_bytes: int

    @property
    def checksum(self) -> str:
        """Return the registry checksum form ``sha256:<hex>``."""

        return f"{CHECKSUM_PREFIX}{self.sha256}"

    @property
    def checksum_path(self) -> Path:
        return self.archive_path.with_name(self.archive_path.name + CHECKSUM_SUFFIX)

    @property
    def filename(self) -> str:
        return self.archive_path.name


class RegistryEntry(BaseModel):
    """Published metadata of one runtime version."""

    version: str
    description: str = ""
    download_url: str
    checksum: str
    size: int
    platforms: list[str] = Field(default_factory=list)

    @property
    def sha256(self) -> str:
        return self.checksum.removeprefix(CHECKSUM_PREFIX)


class Registry(BaseModel):
    """Full multi-version catalog persisted as a single JSON document."""

    version: int = REGISTRY_SCHEMA_VERSION
    updated_at: str | None = None
    runtimes: dict[str, dict[str, RegistryEntry]] = Field(default_factory=dict)

    def entry(self, name: str, version: str) -> RegistryEntry | None:
        return self.runtimes.get(name, {}).get(version)

    def versions(self, name: str) -> tuple[str, ...]:
        return tuple(self.runtimes.get(name, {}))


__all__ = [
    "ARCHIVE_SUFFIX",
    "AssetSpec",
    "BundleArtifact",
    "CHECKSUM_PREFIX",
    "CHECKSUM_SUFFIX",
    "MountSpec",
    "REGISTRY_SCHEMA_VERSION",
    "Registry",
    "RegistryEntry",
    "RuntimeDefinition",
]

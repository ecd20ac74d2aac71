# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Persistence of the registry document with revision-checked writes."""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from pydantic import ValidationError

from ..errors import RegistryFormatError, RegistryWriteRace
from ..models import Registry
from ..validation import is_semantic_version, version_key

_LOCK_SUFFIX: Final[str] = ".lock"


@dataclass(frozen=True, slots=True)
class RegistrySnapshot:
    """Registry contents together with the revision they were read at.

    ``revision`` is ``None`` when no document exists yet.
    """

    registry: Registry
    revision: str | None


def _version_order(version: str) -> tuple[int, tuple[int, int, int], str]:
    if is_semantic_version(version):
        return 0, version_key(version), version
    return 1, (0, 0, 0), version


def serialize_registry(registry: Registry) -> bytes:
    """Return canonical JSON bytes with names sorted and versions in semantic order."""

    runtimes: dict[str, dict[str, object]] = {}
    for name in sorted(registry.runtimes):
        versions = registry.runtimes[name]
        runtimes[name] = {
            version: versions[version].model_dump(mode="json")
            for version in sorted(versions, key=_version_order)
        }
    document = {"version": registry.version, "updated_at": registry.updated_at, "runtimes": runtimes}
    return (json.dumps(document, indent=2) + "\n").encode("utf-8")


def parse_registry(data: bytes, *, source: str) -> Registry:
    """Parse registry JSON bytes.

    Raises:
        RegistryFormatError: When the document is not a valid registry.
    """

    try:
        return Registry.model_validate_json(data)
    except ValidationError as exc:
        raise RegistryFormatError(f"Registry at {source} is invalid: {exc}") from exc


def revision_of(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class RegistryStore(ABC):
    """Narrow read / compare-and-swap interface over the shared registry."""

    @abstractmethod
    def read(self) -> RegistrySnapshot:
        raise NotImplementedError

    @abstractmethod
    def write(self, registry: Registry, *, expected_revision: str | None) -> str:
        """Persist ``registry`` if the stored revision still equals ``expected_revision``.

        Returns:
            str: The new revision.

        Raises:
            RegistryWriteRace: When another writer changed the document first.
        """

        raise NotImplementedError


class FileRegistryStore(RegistryStore):
    """Registry stored as a JSON file; the revision is the SHA-256 of its bytes."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> RegistrySnapshot:
        data = self._read_bytes()
        if data is None:
            return RegistrySnapshot(registry=Registry(), revision=None)
        return RegistrySnapshot(registry=parse_registry(data, source=str(self.path)), revision=revision_of(data))

    def write(self, registry: Registry, *, expected_revision: str | None) -> str:
        payload = serialize_registry(registry)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self._locked():
            current = self._read_bytes()
            current_revision = revision_of(current) if current is not None else None
            if current_revision != expected_revision:
                raise RegistryWriteRace(
                    f"Registry {self.path} changed during update "
                    f"(expected {expected_revision or '<absent>'}, found {current_revision or '<absent>'})",
                )
            partial = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
            try:
                partial.write_bytes(payload)
                os.replace(partial, self.path)
            finally:
                partial.unlink(missing_ok=True)
        return revision_of(payload)

    def _read_bytes(self) -> bytes | None:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    @contextmanager
    def _locked(self) -> Iterator[None]:
        lock_path = self.path.with_name(self.path.name + _LOCK_SUFFIX)
        with lock_path.open("a") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


__all__ = [
    "FileRegistryStore",
    "RegistrySnapshot",
    "RegistryStore",
    "parse_registry",
    "revision_of",
    "serialize_registry",
]

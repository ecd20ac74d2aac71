# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Merge published artifacts into the shared registry under optimistic concurrency."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from ..errors import RegistryConflict, RegistryWriteRace
from ..models import BundleArtifact, Registry, RegistryEntry, RuntimeDefinition
from .store import RegistryStore

LOGGER = logging.getLogger(__name__)


class PublishStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class PublishResult:
    entry: RegistryEntry
    status: PublishStatus
    attempts: int


def utc_timestamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_entry(definition: RuntimeDefinition, artifact: BundleArtifact, download_url: str) -> RegistryEntry:
    return RegistryEntry(
        version=definition.version,
        description=definition.description,
        download_url=download_url,
        checksum=artifact.checksum,
        size=artifact.size_bytes,
        platforms=list(definition.platforms),
    )


def check_publishable(registry: Registry, name: str, entry: RegistryEntry) -> RegistryEntry | None:
    """Return the existing entry for ``name``/``entry.version`` if it may be republished.

    Raises:
        RegistryConflict: When the version is already bound to a different checksum.
    """

    existing = registry.entry(name, entry.version)
    if existing is not None and existing.checksum != entry.checksum:
        raise RegistryConflict(name, entry.version, existing.checksum, entry.checksum)
    return existing


def merge_entry(
    registry: Registry,
    name: str,
    entry: RegistryEntry,
    *,
    timestamp: str,
) -> tuple[Registry, PublishStatus]:
    """Return a new registry with ``entry`` merged under ``runtimes[name][entry.version]``.

    Other runtimes and versions are carried over untouched. Republishing the
    same checksum only refreshes metadata fields.
    """

    existing = check_publishable(registry, name, entry)
    if existing == entry:
        return registry, PublishStatus.UNCHANGED
    status = PublishStatus.CREATED if existing is None else PublishStatus.UPDATED
    runtimes = {runtime: dict(versions) for runtime, versions in registry.runtimes.items()}
    runtimes.setdefault(name, {})[entry.version] = entry
    merged = Registry(version=registry.version, updated_at=timestamp, runtimes=runtimes)
    return merged, status


class RegistryUpdater:
    """Publish entries with a bounded read-merge-write retry loop."""

    def __init__(
        self,
        store: RegistryStore,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
        clock: Callable[[], str] = utc_timestamp,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff_seconds
        self._clock = clock
        self._sleep = sleep

    def publish(self, name: str, entry: RegistryEntry) -> PublishResult:
        """Merge ``entry`` for runtime ``name`` into the registry.

        Raises:
            RegistryConflict: When the version already designates other bytes.
            RegistryWriteRace: When every attempt lost a concurrent write.
        """

        last_race: RegistryWriteRace | None = None
        for attempt in range(1, self._max_attempts + 1):
            snapshot = self._store.read()
            merged, status = merge_entry(snapshot.registry, name, entry, timestamp=self._clock())
            if status is PublishStatus.UNCHANGED:
                LOGGER.info("%s@%s already published with identical content", name, entry.version)
                return PublishResult(entry=entry, status=status, attempts=attempt)
            try:
                self._store.write(merged, expected_revision=snapshot.revision)
            except RegistryWriteRace as exc:
                last_race = exc
                LOGGER.warning("registry write race on attempt %d/%d: %s", attempt, self._max_attempts, exc)
                self._sleep(self._backoff * attempt)
                continue
            LOGGER.info("%s %s@%s in registry", status.value, name, entry.version)
            return PublishResult(entry=entry, status=status, attempts=attempt)
        raise RegistryWriteRace(
            f"Gave up publishing {name}@{entry.version} after {self._max_attempts} attempts: {last_race}",
        )

    def publish_artifact(
        self,
        definition: RuntimeDefinition,
        artifact: BundleArtifact,
        download_url: str,
    ) -> PublishResult:
        return self.publish(definition.name, build_entry(definition, artifact, download_url))


__all__ = [
    "PublishResult",
    "PublishStatus",
    "RegistryUpdater",
    "build_entry",
    "check_publishable",
    "merge_entry",
    "utc_timestamp",
]

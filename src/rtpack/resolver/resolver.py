# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Consumer-side version resolution and checksum-verified installation."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from packaging.version import Version

from ..errors import ChecksumMismatch, VersionNotFound
from ..models import Registry, RegistryEntry
from ..registry.store import parse_registry
from ..validation import check_version, is_semantic_version
from .cache import RegistryCache
from .fetch import download, fetch_bytes, join_location, safe_extract, verify_checksum

LOGGER = logging.getLogger(__name__)

LATEST: Final[str] = "latest"
_STAGING_PREFIX: Final[str] = ".rtpack-fetch-"


class RegistryClient:
    """Load the published registry from a URL or path through a TTL cache."""

    def __init__(
        self,
        location: str,
        *,
        cache: RegistryCache | None = None,
        timeout: float = 60.0,
        attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.location = location
        self._cache = cache
        self._timeout = timeout
        self._attempts = attempts
        self._sleep = sleep

    def load(self, *, refresh: bool = False) -> Registry:
        """Return the registry, refetching when the cached copy outlived its TTL."""

        if self._cache is not None and not refresh:
            cached = self._cache.get(self.location)
            if cached is not None:
                LOGGER.debug("using cached registry for %s", self.location)
                return cached
        data = fetch_bytes(self.location, timeout=self._timeout, attempts=self._attempts, sleep=self._sleep)
        registry = parse_registry(data, source=self.location)
        if self._cache is not None:
            self._cache.put(self.location, registry)
        return registry

    def invalidate(self) -> None:
        """Forget the cached registry so the next :meth:`load` refetches it."""

        if self._cache is not None:
            self._cache.invalidate(self.location)

    def resolve_url(self, entry: RegistryEntry) -> str:
        return join_location(self.location, entry.download_url)


def select_version(registry: Registry, name: str, spec: str = LATEST) -> RegistryEntry:
    """Pick the entry of ``name`` designated by ``spec``.

    ``spec`` is ``"latest"`` or an exact ``MAJOR.MINOR.PATCH`` string. Versions
    compare numerically, so ``1.10.0`` ranks above ``1.9.0``. There is no
    fallback to a nearby version.

    Raises:
        InvalidVersionFormat: When ``spec`` is neither ``latest`` nor a valid version.
        VersionNotFound: When no published entry matches.
    """

    versions = registry.runtimes.get(name, {})
    if spec == LATEST:
        candidates = [version for version in versions if is_semantic_version(version)]
        if not candidates:
            raise VersionNotFound(name, spec)
        return versions[max(candidates, key=Version)]
    violation = check_version(spec)
    if violation is not None and violation.error is not None:
        raise violation.error
    entry = versions.get(spec)
    if entry is None:
        raise VersionNotFound(name, spec)
    return entry


@dataclass(frozen=True, slots=True)
class InstalledBundle:
    name: str
    entry: RegistryEntry
    path: Path


class Resolver:
    """Resolve registry entries and install their verified archives."""

    def __init__(
        self,
        client: RegistryClient,
        *,
        install_root: Path,
        timeout: float = 60.0,
        attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.install_root = install_root
        self._timeout = timeout
        self._attempts = attempts
        self._sleep = sleep

    def resolve(self, name: str, spec: str = LATEST) -> RegistryEntry:
        return select_version(self.client.load(), name, spec)

    def versions(self, name: str) -> list[str]:
        """Return the published versions of ``name``, newest first."""

        versions = [version for version in self.client.load().versions(name) if is_semantic_version(version)]
        return sorted(versions, key=Version, reverse=True)

    def fetch(self, name: str, spec: str = LATEST, dest: Path | None = None) -> InstalledBundle:
        """Download, verify and extract ``name`` at ``spec``.

        The archive lands in a private staging directory next to the final
        location. Nothing is extracted unless the checksum matches, and the
        extracted tree only becomes visible through a final rename.

        Raises:
            VersionNotFound: When ``spec`` does not match a published entry.
            NetworkFetchFailure: When the archive cannot be downloaded.
            ChecksumMismatch: When the archive bytes differ from the registry checksum; the cached
                registry is dropped so a corrected document is fetched next time.
            UnsafeArchive: When the archive would write outside its root.
        """

        entry = self.resolve(name, spec)
        target = dest if dest is not None else self.install_root / name / entry.version
        target.parent.mkdir(parents=True, exist_ok=True)
        url = self.client.resolve_url(entry)
        staging = Path(tempfile.mkdtemp(prefix=_STAGING_PREFIX, dir=target.parent))
        try:
            archive = download(
                url,
                staging / "bundle.tar.gz",
                timeout=self._timeout,
                attempts=self._attempts,
                sleep=self._sleep,
            )
            try:
                verify_checksum(archive, entry.sha256, source=url)
            except ChecksumMismatch:
                self.client.invalidate()
                raise
            tree = staging / "tree"
            safe_extract(archive, tree)
            self._swap_into_place(tree, target, staging)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        LOGGER.info("installed %s@%s into %s", name, entry.version, target)
        return InstalledBundle(name=name, entry=entry, path=target)

    @staticmethod
    def _swap_into_place(tree: Path, target: Path, staging: Path) -> None:
        if target.exists():
            retired = staging / "previous"
            os.replace(target, retired)
        os.replace(tree, target)


__all__ = ["LATEST", "InstalledBundle", "RegistryClient", "Resolver", "select_version"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Time-bounded memory and disk cache for fetched registry documents."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from ..models import Registry

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CachedRegistry:
    registry: Registry
    fetched_at: float


class RegistryCache:
    """Cache registry documents per source location for ``ttl_seconds``.

    Entries live in memory and as ``registry-<digest>.json`` files under
    ``cache_dir``; anything older than the TTL counts as a miss.
    """

    def __init__(
        self,
        cache_dir: Path | None,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = cache_dir
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._memory: dict[str, CachedRegistry] = {}

    def get(self, source: str) -> Registry | None:
        cached = self._memory.get(source) or self._load_disk(source)
        if cached is None:
            return None
        age = self._clock() - cached.fetched_at
        if age < 0 or age >= self.ttl_seconds:
            LOGGER.debug("registry cache for %s expired (age %.1fs)", source, age)
            self._memory.pop(source, None)
            return None
        self._memory[source] = cached
        return cached.registry

    def put(self, source: str, registry: Registry) -> None:
        cached = CachedRegistry(registry=registry, fetched_at=self._clock())
        self._memory[source] = cached
        self._store_disk(source, cached)

    def invalidate(self, source: str) -> None:
        self._memory.pop(source, None)
        path = self._disk_path(source)
        if path is not None:
            path.unlink(missing_ok=True)

    def _disk_path(self, source: str) -> Path | None:
        if self.cache_dir is None:
            return None
        digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]
        return self.cache_dir / f"registry-{digest}.json"

    def _load_disk(self, source: str) -> CachedRegistry | None:
        path = self._disk_path(source)
        if path is None or not path.is_file():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            if payload.get("source") != source:
                return None
            return CachedRegistry(
                registry=Registry.model_validate(payload["document"]),
                fetched_at=float(payload["fetched_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as exc:
            LOGGER.debug("ignoring unreadable registry cache %s: %s", path, exc)
            return None

    def _store_disk(self, source: str, cached: CachedRegistry) -> None:
        path = self._disk_path(source)
        if path is None:
            return
        payload = {
            "fetched_at": cached.fetched_at,
            "source": source,
            "document": cached.registry.model_dump(mode="json"),
        }
        partial = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            partial.write_text(json.dumps(payload), encoding="utf-8")
            os.replace(partial, path)
        except OSError as exc:
            LOGGER.warning("unable to write registry cache %s: %s", path, exc)
        finally:
            partial.unlink(missing_ok=True)


__all__ = ["CachedRegistry", "RegistryCache"]

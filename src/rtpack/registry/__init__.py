# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Public exports for the registry document and its updater."""

from __future__ import annotations

from .store import FileRegistryStore, RegistrySnapshot, RegistryStore, parse_registry, serialize_registry
from .updater import (
    PublishResult,
    PublishStatus,
    RegistryUpdater,
    build_entry,
    check_publishable,
    merge_entry,
)

__all__ = [
    "FileRegistryStore",
    "PublishResult",
    "PublishStatus",
    "RegistrySnapshot",
    "RegistryStore",
    "RegistryUpdater",
    "build_entry",
    "check_publishable",
    "merge_entry",
    "parse_registry",
    "serialize_registry",
]

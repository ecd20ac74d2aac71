# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Consumer-side registry access, version resolution and artifact fetching."""

from __future__ import annotations

from .cache import RegistryCache
from .fetch import download, safe_extract, verify_checksum
from .resolver import LATEST, InstalledBundle, RegistryClient, Resolver, select_version

__all__ = [
    "LATEST",
    "InstalledBundle",
    "RegistryCache",
    "RegistryClient",
    "Resolver",
    "download",
    "safe_extract",
    "select_version",
    "verify_checksum",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Exception hierarchy shared by the build, release and resolution pipeline."""

from __future__ import annotations

from pathlib import Path


class RtpackError(Exception):
    """Base class for every error raised by :mod:`rtpack`."""


class ConfigError(RtpackError):
    """Raised when configuration input is invalid."""


class ManifestError(RtpackError):
    """Raised when a runtime manifest cannot be read or is malformed."""


class ManifestValidationError(RtpackError):
    """Raised when a name or version fails the naming grammar."""

    code = "invalid"

    def __init__(self, value: str, message: str) -> None:
        super().__init__(message)
        self.value = value


class InvalidNameFormat(ManifestValidationError):
    """Runtime name does not match ``^[a-z0-9.-]+$``."""

    code = "invalid-name"


class InvalidVersionFormat(ManifestValidationError):
    """Runtime version is not a plain ``MAJOR.MINOR.PATCH`` triple."""

    code = "invalid-version"


class CriticalAssetMissing(RtpackError):
    """Raised when a bundle lacks an asset it cannot function without."""

    def __init__(self, runtime: str, assets: tuple[str, ...]) -> None:
        joined = ", ".join(assets)
        super().__init__(f"Runtime '{runtime}' is missing critical assets: {joined}")
        self.runtime = runtime
        self.assets = assets


class AssetCopyFailure(RtpackError):
    """Raised when the filesystem refuses to copy an asset into the bundle."""

    def __init__(self, asset: str, reason: str) -> None:
        super().__init__(f"Failed to copy asset '{asset}': {reason}")
        self.asset = asset
        self.reason = reason


class ArchivePackagingFailure(RtpackError):
    """Raised when the release archive or its checksum cannot be produced."""


class RegistryConflict(RtpackError):
    """Raised when a published version would be rebound to different bytes."""

    def __init__(self, name: str, version: str, existing: str, incoming: str) -> None:
        super().__init__(
            f"{name}@{version} is already published with checksum {existing}; "
            f"refusing to replace it with {incoming}",
        )
        self.name = name
        self.version = version
        self.existing = existing
        self.incoming = incoming


class RegistryFormatError(RtpackError):
    """Raised when a registry document cannot be parsed."""


class RegistryWriteRace(RtpackError):
    """Raised when the registry changed between read and write."""


class ChecksumMismatch(RtpackError):
    """Raised when downloaded bytes do not hash to the registry checksum."""

    def __init__(self, source: str, expected: str, actual: str) -> None:
        super().__init__(f"Checksum mismatch for {source}: expected {expected}, got {actual}")
        self.source = source
        self.expected = expected
        self.actual = actual


class NetworkFetchFailure(RtpackError):
    """Raised when a download keeps failing after the allowed retries."""

    def __init__(self, url: str, attempts: int, reason: str) -> None:
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {reason}")
        self.url = url
        self.attempts = attempts
        self.reason = reason


class VersionNotFound(RtpackError):
    """Raised when the registry has no entry matching a version request."""

    def __init__(self, name: str, spec: str) -> None:
        super().__init__(f"No published version of '{name}' matches '{spec}'")
        self.name = name
        self.spec = spec


class UnsafeArchive(RtpackError):
    """Raised when an archive member would land outside the extraction root."""


class BundleNotFound(RtpackError):
    """Raised when an expected bundle directory or archive is absent."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Bundle artefact not found: {path}")
        self.path = path


__all__ = [
    "ArchivePackagingFailure",
    "AssetCopyFailure",
    "BundleNotFound",
    "ChecksumMismatch",
    "ConfigError",
    "CriticalAssetMissing",
    "InvalidNameFormat",
    "InvalidVersionFormat",
    "ManifestError",
    "ManifestValidationError",
    "NetworkFetchFailure",
    "RegistryConflict",
    "RegistryFormatError",
    "RegistryWriteRace",
    "RtpackError",
    "UnsafeArchive",
    "VersionNotFound",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Transport helpers: bounded-retry downloads, checksum checks and safe extraction."""

from __future__ import annotations

import logging
import shutil
import ssl
import tarfile
import time
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path
from typing import Final, TypeVar
from urllib.parse import urljoin, urlparse

from .. import __version__
from ..errors import ChecksumMismatch, NetworkFetchFailure, UnsafeArchive
from ..packager import sha256_file

LOGGER = logging.getLogger(__name__)

_REMOTE_SCHEMES: Final[frozenset[str]] = frozenset({"http", "https"})
_FILE_SCHEME: Final[str] = "file"
_USER_AGENT: Final[str] = f"rtpack/{__version__}"
_CHUNK_SIZE: Final[int] = 1024 * 1024

T = TypeVar("T")


def is_remote(location: str) -> bool:
    return urlparse(location).scheme.lower() in _REMOTE_SCHEMES


def local_path(location: str) -> Path:
    """Return the filesystem path behind a plain path or ``file://`` URL."""

    parsed = urlparse(location)
    if parsed.scheme.lower() == _FILE_SCHEME:
        return Path(urllib.request.url2pathname(parsed.path))
    return Path(location)


def join_location(base: str, reference: str) -> str:
    """Resolve ``reference`` relative to the document found at ``base``."""

    if urlparse(reference).scheme or Path(reference).is_absolute():
        return reference
    if is_remote(base):
        return urljoin(base, reference)
    return str(local_path(base).parent / reference)


def _open_remote(location: str, timeout: float):
    request = urllib.request.Request(location, headers={"User-Agent": _USER_AGENT})
    opener = urllib.request.build_opener(urllib.request.HTTPSHandler(context=ssl.create_default_context()))
    return opener.open(request, timeout=timeout)


def _check_scheme(location: str) -> None:
    scheme = urlparse(location).scheme.lower()
    if scheme and scheme not in _REMOTE_SCHEMES and scheme != _FILE_SCHEME:
        raise ValueError(f"Unsupported download scheme '{scheme}'")


def _with_retries(
    location: str,
    action: Callable[[], T],
    *,
    attempts: int,
    backoff_seconds: float,
    sleep: Callable[[float], None],
    cleanup: Callable[[], None] | None = None,
) -> T:
    attempts = max(1, attempts)
    reason = ""
    for attempt in range(1, attempts + 1):
        try:
            return action()
        except FileNotFoundError as exc:
            if cleanup is not None:
                cleanup()
            raise NetworkFetchFailure(location, attempt, str(exc)) from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            if cleanup is not None:
                cleanup()
            reason = str(exc)
            LOGGER.warning("fetch of %s failed (attempt %d/%d): %s", location, attempt, attempts, reason)
            if attempt < attempts:
                sleep(backoff_seconds * attempt)
    raise NetworkFetchFailure(location, attempts, reason)


def download(
    location: str,
    destination: Path,
    *,
    timeout: float,
    attempts: int,
    backoff_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """Copy ``location`` into ``destination``, restarting from scratch on failure.

    A partially written ``destination`` is removed before every retry.

    Raises:
        NetworkFetchFailure: When every attempt failed or the source does not exist.
    """

    try:
        _check_scheme(location)
    except ValueError as exc:
        raise NetworkFetchFailure(location, 0, str(exc)) from exc
    destination.parent.mkdir(parents=True, exist_ok=True)

    def copy() -> Path:
        if is_remote(location):
            with _open_remote(location, timeout) as response, destination.open("wb") as handle:
                shutil.copyfileobj(response, handle, _CHUNK_SIZE)
        else:
            shutil.copyfile(local_path(location), destination)
        return destination

    return _with_retries(
        location,
        copy,
        attempts=attempts,
        backoff_seconds=backoff_seconds,
        sleep=sleep,
        cleanup=lambda: destination.unlink(missing_ok=True),
    )


def fetch_bytes(
    location: str,
    *,
    timeout: float,
    attempts: int,
    backoff_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> bytes:
    """Return the bytes at ``location`` with the same retry policy as :func:`download`."""

    try:
        _check_scheme(location)
    except ValueError as exc:
        raise NetworkFetchFailure(location, 0, str(exc)) from exc

    def read() -> bytes:
        if is_remote(location):
            with _open_remote(location, timeout) as response:
                return response.read()
        return local_path(location).read_bytes()

    return _with_retries(location, read, attempts=attempts, backoff_seconds=backoff_seconds, sleep=sleep)


def verify_checksum(path: Path, expected_sha256: str, *, source: str) -> str:
    """Return the digest of ``path`` or raise when it differs from ``expected_sha256``.

    Raises:
        ChecksumMismatch: When the digests differ.
    """

    actual = sha256_file(path)
    if actual != expected_sha256.lower():
        raise ChecksumMismatch(source, expected_sha256, actual)
    return actual


def safe_extract(archive_path: Path, destination: Path) -> None:
    """Extract ``archive_path`` into ``destination`` refusing path escapes.

    Raises:
        UnsafeArchive: When a member would be written outside ``destination``.
    """

    destination = destination.resolve()
    destination.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_path, "r:gz") as archive:
        members = archive.getmembers()
        for member in members:
            member_path = (destination / member.name).resolve()
            if not member_path.is_relative_to(destination):
                raise UnsafeArchive(f"Unsafe path detected in archive {archive_path.name}: {member.name}")
            if member.islnk() and not (destination / member.linkname).resolve().is_relative_to(destination):
                raise UnsafeArchive(f"Unsafe hard link in archive {archive_path.name}: {member.name}")
        try:
            archive.extractall(destination, members=members, filter="tar")
        except tarfile.FilterError as exc:
            raise UnsafeArchive(f"Refusing to extract {archive_path.name}: {exc}") from exc


__all__ = [
    "download",
    "fetch_bytes",
    "is_remote",
    "join_location",
    "local_path",
    "safe_extract",
    "verify_checksum",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Release packager: deterministic tar.gz of a bundle plus its SHA-256 sidecar."""

from __future__ import annotations

import gzip
import hashlib
import logging
import os
import stat
import tarfile
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import BinaryIO, Final

from .errors import ArchivePackagingFailure, BundleNotFound
from .models import CHECKSUM_SUFFIX, BundleArtifact, RuntimeDefinition

LOGGER = logging.getLogger(__name__)

EXCLUDED_DIR_NAMES: Final[frozenset[str]] = frozenset({"__pycache__"})
EXCLUDED_SUFFIXES: Final[tuple[str, ...]] = (".pyc", ".pyo")
_CHUNK_SIZE: Final[int] = 1024 * 1024
_PARTIAL_PREFIX: Final[str] = ".partial-"

# Called with the definition and the digest of a finished archive before it replaces anything.
ArtifactGuard = Callable[[RuntimeDefinition, str], None]


def source_date_epoch() -> int:
    """Return ``SOURCE_DATE_EPOCH`` as an integer, defaulting to ``0``."""

    value = os.environ.get("SOURCE_DATE_EPOCH", "").strip()
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


def is_excluded(relative: str) -> bool:
    """Return ``True`` for build or bytecode caches that never enter an archive."""

    parts = relative.split("/")
    if any(part in EXCLUDED_DIR_NAMES for part in parts):
        return True
    return parts[-1].endswith(EXCLUDED_SUFFIXES)


def iter_members(root: Path) -> Iterator[str]:
    """Yield archive member paths below ``root`` in sorted, stable order."""

    for current, dirs, files in os.walk(root):
        dirs.sort()
        rel_dir = Path(current).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"
        kept_dirs = []
        for name in dirs:
            full = Path(current) / name
            relative = prefix + name
            if is_excluded(relative):
                continue
            if full.is_symlink():
                # os.walk does not descend into linked dirs; archive the link itself.
                yield relative
                continue
            kept_dirs.append(name)
            yield relative
        dirs[:] = kept_dirs
        for name in sorted(files):
            relative = prefix + name
            if not is_excluded(relative):
                yield relative


def _tarinfo(path: Path, arcname: str, epoch: int) -> tarfile.TarInfo | None:
    info = tarfile.TarInfo(arcname)
    st = path.lstat()
    info.mode = st.st_mode & 0o7777
    info.mtime = epoch
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    if stat.S_ISLNK(st.st_mode):
        info.type = tarfile.SYMTYPE
        info.linkname = os.readlink(path)
    elif stat.S_ISDIR(st.st_mode):
        info.type = tarfile.DIRTYPE
    elif stat.S_ISREG(st.st_mode):
        info.type = tarfile.REGTYPE
        info.size = st.st_size
    else:
        LOGGER.debug("skipping special file %s", path)
        return None
    return info


def _write_archive(root: Path, handle: BinaryIO, epoch: int) -> None:
    with gzip.GzipFile(filename="", mode="wb", fileobj=handle, mtime=epoch) as compressed:
        with tarfile.open(fileobj=compressed, mode="w|", format=tarfile.PAX_FORMAT) as archive:
            for relative in iter_members(root):
                path = root / relative
                info = _tarinfo(path, relative, epoch)
                if info is None:
                    continue
                if info.isreg():
                    with path.open("rb") as source:
                        archive.addfile(info, fileobj=source)
                else:
                    archive.addfile(info)


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of the bytes stored at ``path``."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def checksum_path_for(archive_path: Path) -> Path:
    return archive_path.with_name(archive_path.name + CHECKSUM_SUFFIX)


def read_checksum_sidecar(path: Path) -> str:
    """Return the digest recorded in a ``<hex>  <filename>`` sidecar."""

    try:
        content = path.read_text(encoding="utf-8").split()
    except OSError as exc:
        raise ArchivePackagingFailure(f"Unable to read checksum sidecar {path}: {exc}") from exc
    if not content:
        raise ArchivePackagingFailure(f"Checksum sidecar {path} is empty")
    return content[0].lower()


def package_bundle(
    bundle_root: Path,
    definition: RuntimeDefinition,
    output_dir: Path,
    *,
    epoch: int | None = None,
    guard: ArtifactGuard | None = None,
) -> BundleArtifact:
    """Archive the contents of ``bundle_root`` into ``<name>-<version>.tar.gz``.

    Members are stored relative to ``bundle_root`` itself (no wrapper
    directory). The archive and its sidecar are written under temporary names
    and only renamed into place once both are complete. ``guard`` sees the
    finished digest first; when it raises, nothing in ``output_dir`` changes.

    Raises:
        BundleNotFound: When ``bundle_root`` does not exist.
        ArchivePackagingFailure: When writing the archive or sidecar fails.
        RegistryConflict: Propagated from ``guard``.
    """

    if not bundle_root.is_dir():
        raise BundleNotFound(bundle_root)
    output_dir.mkdir(parents=True, exist_ok=True)
    archive_path = output_dir / definition.archive_name
    sidecar_path = checksum_path_for(archive_path)
    partial_archive = output_dir / f"{_PARTIAL_PREFIX}{os.getpid()}-{archive_path.name}"
    partial_sidecar = output_dir / f"{_PARTIAL_PREFIX}{os.getpid()}-{sidecar_path.name}"
    stamp = source_date_epoch() if epoch is None else epoch
    try:
        with partial_archive.open("wb") as handle:
            _write_archive(bundle_root, handle, stamp)
        digest = sha256_file(partial_archive)
        if guard is not None:
            guard(definition, digest)
        partial_sidecar.write_text(f"{digest}  {archive_path.name}\n", encoding="utf-8")
        size = partial_archive.stat().st_size
        os.replace(partial_archive, archive_path)
        os.replace(partial_sidecar, sidecar_path)
    except (OSError, tarfile.TarError) as exc:
        raise ArchivePackagingFailure(f"Failed to package {definition.tag}: {exc}") from exc
    finally:
        partial_archive.unlink(missing_ok=True)
        partial_sidecar.unlink(missing_ok=True)

    LOGGER.info("packaged %s (%d bytes, sha256 %s)", archive_path.name, size, digest)
    return BundleArtifact(archive_path=archive_path, sha256=digest, size_bytes=size)


def load_artifact(archive_path: Path) -> BundleArtifact:
    """Return the artifact at ``archive_path`` after checking it against its sidecar.

    Raises:
        BundleNotFound: When the archive or its sidecar is missing.
        ArchivePackagingFailure: When the archive bytes disagree with the sidecar.
    """

    sidecar = checksum_path_for(archive_path)
    for path in (archive_path, sidecar):
        if not path.is_file():
            raise BundleNotFound(path)
    recorded = read_checksum_sidecar(sidecar)
    actual = sha256_file(archive_path)
    if recorded != actual:
        raise ArchivePackagingFailure(
            f"{archive_path.name} does not match its sidecar checksum ({recorded} != {actual})",
        )
    return BundleArtifact(archive_path=archive_path, sha256=actual, size_bytes=archive_path.stat().st_size)


__all__ = [
    "ArtifactGuard",
    "EXCLUDED_DIR_NAMES",
    "EXCLUDED_SUFFIXES",
    "checksum_path_for",
    "is_excluded",
    "iter_members",
    "load_artifact",
    "package_bundle",
    "read_checksum_sidecar",
    "sha256_file",
    "source_date_epoch",
]

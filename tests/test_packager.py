# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the deterministic release packager."""

from __future__ import annotations

import gzip
import hashlib
import os
import tarfile
from pathlib import Path

import pytest

from rtpack.errors import ArchivePackagingFailure, BundleNotFound, RegistryConflict
from rtpack.models import RuntimeDefinition
from rtpack.packager import is_excluded, load_artifact, package_bundle, read_checksum_sidecar

DEFINITION = RuntimeDefinition(name="openjdk-21", version="1.0.0")


def _bundle(root: Path) -> Path:
    bundle = root / "openjdk-21" / "1.0.0"
    (bundle / "isolated/usr/lib/jvm/bin").mkdir(parents=True)
    (bundle / "isolated/usr/lib/jvm/bin/java").write_text("java", encoding="utf-8")
    (bundle / "isolated/usr/bin").mkdir(parents=True)
    os.symlink("../lib/jvm/bin/java", bundle / "isolated/usr/bin/java")
    (bundle / "runtime.yml").write_text("name: openjdk-21\n", encoding="utf-8")
    cache = bundle / "isolated/usr/lib/python3/__pycache__"
    cache.mkdir(parents=True)
    (cache / "mod.cpython-311.pyc").write_bytes(b"cache")
    (bundle / "isolated/usr/lib/python3/mod.pyc").write_bytes(b"bytecode")
    (bundle / "isolated/usr/lib/python3/mod.py").write_text("x = 1\n", encoding="utf-8")
    return bundle


def test_archive_holds_contents_without_wrapper_or_caches(tmp_path: Path) -> None:
    artifact = package_bundle(_bundle(tmp_path / "work"), DEFINITION, tmp_path / "out")

    with tarfile.open(artifact.archive_path, "r:gz") as archive:
        names = archive.getnames()
        link = archive.getmember("isolated/usr/bin/java")

    assert artifact.archive_path.name == "openjdk-21-1.0.0.tar.gz"
    assert "runtime.yml" in names
    assert "isolated/usr/lib/jvm/bin/java" in names
    assert "isolated/usr/lib/python3/mod.py" in names
    assert not any("__pycache__" in name or name.endswith(".pyc") for name in names)
    assert not any(name.startswith("1.0.0") for name in names)
    assert link.issym() and link.linkname == "../lib/jvm/bin/java"


def test_sidecar_matches_archive_bytes(tmp_path: Path) -> None:
    artifact = package_bundle(_bundle(tmp_path / "work"), DEFINITION, tmp_path / "out")

    digest = hashlib.sha256(artifact.archive_path.read_bytes()).hexdigest()
    sidecar = artifact.checksum_path.read_text(encoding="utf-8")

    assert artifact.sha256 == digest
    assert artifact.size_bytes == artifact.archive_path.stat().st_size
    assert sidecar == f"{digest}  openjdk-21-1.0.0.tar.gz\n"
    assert read_checksum_sidecar(artifact.checksum_path) == digest
    assert sorted(path.name for path in (tmp_path / "out").iterdir()) == [
        "openjdk-21-1.0.0.tar.gz",
        "openjdk-21-1.0.0.tar.gz.sha256",
    ]


def test_archives_are_reproducible(tmp_path: Path) -> None:
    first = package_bundle(_bundle(tmp_path / "a"), DEFINITION, tmp_path / "out-a", epoch=0)
    second = package_bundle(_bundle(tmp_path / "b"), DEFINITION, tmp_path / "out-b", epoch=0)

    assert first.sha256 == second.sha256
    with tarfile.open(first.archive_path, "r:gz") as archive:
        assert {member.mtime for member in archive.getmembers()} == {0}
        assert {(member.uid, member.gid) for member in archive.getmembers()} == {(0, 0)}


def test_gzip_header_uses_source_date_epoch(tmp_path: Path) -> None:
    artifact = package_bundle(_bundle(tmp_path / "work"), DEFINITION, tmp_path / "out")

    with gzip.open(artifact.archive_path) as handle:
        handle.read(1)
        assert handle.mtime == 1700000000


def test_missing_bundle_root(tmp_path: Path) -> None:
    with pytest.raises(BundleNotFound):
        package_bundle(tmp_path / "absent", DEFINITION, tmp_path / "out")


def test_load_artifact_detects_tampering(tmp_path: Path) -> None:
    artifact = package_bundle(_bundle(tmp_path / "work"), DEFINITION, tmp_path / "out")

    assert load_artifact(artifact.archive_path) == artifact
    artifact.archive_path.write_bytes(artifact.archive_path.read_bytes() + b"tampered")
    with pytest.raises(ArchivePackagingFailure):
        load_artifact(artifact.archive_path)


def test_guard_refusal_leaves_existing_archive_in_place(tmp_path: Path) -> None:
    out = tmp_path / "out"
    first = package_bundle(_bundle(tmp_path / "a"), DEFINITION, out, epoch=0)
    archive_before = first.archive_path.read_bytes()
    sidecar_before = first.checksum_path.read_bytes()
    changed = _bundle(tmp_path / "b")
    (changed / "isolated/usr/lib/jvm/bin/java").write_text("patched", encoding="utf-8")
    seen: list[str] = []

    def guard(definition: RuntimeDefinition, sha256: str) -> None:
        seen.append(sha256)
        raise RegistryConflict(definition.name, definition.version, f"sha256:{first.sha256}", f"sha256:{sha256}")

    with pytest.raises(RegistryConflict):
        package_bundle(changed, DEFINITION, out, epoch=0, guard=guard)

    assert seen and seen[0] != first.sha256
    assert first.archive_path.read_bytes() == archive_before
    assert first.checksum_path.read_bytes() == sidecar_before
    assert sorted(path.name for path in out.iterdir()) == [
        "openjdk-21-1.0.0.tar.gz",
        "openjdk-21-1.0.0.tar.gz.sha256",
    ]


def test_exclusion_rules() -> None:
    assert is_excluded("a/__pycache__/b.py")
    assert is_excluded("a/b.pyo")
    assert not is_excluded("a/pycache.py")

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for the bundle directory builder and its producers."""

from __future__ import annotations

import errno
import os
import shutil
from pathlib import Path

import pytest

from conftest import ManifestWriter, openjdk_manifest
from rtpack.builder import (
    AssetStatus,
    BundleBuilder,
    ProduceRequest,
    ScriptProducer,
    create_skeleton,
    producers_for,
)
from rtpack.builder.skeleton import SKELETON_DIRS
from rtpack.definitions import RUNTIME_DOCUMENT, load_manifest
from rtpack.errors import AssetCopyFailure, CriticalAssetMissing, InvalidNameFormat, ManifestError
from rtpack.process_utils import SubprocessExecutionError


def _builder(tmp_path: Path, host_root: Path) -> BundleBuilder:
    return BundleBuilder(tmp_path / "work", platform="ubuntu-amd64", build_id="test-build", host_root=host_root)


def test_skeleton_is_idempotent(tmp_path: Path) -> None:
    isolated = tmp_path / "isolated"

    create_skeleton(isolated)
    (isolated / "usr/bin/tool").write_text("x", encoding="utf-8")
    create_skeleton(isolated)

    for relative in SKELETON_DIRS:
        assert (isolated / relative).is_dir()
    assert (isolated / "usr/bin/tool").read_text(encoding="utf-8") == "x"


def test_build_populates_tree_and_reports_optional_misses(
    tmp_path: Path,
    host_root: Path,
    write_manifest: ManifestWriter,
) -> None:
    runtime_dir = write_manifest()
    outcome = _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)

    isolated = outcome.isolated_root
    assert outcome.bundle_root == tmp_path / "work/openjdk-21/1.0.0"
    assert (isolated / "usr/lib/jvm/bin/java").is_file()
    assert (isolated / "etc/ssl/certs/ca-bundle.pem").is_file()
    assert (isolated / "usr/lib/libz.so.1").is_file()
    assert (outcome.bundle_root / RUNTIME_DOCUMENT).is_file()
    assert [result.name for result in outcome.warnings] == ["system-libraries:libmissing.so*"]


def test_symlink_policy(tmp_path: Path, host_root: Path, write_manifest: ManifestWriter) -> None:
    runtime_dir = write_manifest()
    outcome = _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)

    jvm = outcome.isolated_root / "usr/lib/jvm"
    library_link = jvm / "lib/libjava-link.so"
    trust_store = jvm / "conf/security/cacerts"
    assert library_link.is_symlink()
    assert os.readlink(library_link) == "libjava.so"
    assert not trust_store.is_symlink()
    assert trust_store.read_bytes() == b"trusted-certificates"


def test_missing_critical_asset_aborts(tmp_path: Path, write_manifest: ManifestWriter) -> None:
    empty_host = tmp_path / "empty-host"
    empty_host.mkdir()
    runtime_dir = write_manifest()

    with pytest.raises(CriticalAssetMissing) as excinfo:
        _builder(tmp_path, empty_host).build(load_manifest(runtime_dir), runtime_dir)

    assert "jvm" in excinfo.value.assets
    assert "usr/lib/jvm/bin/java" in excinfo.value.assets


def test_missing_optional_asset_continues(tmp_path: Path, host_root: Path, write_manifest: ManifestWriter) -> None:
    document = openjdk_manifest()
    document["assets"].append(
        {"name": "maven", "destination": "opt/maven", "candidates": ["/opt/apache-maven"]},
    )
    runtime_dir = write_manifest(document)

    outcome = _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)

    statuses = {result.name: result.status for result in outcome.results}
    assert statuses["maven"] is AssetStatus.MISSING_OPTIONAL
    assert statuses["jvm"] is AssetStatus.COPIED


def test_rebuild_over_existing_tree(tmp_path: Path, host_root: Path, write_manifest: ManifestWriter) -> None:
    runtime_dir = write_manifest()
    builder = _builder(tmp_path, host_root)
    manifest = load_manifest(runtime_dir)

    builder.build(manifest, runtime_dir)
    outcome = builder.build(manifest, runtime_dir)

    assert (outcome.isolated_root / "usr/lib/jvm/lib/libjava-link.so").is_symlink()


def test_invalid_name_blocks_build(tmp_path: Path, host_root: Path, write_manifest: ManifestWriter) -> None:
    runtime_dir = write_manifest(openjdk_manifest(name="OpenJDK"), dirname="openjdk")

    with pytest.raises(InvalidNameFormat):
        _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)


def test_unsupported_platform_is_rejected(tmp_path: Path, host_root: Path, write_manifest: ManifestWriter) -> None:
    runtime_dir = write_manifest(openjdk_manifest(platforms=["rhel-arm64"]))

    with pytest.raises(ManifestError, match="does not support platform"):
        _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)


def test_setup_script_receives_build_environment(
    tmp_path: Path,
    host_root: Path,
    write_manifest: ManifestWriter,
) -> None:
    runtime_dir = write_manifest(openjdk_manifest(assets=[], required_paths=["opt/env.txt"]))
    (runtime_dir / "setup-ubuntu-amd64.sh").write_text(
        'mkdir -p "$BUNDLE_ROOT/opt"\n'
        'echo "$RUNTIME_SPEC $BUILD_ID $PLATFORM $ARCHITECTURE" > "$BUNDLE_ROOT/opt/env.txt"\n',
        encoding="utf-8",
    )
    (runtime_dir / "setup.sh").write_text("exit 1\n", encoding="utf-8")
    manifest = load_manifest(runtime_dir)

    producers = producers_for(manifest, runtime_dir, "ubuntu-amd64")
    outcome = _builder(tmp_path, host_root).build(manifest, runtime_dir)

    assert [type(producer) for producer in producers] == [ScriptProducer]
    assert (outcome.isolated_root / "opt/env.txt").read_text(encoding="utf-8") == (
        "openjdk-21@1.0.0 test-build ubuntu-amd64 amd64\n"
    )


def test_failing_setup_script_raises(tmp_path: Path, write_manifest: ManifestWriter) -> None:
    runtime_dir = write_manifest(openjdk_manifest(assets=[], required_paths=[]))
    script = runtime_dir / "setup.sh"
    script.write_text("echo broken >&2\nexit 3\n", encoding="utf-8")
    request = ProduceRequest(
        manifest=load_manifest(runtime_dir),
        runtime_dir=runtime_dir,
        isolated_root=tmp_path / "isolated",
        platform="ubuntu-amd64",
        build_id="b",
    )

    with pytest.raises(SubprocessExecutionError) as excinfo:
        ScriptProducer(script).produce(request)

    assert excinfo.value.returncode == 3
    assert "broken" in (excinfo.value.stderr or "")


def test_links_leaving_the_copied_tree_are_followed(
    tmp_path: Path,
    host_root: Path,
    write_manifest: ManifestWriter,
) -> None:
    jdk_lib = host_root / "usr/lib/jvm/java-21-openjdk/lib"
    os.symlink(host_root / "usr/lib64/libz.so.1", jdk_lib / "libz.so")
    os.symlink("../../../../lib64/libz.so.1", jdk_lib / "libz-relative.so")
    os.symlink("/nonexistent/x86_64-linux-gnu/libffi.so.8", jdk_lib / "libffi.so")
    runtime_dir = write_manifest()

    outcome = _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)

    lib = outcome.isolated_root / "usr/lib/jvm/lib"
    for name in ("libz.so", "libz-relative.so"):
        assert not (lib / name).is_symlink()
        assert (lib / name).read_bytes() == b"\x7fELF-zlib"
    assert not os.path.lexists(lib / "libffi.so")
    assert os.readlink(lib / "libjava-link.so") == "libjava.so"
    (jvm,) = [result for result in outcome.results if result.name == "jvm"]
    assert jvm.status is AssetStatus.COPIED
    assert "skipped: usr/lib/jvm/lib/libffi.so" in jvm.detail
    assert "usr/lib/jvm/lib/libz.so" in jvm.detail
    assert "libffi" not in jvm.detail.partition("dereferenced")[2]
    assert outcome.notes == (jvm,)


def test_special_files_are_skipped(tmp_path: Path, host_root: Path, write_manifest: ManifestWriter) -> None:
    os.mkfifo(host_root / "usr/lib/jvm/java-21-openjdk/lib/jfr.pipe")
    runtime_dir = write_manifest()

    outcome = _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)

    assert not os.path.lexists(outcome.isolated_root / "usr/lib/jvm/lib/jfr.pipe")
    assert (outcome.isolated_root / "usr/lib/jvm/bin/java").is_file()
    (jvm,) = [result for result in outcome.results if result.name == "jvm"]
    assert jvm.detail == "skipped: usr/lib/jvm/lib/jfr.pipe"


def test_copy_errors_become_asset_failures(
    tmp_path: Path,
    host_root: Path,
    write_manifest: ManifestWriter,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    original = shutil.copy2

    def failing_copy(source: Path, target: Path, **kwargs: object) -> object:
        if Path(source).name == "libjvm.so":
            raise OSError(errno.EIO, "Input/output error", str(source))
        return original(source, target, **kwargs)

    monkeypatch.setattr(shutil, "copy2", failing_copy)
    runtime_dir = write_manifest()

    with pytest.raises(AssetCopyFailure) as excinfo:
        _builder(tmp_path, host_root).build(load_manifest(runtime_dir), runtime_dir)

    assert excinfo.value.asset == "jvm"
    assert "Input/output error" in excinfo.value.reason

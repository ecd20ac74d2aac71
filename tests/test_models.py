# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for runtime definition and registry models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from rtpack.models import AssetSpec, BundleArtifact, MountSpec, Registry, RegistryEntry, RuntimeDefinition


def test_mount_source_must_stay_inside_bundle() -> None:
    with pytest.raises(ValidationError):
        MountSpec(source="../outside", target="/opt")
    with pytest.raises(ValidationError):
        MountSpec(source="isolated/../../etc", target="/etc")
    with pytest.raises(ValidationError):
        MountSpec(source="/abs/path", target="/abs")


def test_mount_target_must_be_absolute() -> None:
    with pytest.raises(ValidationError):
        MountSpec(source="isolated/usr/bin", target="usr/bin")


def test_mount_paths_are_normalised() -> None:
    mount = MountSpec(source="isolated/./usr//bin", target="/usr/bin/")

    assert mount.source == "isolated/usr/bin"
    assert mount.target == "/usr/bin"
    assert mount.readonly is True


def test_definition_preserves_mount_order_and_rejects_duplicate_targets() -> None:
    mounts = [
        {"source": "isolated/b", "target": "/b"},
        {"source": "isolated/a", "target": "/a"},
    ]
    definition = RuntimeDefinition(name="demo", version="1.0.0", mounts=mounts)

    assert [mount.target for mount in definition.mounts] == ["/b", "/a"]
    with pytest.raises(ValidationError):
        RuntimeDefinition(
            name="demo",
            version="1.0.0",
            mounts=[*mounts, {"source": "isolated/c", "target": "/a"}],
        )


def test_definition_identity_helpers() -> None:
    definition = RuntimeDefinition(name="openjdk-21", version="1.0.0", platforms=["ubuntu-amd64", "amzn-amd64"])

    assert definition.tag == "openjdk-21@1.0.0"
    assert definition.archive_name == "openjdk-21-1.0.0.tar.gz"
    assert definition.platforms == ("amzn-amd64", "ubuntu-amd64")


def test_asset_requires_candidates_and_stays_inside_bundle() -> None:
    with pytest.raises(ValidationError):
        AssetSpec(name="empty", destination="usr/lib", candidates=())
    with pytest.raises(ValidationError):
        AssetSpec(name="escape", destination="../etc", candidates=("/etc",))
    assert AssetSpec(name="ok", destination="/usr/lib/", candidates=("/usr/lib",)).destination == "usr/lib"


def test_artifact_checksum_forms(tmp_path: Path) -> None:
    artifact = BundleArtifact(archive_path=tmp_path / "x-1.0.0.tar.gz", sha256="ab" * 32, size_bytes=3)

    assert artifact.checksum == "sha256:" + "ab" * 32
    assert artifact.checksum_path.name == "x-1.0.0.tar.gz.sha256"


def test_registry_entry_lookup() -> None:
    entry = RegistryEntry(version="1.0.0", download_url="u", checksum="sha256:ff", size=1)
    registry = Registry(runtimes={"x": {"1.0.0": entry}})

    assert registry.entry("x", "1.0.0") == entry
    assert registry.entry("x", "2.0.0") is None
    assert registry.versions("missing") == ()
    assert entry.sha256 == "ff"

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for releasing a single runtime."""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from conftest import ManifestWriter, openjdk_manifest
from rtpack.config import Config
from rtpack.errors import InvalidVersionFormat, RegistryConflict
from rtpack.process_utils import SubprocessExecutionError
from rtpack.registry import FileRegistryStore, PublishStatus
from rtpack.release import ReleaseManager


class _RecordingRunner:
    def __init__(self, existing_tags: Sequence[str] = ()) -> None:
        self.calls: list[list[str]] = []
        self.existing_tags = set(existing_tags)

    def __call__(self, args: Sequence[str], **_: Any) -> subprocess.CompletedProcess[str]:
        self.calls.append(list(args))
        returncode = 0
        if args[1] == "rev-parse":
            returncode = 0 if args[-1].removeprefix("refs/tags/") in self.existing_tags else 1
        return subprocess.CompletedProcess(args=list(args), returncode=returncode, stdout="", stderr="")


def test_release_builds_publishes_and_registers(
    config: Config,
    write_manifest: ManifestWriter,
    tmp_path: Path,
) -> None:
    write_manifest()
    config.publish_dir = tmp_path / "published"
    config.download_base_url = "https://downloads.example.org/runtimes"
    config.download_url_template = "{base}/{tag}/{filename}"

    outcome = ReleaseManager(config).release("openjdk-21")

    entry = FileRegistryStore(config.registry_path).read().registry.entry("openjdk-21", "1.0.0")
    assert outcome.tag == "openjdk-21@1.0.0"
    assert outcome.publish.status is PublishStatus.CREATED
    assert entry is not None
    assert entry.checksum == outcome.artifact.checksum
    assert entry.size == outcome.artifact.size_bytes
    assert entry.download_url == (
        "https://downloads.example.org/runtimes/openjdk-21@1.0.0/openjdk-21-1.0.0.tar.gz"
    )
    assert sorted(path.name for path in (tmp_path / "published").iterdir()) == [
        "openjdk-21-1.0.0.tar.gz",
        "openjdk-21-1.0.0.tar.gz.sha256",
    ]


def test_release_reuses_existing_artifact_and_is_idempotent(config: Config, write_manifest: ManifestWriter) -> None:
    write_manifest()
    manager = ReleaseManager(config)
    first = manager.release("openjdk-21")

    second = manager.release("openjdk-21")

    assert second.artifact.sha256 == first.artifact.sha256
    assert second.publish.status is PublishStatus.UNCHANGED


def test_release_refuses_tag_bound_to_other_bytes(config: Config, write_manifest: ManifestWriter) -> None:
    runtime_dir = write_manifest()
    released = ReleaseManager(config).release("openjdk-21")
    registry_before = config.registry_path.read_bytes()
    archive_before = released.artifact.archive_path.read_bytes()
    sidecar_before = released.artifact.checksum_path.read_bytes()
    (runtime_dir / "extra.txt").write_text("changed", encoding="utf-8")
    document = openjdk_manifest(description="rebuilt with different content")
    document["assets"].append({"name": "extra", "destination": "opt/extra.txt", "candidates": ["extra.txt"]})
    write_manifest(document)

    with pytest.raises(RegistryConflict):
        ReleaseManager(config).release("openjdk-21", rebuild=True)

    assert config.registry_path.read_bytes() == registry_before
    assert released.artifact.archive_path.read_bytes() == archive_before
    assert released.artifact.checksum_path.read_bytes() == sidecar_before
    assert sorted(path.name for path in config.output_dir.iterdir()) == [
        "openjdk-21-1.0.0.tar.gz",
        "openjdk-21-1.0.0.tar.gz.sha256",
    ]


def test_release_gate_matches_build_gate(config: Config, write_manifest: ManifestWriter) -> None:
    write_manifest(openjdk_manifest(version="1.0.0-beta"))

    with pytest.raises(InvalidVersionFormat):
        ReleaseManager(config).release("openjdk-21")

    assert not config.registry_path.exists()


def test_git_tag_is_created_once(config: Config, write_manifest: ManifestWriter) -> None:
    write_manifest()
    runner = _RecordingRunner()

    outcome = ReleaseManager(config, runner=runner).release("openjdk-21", git_tag=True)

    assert outcome.git_tagged
    tag_call = runner.calls[-1]
    assert tag_call[:4] == ["git", "tag", "-a", "openjdk-21@1.0.0"]
    assert "Release openjdk-21 version 1.0.0" in tag_call[-1]

    again = ReleaseManager(config, runner=_RecordingRunner(["openjdk-21@1.0.0"])).release("openjdk-21", git_tag=True)
    assert not again.git_tagged


def test_missing_git_is_reported_as_command_failure(config: Config, write_manifest: ManifestWriter) -> None:
    write_manifest()

    def runner(args: Sequence[str], **_: Any) -> subprocess.CompletedProcess[str]:
        raise FileNotFoundError(f"Executable '{args[0]}' was not found on PATH")

    with pytest.raises(SubprocessExecutionError) as excinfo:
        ReleaseManager(config, runner=runner).release("openjdk-21", git_tag=True)

    assert excinfo.value.returncode == 127

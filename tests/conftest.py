# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Shared pytest fixtures: a fake host filesystem and a runtime project."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest
import yaml

from rtpack.config import Config, load_config
from rtpack.console import get_console_manager

ManifestWriter = Callable[..., Path]


@pytest.fixture(autouse=True)
def _reset_console_cache() -> None:
    get_console_manager().clear()


@pytest.fixture(autouse=True)
def _fixed_source_date_epoch(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOURCE_DATE_EPOCH", "1700000000")


def openjdk_manifest(**overrides: Any) -> dict[str, Any]:
    document: dict[str, Any] = {
        "name": "openjdk-21",
        "version": "1.0.0",
        "description": "OpenJDK 21 test runtime",
        "platforms": ["ubuntu-amd64"],
        "mounts": [{"source": "isolated/usr/lib/jvm", "target": "/usr/lib/jvm"}],
        "environment": {"JAVA_HOME": "/usr/lib/jvm"},
        "assets": [
            {
                "name": "jvm",
                "destination": "usr/lib/jvm",
                "critical": True,
                "candidates": ["/usr/lib/jvm/java-21-amazon-corretto", "/usr/lib/jvm/java-21-openjdk"],
            },
            {
                "name": "ca-certificates",
                "destination": "etc/ssl/certs",
                "candidates": ["/etc/ssl/certs", "/etc/pki/tls/certs"],
            },
            {
                "name": "system-libraries",
                "destination": "usr/lib",
                "patterns": ["libz.so*", "libmissing.so*"],
                "candidates": ["/usr/lib64"],
            },
        ],
        "required_paths": ["usr/lib/jvm/bin/java"],
    }
    document.update(overrides)
    return document


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    """Return a miniature host filesystem holding a JDK, CA bundle and libraries."""

    root = tmp_path / "host"
    jdk = root / "usr/lib/jvm/java-21-openjdk"
    (jdk / "bin").mkdir(parents=True)
    java = jdk / "bin/java"
    java.write_text("#!/bin/sh\necho java\n", encoding="utf-8")
    java.chmod(0o755)
    (jdk / "lib/server").mkdir(parents=True)
    (jdk / "lib/server/libjvm.so").write_bytes(b"\x7fELF-jvm")
    (jdk / "lib/libjava.so").write_bytes(b"\x7fELF-java")
    os.symlink("libjava.so", jdk / "lib/libjava-link.so")

    trust_store = root / "etc/pki/java"
    trust_store.mkdir(parents=True)
    (trust_store / "cacerts").write_bytes(b"trusted-certificates")
    (jdk / "conf/security").mkdir(parents=True)
    os.symlink(trust_store / "cacerts", jdk / "conf/security/cacerts")
    (jdk / "conf/security/java.security").write_text("securerandom.source=file:/dev/urandom\n", encoding="utf-8")

    certs = root / "etc/ssl/certs"
    certs.mkdir(parents=True)
    (certs / "ca-bundle.pem").write_text("-----BEGIN CERTIFICATE-----\n", encoding="utf-8")

    libs = root / "usr/lib64"
    libs.mkdir(parents=True)
    (libs / "libz.so.1").write_bytes(b"\x7fELF-zlib")
    return root


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "runtimes").mkdir(parents=True)
    return root


@pytest.fixture
def write_manifest(project: Path) -> ManifestWriter:
    """Return a helper writing ``runtimes/<dirname>/manifest.yaml``."""

    def _write(document: Mapping[str, Any] | None = None, *, dirname: str | None = None) -> Path:
        data = dict(document) if document is not None else openjdk_manifest()
        runtime_dir = project / "runtimes" / (dirname or str(data.get("name", "runtime")))
        runtime_dir.mkdir(parents=True, exist_ok=True)
        (runtime_dir / "manifest.yaml").write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return runtime_dir

    return _write


@pytest.fixture
def config(project: Path, host_root: Path, tmp_path: Path) -> Config:
    return load_config(
        project,
        overrides={
            "platform": "ubuntu-amd64",
            "jobs": 2,
            "host_root": host_root,
            "cache_dir": tmp_path / "cache",
            "install_root": tmp_path / "installed",
        },
    )

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Batch build pipeline: validate, build, compile mounts, lock and package."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .builder import BundleBuilder
from .config import Config
from .definitions import discover_runtime_dirs, load_manifest, validate_runtime_dir
from .errors import ManifestError, RegistryConflict, RtpackError
from .lockfile import write_lockfile
from .models import CHECKSUM_PREFIX, BundleArtifact, RuntimeDefinition
from .mounts import finalize_definition
from .packager import package_bundle
from .registry import FileRegistryStore, RegistryStore

LOGGER = logging.getLogger(__name__)


class RunStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


@dataclass(slots=True)
class RuntimeRun:
    """Outcome of the pipeline for one runtime directory."""

    runtime_dir: Path
    status: RunStatus = RunStatus.FAILED
    definition: RuntimeDefinition | None = None
    artifact: BundleArtifact | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def label(self) -> str:
        return self.definition.tag if self.definition is not None else self.runtime_dir.name

    @property
    def passed(self) -> bool:
        return self.status is RunStatus.PASSED


class BuildPipeline:
    """Run each runtime through build and packaging independently.

    A failure in one runtime is recorded on its :class:`RuntimeRun` and never
    stops the others. An archive is only written over when ``store`` has not
    registered its version with a different checksum.
    """

    def __init__(
        self,
        config: Config,
        *,
        builder: BundleBuilder | None = None,
        store: RegistryStore | None = None,
        epoch: int | None = None,
    ) -> None:
        self.config = config
        self.store = store or FileRegistryStore(config.registry_path)
        self.builder = builder or BundleBuilder(
            config.work_dir,
            platform=config.platform,
            host_root=config.host_root,
        )
        self._epoch = epoch

    def runtime_dirs(self, names: Sequence[str] | None = None) -> list[Path]:
        """Return the runtime directories to build, all of them when ``names`` is empty.

        Raises:
            ManifestError: When a requested runtime directory does not exist.
        """

        if not names:
            return discover_runtime_dirs(self.config.runtimes_dir)
        selected: list[Path] = []
        for name in names:
            runtime_dir = self.config.runtimes_dir / name
            if not runtime_dir.is_dir():
                raise ManifestError(f"Runtime directory '{runtime_dir}' not found")
            selected.append(runtime_dir)
        return selected

    def build_one(self, runtime_dir: Path) -> tuple[RuntimeDefinition, BundleArtifact, list[str]]:
        """Build and package one runtime, raising on the first fatal error."""

        report = validate_runtime_dir(runtime_dir)
        warnings = [violation.message for violation in report.warnings]
        if not report.ok:
            report.raise_for_errors()
            raise ManifestError("; ".join(violation.message for violation in report.errors))

        manifest = load_manifest(runtime_dir)
        outcome = self.builder.build(manifest, runtime_dir, clean=True)
        warnings.extend(f"optional asset {result.name} missing" for result in outcome.warnings)
        warnings.extend(f"asset {result.name}: {result.detail}" for result in outcome.notes)
        definition = finalize_definition(outcome.bundle_root, outcome.definition)
        write_lockfile(outcome.bundle_root, outcome.isolated_root, definition)
        artifact = package_bundle(
            outcome.bundle_root,
            definition,
            self.config.output_dir,
            epoch=self._epoch,
            guard=self.refuse_registered_mismatch,
        )
        return definition, artifact, warnings

    def refuse_registered_mismatch(self, definition: RuntimeDefinition, sha256: str) -> None:
        """Raise when ``definition`` is already registered with other bytes.

        Raises:
            RegistryConflict: When the registry binds the version to a different checksum.
        """

        existing = self.store.read().registry.entry(definition.name, definition.version)
        if existing is not None and existing.sha256.lower() != sha256:
            raise RegistryConflict(definition.name, definition.version, existing.checksum, f"{CHECKSUM_PREFIX}{sha256}")

    def run_one(self, runtime_dir: Path) -> RuntimeRun:
        run = RuntimeRun(runtime_dir=runtime_dir)
        try:
            run.definition, run.artifact, run.warnings = self.build_one(runtime_dir)
        except (RtpackError, OSError) as exc:
            LOGGER.error("%s: build failed: %s", runtime_dir.name, exc)
            run.error = str(exc)
            return run
        run.status = RunStatus.PASSED
        return run

    def run(self, names: Sequence[str] | None = None) -> list[RuntimeRun]:
        """Build the selected runtimes in parallel and return results in input order."""

        runtime_dirs = self.runtime_dirs(names)
        if not runtime_dirs:
            return []
        workers = max(1, min(self.config.jobs, len(runtime_dirs)))
        results: dict[Path, RuntimeRun] = {}
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_map = {executor.submit(self.run_one, runtime_dir): runtime_dir for runtime_dir in runtime_dirs}
            for future in as_completed(future_map):
                runtime_dir = future_map[future]
                results[runtime_dir] = future.result()
        return [results[runtime_dir] for runtime_dir in runtime_dirs]


__all__ = ["BuildPipeline", "RunStatus", "RuntimeRun"]

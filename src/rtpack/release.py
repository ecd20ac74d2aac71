# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Release a single runtime: gate, package, distribute and register."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .definitions import load_manifest, validate_runtime_dir
from .errors import ManifestError
from .models import BundleArtifact, RuntimeDefinition
from .packager import checksum_path_for, load_artifact
from .pipeline import BuildPipeline
from .process_utils import SubprocessExecutionError, run_command
from .registry import FileRegistryStore, PublishResult, RegistryStore, RegistryUpdater, build_entry, check_publishable

LOGGER = logging.getLogger(__name__)

CommandRunner = Callable[..., object]
_COMMAND_NOT_FOUND = 127


@dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    """Everything produced by one release."""

    definition: RuntimeDefinition
    artifact: BundleArtifact
    publish: PublishResult
    published_path: Path | None = None
    git_tagged: bool = False

    @property
    def tag(self) -> str:
        return self.definition.tag


def tag_message(definition: RuntimeDefinition) -> str:
    return (
        f"Release {definition.name} version {definition.version}\n\n"
        f"Runtime: {definition.name}\n"
        f"Version: {definition.version}\n"
    )


def _copy_atomic(source: Path, directory: Path) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    destination = directory / source.name
    partial = directory / f".partial-{os.getpid()}-{source.name}"
    try:
        shutil.copyfile(source, partial)
        os.replace(partial, destination)
    finally:
        partial.unlink(missing_ok=True)
    return destination


class ReleaseManager:
    """Publish one runtime's artifact under its ``<name>@<version>`` tag.

    The registry is only touched after the archive and sidecar exist, verify
    and (when ``publish_dir`` is configured) have been copied into place.
    """

    def __init__(
        self,
        config: Config,
        *,
        store: RegistryStore | None = None,
        pipeline: BuildPipeline | None = None,
        runner: CommandRunner = run_command,
        repo_root: Path | None = None,
    ) -> None:
        self.config = config
        self.store = store or FileRegistryStore(config.registry_path)
        self.pipeline = pipeline or BuildPipeline(config, store=self.store)
        self.updater = RegistryUpdater(self.store, max_attempts=config.registry_write_retries)
        self._runner = runner
        self._repo_root = repo_root

    def prepare(self, name: str) -> RuntimeDefinition:
        """Run the validation gate for ``name`` and return its draft definition.

        Raises:
            ManifestError: When the runtime directory or manifest is missing or malformed.
            InvalidNameFormat: When the declared name breaks the naming grammar.
            InvalidVersionFormat: When the declared version is not ``MAJOR.MINOR.PATCH``.
        """

        runtime_dir = self.config.runtimes_dir / name
        if not runtime_dir.is_dir():
            raise ManifestError(f"Runtime directory '{runtime_dir}' not found")
        report = validate_runtime_dir(runtime_dir)
        for warning in report.warnings:
            LOGGER.warning("%s: %s", name, warning.message)
        if not report.ok:
            report.raise_for_errors()
            raise ManifestError("; ".join(violation.message for violation in report.errors))
        return load_manifest(runtime_dir).definition()

    def locate_artifact(
        self,
        name: str,
        definition: RuntimeDefinition,
        *,
        rebuild: bool,
    ) -> tuple[RuntimeDefinition, BundleArtifact]:
        archive_path = self.config.output_dir / definition.archive_name
        if rebuild or not archive_path.is_file() or not checksum_path_for(archive_path).is_file():
            LOGGER.info("building %s before release", definition.tag)
            built, artifact, _warnings = self.pipeline.build_one(self.config.runtimes_dir / name)
            return built, artifact
        return definition, load_artifact(archive_path)

    def release(self, name: str, *, rebuild: bool = False, git_tag: bool = False) -> ReleaseOutcome:
        """Release runtime directory ``name``.

        Raises:
            RegistryConflict: When the tag already designates different bytes.
            BundleNotFound: When the artifact or its sidecar disappeared.
            ArchivePackagingFailure: When the archive disagrees with its sidecar.
            RegistryWriteRace: When concurrent publishers exhausted the retries.
            SubprocessExecutionError: When creating the git tag fails.
        """

        definition = self.prepare(name)
        definition, artifact = self.locate_artifact(name, definition, rebuild=rebuild)
        download_url = self.config.download_url(
            name=definition.name,
            version=definition.version,
            filename=artifact.filename,
        )
        entry = build_entry(definition, artifact, download_url)
        check_publishable(self.store.read().registry, definition.name, entry)

        published_path = None
        if self.config.publish_dir is not None:
            published_path = _copy_atomic(artifact.archive_path, self.config.publish_dir)
            _copy_atomic(artifact.checksum_path, self.config.publish_dir)

        result = self.updater.publish(definition.name, entry)
        tagged = self._create_git_tag(definition) if git_tag else False
        return ReleaseOutcome(
            definition=definition,
            artifact=artifact,
            publish=result,
            published_path=published_path,
            git_tagged=tagged,
        )

    def _git(self, args: Sequence[str], *, check: bool = True) -> object:
        command = ["git", *args]
        try:
            return self._runner(command, cwd=self._repo_root, check=check, capture_output=True)
        except FileNotFoundError as exc:
            raise SubprocessExecutionError(command, _COMMAND_NOT_FOUND, None, str(exc)) from exc

    def _create_git_tag(self, definition: RuntimeDefinition) -> bool:
        existing = self._git(["rev-parse", "--verify", "--quiet", f"refs/tags/{definition.tag}"], check=False)
        if getattr(existing, "returncode", 1) == 0:
            LOGGER.info("git tag %s already exists", definition.tag)
            return False
        self._git(["tag", "-a", definition.tag, "-m", tag_message(definition)])
        return True


__all__ = ["ReleaseManager", "ReleaseOutcome", "tag_message"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Bundle directory builder: skeleton, producers and failure classification."""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..definitions import RuntimeManifest, write_runtime_document
from ..errors import CriticalAssetMissing, ManifestError
from ..models import RuntimeDefinition
from ..validation import require_valid_identity
from .assets import AssetResult, AssetStatus
from .producers import BundleSourceProducer, ProduceRequest, producers_for
from .skeleton import ISOLATED_DIRNAME, create_skeleton

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildOutcome:
    """Result of a successful bundle build."""

    definition: RuntimeDefinition
    bundle_root: Path
    results: list[AssetResult] = field(default_factory=list)

    @property
    def isolated_root(self) -> Path:
        return self.bundle_root / ISOLATED_DIRNAME

    @property
    def warnings(self) -> tuple[AssetResult, ...]:
        return tuple(result for result in self.results if result.status is AssetStatus.MISSING_OPTIONAL)

    @property
    def notes(self) -> tuple[AssetResult, ...]:
        """Copied assets whose copy skipped or dereferenced entries."""

        return tuple(result for result in self.results if result.status is AssetStatus.COPIED and result.detail)


def default_build_id() -> str:
    return f"local-build-{int(time.time())}"


class BundleBuilder:
    """Construct the isolated tree of a runtime inside a private work directory.

    Layout: ``<work_dir>/<name>/<version>/`` holding ``runtime.yml`` and the
    ``isolated/`` tree. A missing critical asset aborts the build; missing
    optional assets are logged and reported on :class:`BuildOutcome`.
    """

    def __init__(
        self,
        work_dir: Path,
        *,
        platform: str,
        build_id: str | None = None,
        host_root: Path = Path("/"),
    ) -> None:
        self.work_dir = work_dir
        self.platform = platform
        self.build_id = build_id or default_build_id()
        self.host_root = host_root

    def bundle_root(self, definition: RuntimeDefinition) -> Path:
        return self.work_dir / definition.name / definition.version

    def build(
        self,
        manifest: RuntimeManifest,
        runtime_dir: Path,
        *,
        producers: Sequence[BundleSourceProducer] | None = None,
        clean: bool = False,
    ) -> BuildOutcome:
        """Build the bundle tree for ``manifest``.

        Raises:
            InvalidNameFormat: When the manifest name breaks the naming grammar.
            InvalidVersionFormat: When the manifest version is not ``MAJOR.MINOR.PATCH``.
            ManifestError: When the runtime does not support the build platform.
            CriticalAssetMissing: When a critical asset could not be populated.
        """

        require_valid_identity(manifest.name, manifest.version)
        if manifest.platforms and self.platform not in manifest.platforms:
            supported = ", ".join(manifest.platforms)
            raise ManifestError(f"{manifest.tag} does not support platform '{self.platform}' ({supported})")

        definition = manifest.definition()
        bundle_root = self.bundle_root(definition)
        if clean and bundle_root.exists():
            shutil.rmtree(bundle_root)
        isolated_root = bundle_root / ISOLATED_DIRNAME
        create_skeleton(isolated_root)

        request = ProduceRequest(
            manifest=manifest,
            runtime_dir=runtime_dir,
            isolated_root=isolated_root,
            platform=self.platform,
            build_id=self.build_id,
            host_root=self.host_root,
        )
        chosen = producers if producers is not None else producers_for(manifest, runtime_dir, self.platform)
        results: list[AssetResult] = []
        for producer in chosen:
            LOGGER.info("%s: running %s producer", manifest.tag, producer.name)
            results.extend(producer.produce(request))
        results.extend(self._check_required(manifest, isolated_root))

        self._classify(manifest, results)
        write_runtime_document(definition, bundle_root)
        return BuildOutcome(definition=definition, bundle_root=bundle_root, results=results)

    @staticmethod
    def _check_required(manifest: RuntimeManifest, isolated_root: Path) -> list[AssetResult]:
        results: list[AssetResult] = []
        for relative in manifest.required_paths:
            path = isolated_root / relative.lstrip("/")
            if path.exists():
                results.append(AssetResult(name=relative, status=AssetStatus.COPIED, source=path))
            else:
                results.append(AssetResult.missing(relative, critical=True, detail="required path absent"))
        return results

    @staticmethod
    def _classify(manifest: RuntimeManifest, results: Sequence[AssetResult]) -> None:
        for result in results:
            if result.status is AssetStatus.MISSING_OPTIONAL:
                LOGGER.warning("%s: optional asset %s missing (%s)", manifest.tag, result.name, result.detail)
        critical = tuple(result.name for result in results if result.critical_failure)
        if critical:
            raise CriticalAssetMissing(manifest.tag, critical)


__all__ = ["BuildOutcome", "BundleBuilder", "default_build_id"]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Bundle source producers that populate an isolated tree."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..definitions import RuntimeManifest, setup_scripts
from ..process_utils import SubprocessExecutionError, run_command
from .assets import AssetResult, AssetStatus, evaluate_asset

_COMMAND_NOT_FOUND = 127


@dataclass(frozen=True, slots=True)
class ProduceRequest:
    """Inputs handed to a producer for one runtime build."""

    manifest: RuntimeManifest
    runtime_dir: Path
    isolated_root: Path
    platform: str
    build_id: str
    host_root: Path = Path("/")

    @property
    def architecture(self) -> str:
        return self.platform.rsplit("-", 1)[-1]


class BundleSourceProducer(ABC):
    """Strategy object that fills an isolated tree and reports per-asset results."""

    name: str = "producer"

    @abstractmethod
    def produce(self, request: ProduceRequest) -> list[AssetResult]:
        raise NotImplementedError


class CopyPlanProducer(BundleSourceProducer):
    """Evaluate the manifest's ordered asset plan."""

    name = "copy-plan"

    def produce(self, request: ProduceRequest) -> list[AssetResult]:
        results: list[AssetResult] = []
        for spec in request.manifest.assets:
            results.extend(
                evaluate_asset(
                    spec,
                    isolated_root=request.isolated_root,
                    host_root=request.host_root,
                    runtime_dir=request.runtime_dir,
                ),
            )
        return results


class ScriptProducer(BundleSourceProducer):
    """Run the runtime's ``setup-<platform>.sh`` (or ``setup.sh``) script.

    The script sees ``BUNDLE_ROOT``, ``RUNTIME_NAME``, ``RUNTIME_SPEC``,
    ``BUILD_ID``, ``PLATFORM`` and ``ARCHITECTURE``. A non-zero exit raises
    :class:`~rtpack.process_utils.SubprocessExecutionError`.
    """

    name = "setup-script"

    def __init__(self, script: Path, *, shell: str = "bash", timeout: float | None = None) -> None:
        self.script = script
        self._shell = shell
        self._timeout = timeout

    def produce(self, request: ProduceRequest) -> list[AssetResult]:
        command = [self._shell, str(self.script)]
        try:
            run_command(
                command,
                cwd=request.runtime_dir,
                env=self._environment(request),
                capture_output=True,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise SubprocessExecutionError(command, _COMMAND_NOT_FOUND, None, str(exc)) from exc
        return [AssetResult(name=self.script.name, status=AssetStatus.COPIED, source=self.script)]

    @staticmethod
    def _environment(request: ProduceRequest, base: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ if base is None else base)
        env.update(
            {
                "BUNDLE_ROOT": str(request.isolated_root),
                "RUNTIME_NAME": request.manifest.name,
                "RUNTIME_SPEC": request.manifest.tag,
                "BUILD_ID": request.build_id,
                "PLATFORM": request.platform,
                "ARCHITECTURE": request.architecture,
            },
        )
        return env


def select_setup_script(runtime_dir: Path, platform: str) -> Path | None:
    """Return the most specific setup script for ``platform`` if one exists."""

    scripts = {script.name: script for script in setup_scripts(runtime_dir)}
    for candidate in (f"setup-{platform}.sh", "setup.sh"):
        if candidate in scripts:
            return scripts[candidate]
    return None


def producers_for(manifest: RuntimeManifest, runtime_dir: Path, platform: str) -> Sequence[BundleSourceProducer]:
    """Return the producers for a runtime: setup script first, then the copy plan."""

    producers: list[BundleSourceProducer] = []
    script = select_setup_script(runtime_dir, platform)
    if script is not None:
        producers.append(ScriptProducer(script))
    if manifest.assets:
        producers.append(CopyPlanProducer())
    return producers


__all__ = [
    "BundleSourceProducer",
    "CopyPlanProducer",
    "ProduceRequest",
    "ScriptProducer",
    "producers_for",
    "select_setup_script",
]

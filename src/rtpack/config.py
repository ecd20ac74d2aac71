# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration model and layered loading for the rtpack pipeline."""

from __future__ import annotations

import math
import os
import platform
import re
import tomllib
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError

PYPROJECT_FILENAME: Final[str] = "pyproject.toml"
CONFIG_FILENAME: Final[str] = "rtpack.toml"
PYPROJECT_SECTION: Final[tuple[str, str]] = ("tool", "rtpack")
DEFAULT_DOWNLOAD_TEMPLATE: Final[str] = "{base}/{filename}"

_ENV_VAR_PATTERN = re.compile(r"\$(\w+)|\$\{([^}]+)\}")
_ARCH_ALIASES: Final[dict[str, str]] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}
_PATH_FIELDS: Final[tuple[str, ...]] = (
    "runtimes_dir",
    "output_dir",
    "work_dir",
    "registry_path",
    "publish_dir",
    "cache_dir",
    "install_root",
    "host_root",
)


def default_parallel_jobs() -> int:
    """Return 75% of available CPU cores (minimum of 1)."""

    cores = os.cpu_count() or 1
    return max(1, math.floor(cores * 0.75))


def detect_platform() -> str:
    """Return the host platform tag, e.g. ``ubuntu-amd64``."""

    try:
        distro = platform.freedesktop_os_release().get("ID", "linux")
    except OSError:
        distro = platform.system().lower() or "linux"
    machine = platform.machine().lower()
    return f"{distro}-{_ARCH_ALIASES.get(machine, machine)}"


def _default_cache_dir() -> Path:
    base = os.environ.get("XDG_CACHE_HOME")
    return (Path(base) if base else Path.home() / ".cache") / "rtpack"


class Config(BaseModel):
    """Resolved settings shared by the build, release and resolve commands."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    runtimes_dir: Path = Path("runtimes")
    output_dir: Path = Path("releases")
    work_dir: Path = Path("build/work")
    registry_path: Path = Path("registry.json")
    registry_url: str | None = None
    download_base_url: str = "releases"
    download_url_template: str = DEFAULT_DOWNLOAD_TEMPLATE
    publish_dir: Path | None = None
    cache_dir: Path = Field(default_factory=_default_cache_dir)
    install_root: Path = Path("/opt/rtpack/runtimes")
    host_root: Path = Path("/")
    registry_ttl_seconds: float = Field(default=300.0, ge=0)
    fetch_timeout: float = Field(default=60.0, gt=0)
    fetch_retries: int = Field(default=3, ge=1)
    registry_write_retries: int = Field(default=5, ge=1)
    jobs: int = Field(default_factory=default_parallel_jobs, ge=1)
    platform: str = Field(default_factory=detect_platform)

    def download_url(self, *, name: str, version: str, filename: str) -> str:
        """Render the public download URL of an archive."""

        try:
            return self.download_url_template.format(
                base=self.download_base_url.rstrip("/"),
                tag=f"{name}@{version}",
                name=name,
                version=version,
                filename=filename,
            )
        except (KeyError, IndexError) as exc:
            raise ConfigError(f"Invalid download_url_template: {self.download_url_template!r}") from exc

    @property
    def registry_location(self) -> str:
        """Return where consumers read the registry from."""

        return self.registry_url or str(self.registry_path)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_env_value(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return _ENV_VAR_PATTERN.sub(
            lambda match: env.get(match.group(1) or match.group(2), match.group(0)),
            value,
        )
    if isinstance(value, Mapping):
        return {key: _expand_env_value(item, env) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_value(item, env) for item in value]
    return value


class TomlConfigSource:
    """Load configuration data from a standalone ``rtpack.toml`` document."""

    def __init__(self, path: Path, *, env: Mapping[str, str] | None = None) -> None:
        self.path = path
        self._env = env if env is not None else os.environ

    def load(self) -> Mapping[str, Any]:
        if not self.path.is_file():
            return {}
        data = self._read()
        return _expand_env_value(self._select(data), self._env)

    def _read(self) -> Mapping[str, Any]:
        try:
            with self.path.open("rb") as handle:
                return tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Configuration at {self.path} is not valid TOML: {exc}") from exc

    def _select(self, data: Mapping[str, Any]) -> Mapping[str, Any]:
        return data

    def describe(self) -> str:
        return f"TOML configuration at {self.path}"


class PyProjectConfigSource(TomlConfigSource):
    """Read configuration from ``[tool.rtpack]`` within ``pyproject.toml``."""

    def _select(self, data: Mapping[str, Any]) -> Mapping[str, Any]:
        section: Any = data
        for key in PYPROJECT_SECTION:
            section = section.get(key) if isinstance(section, Mapping) else None
        if section is None:
            return {}
        if not isinstance(section, Mapping):
            raise ConfigError(f"[tool.rtpack] in {self.path} must be a table")
        return section

    def describe(self) -> str:
        return f"pyproject.toml ({self.path})"


def _resolve_paths(data: dict[str, Any], root: Path) -> dict[str, Any]:
    for key in _PATH_FIELDS:
        value = data.get(key)
        if value is None:
            continue
        path = Path(value).expanduser()
        data[key] = path if path.is_absolute() else root / path
    return data


def load_config(
    root: Path,
    *,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Return the configuration for ``root`` merging every layer in precedence order.

    Layers, lowest first: built-in defaults, ``[tool.rtpack]`` in
    ``pyproject.toml``, ``rtpack.toml`` and finally ``overrides`` (CLI options,
    ``None`` values ignored). Relative paths resolve against ``root``.

    Raises:
        ConfigError: When a source is malformed or a value fails validation.
    """

    sources: Sequence[TomlConfigSource] = (
        PyProjectConfigSource(root / PYPROJECT_FILENAME, env=env),
        TomlConfigSource(root / CONFIG_FILENAME, env=env),
    )
    merged: dict[str, Any] = {}
    for source in sources:
        merged = _deep_merge(merged, source.load())
    if overrides:
        merged = _deep_merge(merged, {key: value for key, value in overrides.items() if value is not None})
    defaults = Config.model_fields
    for key in _PATH_FIELDS:
        if key not in merged and key in defaults and isinstance(defaults[key].default, Path):
            merged[key] = defaults[key].default
    try:
        return Config(**_resolve_paths(merged, root.resolve()))
    except ValidationError as exc:
        raise ConfigError(f"Invalid rtpack configuration: {exc}") from exc


__all__ = [
    "CONFIG_FILENAME",
    "Config",
    "PyProjectConfigSource",
    "TomlConfigSource",
    "default_parallel_jobs",
    "detect_platform",
    "load_config",
]

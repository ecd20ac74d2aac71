# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Naming and version grammar shared by every build and release gate."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

from .errors import InvalidNameFormat, InvalidVersionFormat, ManifestValidationError

NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"[a-z0-9.-]+")
VERSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"[0-9]+\.[0-9]+\.[0-9]+")

NAME_RULES: Final[str] = (
    "Runtime names use only lowercase letters (a-z), digits (0-9), dots (.) and hyphens (-); "
    "for example 'openjdk-21' or 'python-3.11-ml'."
)
VERSION_RULES: Final[str] = (
    "Versions follow MAJOR.MINOR.PATCH with numeric parts only and no prefix or suffix; "
    "for example '1.0.0' or '10.15.3'."
)


class Severity(str, Enum):
    """Outcome class of a single validation finding."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class Violation:
    """Single finding raised by the validator."""

    code: str
    message: str
    severity: Severity = Severity.ERROR
    error: ManifestValidationError | None = None


@dataclass(slots=True)
class ValidationReport:
    """Aggregate of errors and warnings for one runtime."""

    subject: str
    violations: list[Violation] = field(default_factory=list)

    @property
    def errors(self) -> tuple[Violation, ...]:
        return tuple(item for item in self.violations if item.severity is Severity.ERROR)

    @property
    def warnings(self) -> tuple[Violation, ...]:
        return tuple(item for item in self.violations if item.severity is Severity.WARNING)

    @property
    def ok(self) -> bool:
        """Return ``True`` when no error-level violation was recorded."""

        return not self.errors

    def add(self, violation: Violation | None) -> None:
        if violation is not None:
            self.violations.append(violation)

    def warn(self, code: str, message: str) -> None:
        self.violations.append(Violation(code=code, message=message, severity=Severity.WARNING))

    def error(self, code: str, message: str) -> None:
        self.violations.append(Violation(code=code, message=message))

    def raise_for_errors(self) -> None:
        """Raise the first structured grammar error, if any.

        Raises:
            ManifestValidationError: When the report holds a name or version violation.
        """

        for violation in self.errors:
            if violation.error is not None:
                raise violation.error


def check_name(name: str) -> Violation | None:
    """Return a violation when ``name`` breaks the runtime naming grammar."""

    if NAME_PATTERN.fullmatch(name):
        return None
    message = f"Invalid runtime name: '{name}'. {NAME_RULES}"
    return Violation(code=InvalidNameFormat.code, message=message, error=InvalidNameFormat(name, message))


def check_version(version: str) -> Violation | None:
    """Return a violation when ``version`` is not a plain semantic version."""

    if VERSION_PATTERN.fullmatch(version):
        return None
    message = f"Invalid version format: '{version}'. {VERSION_RULES}"
    return Violation(
        code=InvalidVersionFormat.code,
        message=message,
        error=InvalidVersionFormat(version, message),
    )


def validate_identity(name: str, version: str) -> ValidationReport:
    """Validate a ``(name, version)`` pair and collect every violation."""

    report = ValidationReport(subject=f"{name}@{version}")
    report.add(check_name(name))
    report.add(check_version(version))
    return report


def require_valid_identity(name: str, version: str) -> None:
    """Raise :class:`InvalidNameFormat` or :class:`InvalidVersionFormat` on bad input."""

    validate_identity(name, version).raise_for_errors()


def is_semantic_version(value: str) -> bool:
    return VERSION_PATTERN.fullmatch(value) is not None


def version_key(version: str) -> tuple[int, int, int]:
    """Return the numeric sort key for a validated ``MAJOR.MINOR.PATCH`` string."""

    if not is_semantic_version(version):
        raise InvalidVersionFormat(version, f"Invalid version format: '{version}'. {VERSION_RULES}")
    major, minor, patch = (int(part) for part in version.split("."))
    return major, minor, patch


__all__ = [
    "NAME_PATTERN",
    "VERSION_PATTERN",
    "Severity",
    "ValidationReport",
    "Violation",
    "check_name",
    "check_version",
    "is_semantic_version",
    "require_valid_identity",
    "validate_identity",
    "version_key",
]

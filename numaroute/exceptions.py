"""
Fatal conditions for a validation run.

Only unmet preconditions live here. Per-interface failures (no device,
no NUMA file, no route file, failed probe) are report lines, not errors.
"""

from __future__ import annotations
from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    SUCCESS = 0
    PRECONDITION = 1
    INTERRUPTED = 130


class NumaRouteError(Exception):
    """Base for errors that abort the whole run."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        exit_code: ExitCode = ExitCode.PRECONDITION,
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.exit_code = exit_code

    def format_error(self) -> str:
        lines = [f"[ERROR] {self.message}"]
        if self.suggestion:
            lines.append(f"        {self.suggestion}")
        return "\n".join(lines)


class InsufficientPrivilegeError(NumaRouteError):
    def __init__(self, euid: int):
        super().__init__(
            "This script must be run as root.",
            suggestion=f"Current effective uid is {euid}; re-run with sudo.",
        )
        self.euid = euid


class InterfaceEnumerationError(NumaRouteError):
    def __init__(self, path: str, cause: Exception):
        super().__init__(
            f"Cannot enumerate network interfaces at {path}: {cause}",
            suggestion="Is sysfs mounted? Check --sysfs-root.",
        )
        self.path = path
        self.cause = cause

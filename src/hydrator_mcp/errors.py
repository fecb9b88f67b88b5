"""Domain-specific error types for hydration commit operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Supported error codes exposed by hydrator tools."""

    WORKSPACE_ERROR = "WORKSPACE_ERROR"
    VERSION_CONTROL_ERROR = "VERSION_CONTROL_ERROR"
    CREDENTIAL_ERROR = "CREDENTIAL_ERROR"
    PATH_CONSTRUCTION_ERROR = "PATH_CONSTRUCTION_ERROR"
    WRITE_ERROR = "WRITE_ERROR"
    TEMPLATE_ERROR = "TEMPLATE_ERROR"
    CANCELLED = "CANCELLED"
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class HydratorError(Exception):
    """Structured exception carrying a stable error contract."""

    code: ErrorCode
    message: str
    suggestion: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    @property
    def step(self) -> str:
        return str(self.details.get("step", ""))

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": "error",
            "error_code": self.code.value,
            "message": self.message,
            "suggestion": self.suggestion or "",
            "details": self.details,
        }


class CodedHydratorError(HydratorError):
    """Base for errors whose code is fixed by their type."""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_suggestion: str = ""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            self.error_code,
            message,
            suggestion or self.default_suggestion or None,
            dict(details or {}),
        )


class WorkspaceError(CodedHydratorError):
    """The per-request workspace could not be allocated or removed."""

    error_code = ErrorCode.WORKSPACE_ERROR
    default_suggestion = "Check that the workspace root exists and is writable."


class VersionControlError(CodedHydratorError):
    """A version control client capability failed."""

    error_code = ErrorCode.VERSION_CONTROL_ERROR
    default_suggestion = "Inspect details.output for the git diagnostics and retry."


class CredentialError(CodedHydratorError):
    """Committer identity could not be resolved."""

    error_code = ErrorCode.CREDENTIAL_ERROR
    default_suggestion = "Check the repository connection info and configured author."


class PathConstructionError(CodedHydratorError):
    """A hydration path is unsafe or malformed."""

    error_code = ErrorCode.PATH_CONSTRUCTION_ERROR
    default_suggestion = "Use a relative path without '..' segments."


class WriteError(CodedHydratorError):
    """Writing manifests, metadata or README failed."""

    error_code = ErrorCode.WRITE_ERROR
    default_suggestion = "Check filesystem permissions and free space."


class TemplateError(CodedHydratorError):
    """README rendering failed."""

    error_code = ErrorCode.TEMPLATE_ERROR
    default_suggestion = "Check that commands, repoURL and drySha are plain strings."


class OperationCancelledError(CodedHydratorError):
    """The caller's deadline expired before the next step could start."""

    error_code = ErrorCode.CANCELLED
    default_suggestion = "Retry with a longer request timeout."


def wrap_step_error(step: str, exc: HydratorError) -> HydratorError:
    """Prefix an error with the failing step and record it in details."""
    if exc.step:
        return exc
    exc.message = f"failed to {step.replace('_', ' ')}: {exc.message}"
    exc.details = {**exc.details, "step": step}
    return exc

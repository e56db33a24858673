"""Error taxonomy for state export and load."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict


@dataclass(frozen=True)
class ErrorDefinition:
    code: str
    message: str


ERROR_DEFINITIONS: Dict[str, ErrorDefinition] = {
    "QUERY_FAILED": ErrorDefinition("QUERY_FAILED", "Failed to read session state from storage."),
    "PARTIAL_DATA": ErrorDefinition("PARTIAL_DATA", "Session changed while it was being exported."),
    "WRITE_FAILED": ErrorDefinition("WRITE_FAILED", "Failed to write the session document."),
    "NO_DESTINATION": ErrorDefinition("NO_DESTINATION", "Session has no file path to save to."),
    "DOCUMENT_READ_FAILED": ErrorDefinition("DOCUMENT_READ_FAILED", "Failed to read the session document."),
    "PACKAGE_PATH_UNRESOLVABLE": ErrorDefinition(
        "PACKAGE_PATH_UNRESOLVABLE", "Package path cannot be made relative to the home directory."
    ),
}


class StateExportError(Exception):
    """Base error carrying a stable code and structured details."""

    default_code = "QUERY_FAILED"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        resolved_code = code or self.default_code
        definition = ERROR_DEFINITIONS.get(resolved_code)
        resolved_message = message or (definition.message if definition else resolved_code)
        super().__init__(resolved_message)
        self.code = resolved_code
        self.message = resolved_message
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class QueryFailure(StateExportError):
    """A storage query rejected while a session was being assembled."""

    default_code = "QUERY_FAILED"


class PartialDataFailure(StateExportError):
    """A parent row vanished between listing it and expanding its children."""

    default_code = "PARTIAL_DATA"


class WriteFailure(StateExportError):
    """The destination could not be written."""

    default_code = "WRITE_FAILED"

    def __init__(
        self,
        message: str | None = None,
        *,
        path: Path | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        if path is not None:
            merged.setdefault("path", str(path))
        super().__init__(message, code=code, details=merged)
        self.path = path


class PackagePathFailure(StateExportError):
    """A package path has no relative form on this machine."""

    default_code = "PACKAGE_PATH_UNRESOLVABLE"


class DocumentReadFailure(StateExportError):
    """A document on disk could not be parsed into a session document."""

    default_code = "DOCUMENT_READ_FAILED"


__all__ = [
    "DocumentReadFailure",
    "ERROR_DEFINITIONS",
    "ErrorDefinition",
    "PartialDataFailure",
    "PackagePathFailure",
    "QueryFailure",
    "StateExportError",
    "WriteFailure",
]

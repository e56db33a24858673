"""Session state export engine."""

from __future__ import annotations

from .assembler import DocumentAssembler
from .config import ExportSettings
from .constants import CREATOR, FEATURE_LEVEL, PathRelativity, SessionKey
from .errors import (
    DocumentReadFailure,
    PackagePathFailure,
    PartialDataFailure,
    QueryFailure,
    StateExportError,
    WriteFailure,
)
from .models import StateDocument
from .paths import ResolvedPackagePath, absolutize_package_path, resolve_package_path
from .reader import LoadedDocument, read_document
from .writer import StateExporter, write_document

__all__ = [
    "CREATOR",
    "DocumentAssembler",
    "DocumentReadFailure",
    "ExportSettings",
    "FEATURE_LEVEL",
    "LoadedDocument",
    "PackagePathFailure",
    "PartialDataFailure",
    "PathRelativity",
    "QueryFailure",
    "ResolvedPackagePath",
    "SessionKey",
    "StateDocument",
    "StateExportError",
    "StateExporter",
    "WriteFailure",
    "absolutize_package_path",
    "read_document",
    "resolve_package_path",
    "write_document",
]

"""Load a session document back from disk.

Only the document side of the import path lives here: parse, validate and
turn portable package paths back into absolute ones. Writing the result into
session storage is the importer's job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from .config import ExportSettings
from .errors import DocumentReadFailure
from .models import StateDocument
from .paths import PathLike, absolutize_package_path

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LoadedDocument:
    document: StateDocument
    path: Path
    package_paths: tuple[str, ...]


def read_document(path: PathLike, *, settings: ExportSettings | None = None) -> LoadedDocument:
    settings = settings or ExportSettings()
    source = Path(path)
    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DocumentReadFailure(
            f"Unable to read session document: {exc}",
            details={"path": str(source)},
        ) from exc

    try:
        document = StateDocument.model_validate(raw)
    except ValidationError as exc:
        raise DocumentReadFailure(
            "Session document does not match the expected schema.",
            details={"path": str(source), "errors": exc.errors(include_url=False)},
        ) from exc

    if document.feature_level > settings.feature_level:
        LOGGER.warning(
            "Document %s was written with feature level %s, newer than supported level %s",
            source,
            document.feature_level,
            settings.feature_level,
        )

    package_paths = tuple(
        absolutize_package_path(
            package.path_relativity,
            package.path,
            source,
            home_dir=settings.resolved_home_dir,
        )
        for package in document.package
    )
    return LoadedDocument(document=document, path=source, package_paths=package_paths)


__all__ = ["LoadedDocument", "read_document"]

"""Portable package path resolution.

Package files referenced by a session are stored with absolute paths. A
document must be movable between machines, so each reference is rewritten
relative to either the document's own directory or the user's home directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .constants import PathRelativity
from .errors import PackagePathFailure

PathLike = Union[str, Path]


@dataclass(frozen=True, slots=True)
class ResolvedPackagePath:
    path_relativity: PathRelativity
    path: str


def _home(home_dir: PathLike | None) -> str:
    return os.fspath(home_dir) if home_dir is not None else os.path.expanduser("~")


def resolve_package_path(
    absolute_path: PathLike,
    reference_document_path: PathLike | None = None,
    *,
    home_dir: PathLike | None = None,
) -> ResolvedPackagePath:
    """Return the portable form of ``absolute_path``.

    Document-relative wins whenever a reference document is known and the
    relative path is non-empty. Everything else is expressed relative to the
    home directory, even when that needs ``..`` segments.
    """

    package = os.fspath(absolute_path)
    if reference_document_path is not None:
        document_dir = os.path.dirname(os.fspath(reference_document_path))
        try:
            relative = os.path.relpath(package, document_dir or os.curdir)
        except ValueError:
            # Different drive than the document on Windows.
            relative = ""
        if relative and relative != os.curdir:
            return ResolvedPackagePath(PathRelativity.RELATIVE_TO_DOCUMENT, relative)

    home = _home(home_dir)
    try:
        relative = os.path.relpath(package, home)
    except ValueError as exc:
        raise PackagePathFailure(
            f"Package {package} cannot be made relative to {home}: {exc}",
            details={"package_path": package, "home_dir": home},
        ) from exc
    return ResolvedPackagePath(PathRelativity.RELATIVE_TO_HOME, relative)


def absolutize_package_path(
    path_relativity: PathRelativity | str,
    path: PathLike,
    document_path: PathLike | None = None,
    *,
    home_dir: PathLike | None = None,
) -> str:
    """Turn a stored package reference back into an absolute path on this machine."""

    relativity = PathRelativity(path_relativity)
    stored = os.fspath(path)
    if relativity is PathRelativity.ABSOLUTE:
        return os.path.normpath(stored)
    if relativity is PathRelativity.RELATIVE_TO_DOCUMENT:
        if document_path is None:
            raise ValueError("A document path is required to resolve a document-relative package.")
        base = os.path.dirname(os.path.abspath(os.fspath(document_path)))
    else:
        base = _home(home_dir)
    return os.path.normpath(os.path.join(base, stored))


def to_posix(path: PathLike) -> str:
    """Return a forward-slash string regardless of host platform."""
    return Path(path).as_posix()


__all__ = [
    "PathLike",
    "ResolvedPackagePath",
    "absolutize_package_path",
    "resolve_package_path",
    "to_posix",
]

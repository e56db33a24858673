"""Schema and version constants for exported session documents."""

from __future__ import annotations

from enum import Enum
from typing import Final

FEATURE_LEVEL: Final[int] = 45
CREATOR: Final[str] = "zap"
JSON_INDENT: Final[int] = 2


class PathRelativity(str, Enum):
    """Basis used to make a package path portable across machines."""

    RELATIVE_TO_DOCUMENT = "relativeToZap"
    RELATIVE_TO_HOME = "relativeToUserHome"
    ABSOLUTE = "absolute"


class SessionKey(str, Enum):
    """Session key/value entries with meaning to the export engine."""

    FILE_PATH = "filePath"


# Keys that describe where the session lives on this machine. They are never
# written into a document; the location is recovered from the package paths.
RESERVED_SESSION_KEYS: Final[frozenset[str]] = frozenset({SessionKey.FILE_PATH.value})


__all__ = [
    "CREATOR",
    "FEATURE_LEVEL",
    "JSON_INDENT",
    "PathRelativity",
    "RESERVED_SESSION_KEYS",
    "SessionKey",
]

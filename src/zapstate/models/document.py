"""Public shape of an exported session document."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..constants import PathRelativity

# Identifiers that only exist to join rows in storage.
JOIN_KEYS: frozenset[str] = frozenset({"endpointTypeId", "endpointClusterId", "endpointTypeRef"})


class _ScalarRecord(BaseModel):
    """Record carrying whatever scalar columns the query layer returns."""

    model_config = ConfigDict(extra="allow", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _reject_join_keys(cls, data: Any) -> Any:
        if isinstance(data, dict):
            leaked = sorted(JOIN_KEYS.intersection(data))
            if leaked:
                msg = f"Storage identifiers must not be exported: {', '.join(leaked)}."
                raise ValueError(msg)
        return data


class CommandRecord(_ScalarRecord):
    """Command enabled on an endpoint type cluster."""


class AttributeRecord(_ScalarRecord):
    """Attribute configured on an endpoint type cluster."""


class ClusterRecord(_ScalarRecord):
    """Cluster of an endpoint type with its commands and attributes."""

    commands: tuple[CommandRecord, ...] = ()
    attributes: tuple[AttributeRecord, ...] = ()


class EndpointTypeRecord(_ScalarRecord):
    """Reusable device template composed of clusters."""

    clusters: tuple[ClusterRecord, ...] = ()


class EndpointRecord(_ScalarRecord):
    """Endpoint instance; ``endpointTypeIndex`` points into ``endpointTypes``."""


class KeyValuePair(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    value: Any = None


class PackageReference(BaseModel):
    """Package file referenced by a session, stored with a portable path."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path_relativity: PathRelativity = Field(alias="pathRelativity")
    path: str
    version: Any = None
    type: str | None = None

    @field_validator("path")
    @classmethod
    def _validate_path(cls, value: str) -> str:
        if not value:
            raise ValueError("Package path must not be empty.")
        return value


class StateDocument(BaseModel):
    """Self-contained, versioned snapshot of an editing session."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    feature_level: int = Field(alias="featureLevel", ge=0)
    creator: str
    key_value_pairs: tuple[KeyValuePair, ...] = Field(default=(), alias="keyValuePairs")
    package: tuple[PackageReference, ...] = ()
    endpoint_types: tuple[EndpointTypeRecord, ...] = Field(default=(), alias="endpointTypes")
    endpoints: tuple[EndpointRecord, ...] = ()
    log: tuple[Any, ...] | None = None

    def to_payload(self, *, include_log: bool = True) -> dict[str, Any]:
        """Return the JSON-ready mapping written to disk."""

        payload = self.model_dump(mode="json", by_alias=True)
        if not include_log or self.log is None:
            payload.pop("log", None)
        return payload


__all__ = [
    "AttributeRecord",
    "ClusterRecord",
    "CommandRecord",
    "EndpointRecord",
    "EndpointTypeRecord",
    "JOIN_KEYS",
    "KeyValuePair",
    "PackageReference",
    "StateDocument",
]

"""Transient records that still carry storage join identifiers.

Drafts exist only while a document is being assembled. Each one is turned into
its public record by ``finalize`` once its children have been fetched, so the
identifier never reaches the exported document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from ..errors import QueryFailure
from .document import (
    AttributeRecord,
    ClusterRecord,
    CommandRecord,
    EndpointRecord,
    EndpointTypeRecord,
)

ENDPOINT_TYPE_ID = "endpointTypeId"
ENDPOINT_CLUSTER_ID = "endpointClusterId"
ENDPOINT_TYPE_REF = "endpointTypeRef"


def _split_identifier(row: Mapping[str, Any], key: str, entity: str) -> tuple[Any, dict[str, Any]]:
    fields = dict(row)
    if fields.get(key) is None:
        raise QueryFailure(
            f"Storage row for {entity} is missing {key}.",
            details={"entity": entity, "row": {k: v for k, v in fields.items() if k != key}},
        )
    identifier = fields.pop(key)
    return identifier, fields


@dataclass(frozen=True, slots=True)
class ClusterDraft:
    endpoint_cluster_id: Any
    fields: Mapping[str, Any]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ClusterDraft":
        identifier, fields = _split_identifier(row, ENDPOINT_CLUSTER_ID, "cluster")
        return cls(endpoint_cluster_id=identifier, fields=fields)

    def finalize(
        self,
        commands: Iterable[Mapping[str, Any]],
        attributes: Iterable[Mapping[str, Any]],
    ) -> ClusterRecord:
        return ClusterRecord(
            **self.fields,
            commands=tuple(CommandRecord(**dict(row)) for row in commands),
            attributes=tuple(AttributeRecord(**dict(row)) for row in attributes),
        )


@dataclass(frozen=True, slots=True)
class EndpointTypeDraft:
    endpoint_type_id: Any
    fields: Mapping[str, Any]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EndpointTypeDraft":
        identifier, fields = _split_identifier(row, ENDPOINT_TYPE_ID, "endpoint type")
        return cls(endpoint_type_id=identifier, fields=fields)

    def as_row(self) -> dict[str, Any]:
        """Row shape handed back to the query layer when listing endpoints."""

        return {ENDPOINT_TYPE_ID: self.endpoint_type_id, **self.fields}

    def finalize(self, clusters: Iterable[ClusterRecord]) -> EndpointTypeRecord:
        return EndpointTypeRecord(**self.fields, clusters=tuple(clusters))


def strip_endpoint_type_ref(row: Mapping[str, Any]) -> EndpointRecord:
    """Drop the endpoint's foreign key to its type and build the public record."""

    fields = {key: value for key, value in row.items() if key != ENDPOINT_TYPE_REF}
    return EndpointRecord(**fields)


__all__ = [
    "ClusterDraft",
    "ENDPOINT_CLUSTER_ID",
    "ENDPOINT_TYPE_ID",
    "ENDPOINT_TYPE_REF",
    "EndpointTypeDraft",
    "strip_endpoint_type_ref",
]

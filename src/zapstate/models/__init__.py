"""Pydantic models and dataclasses for session documents."""

from .document import (
    AttributeRecord,
    ClusterRecord,
    CommandRecord,
    EndpointRecord,
    EndpointTypeRecord,
    KeyValuePair,
    PackageReference,
    StateDocument,
)
from .drafts import ClusterDraft, EndpointTypeDraft, strip_endpoint_type_ref

__all__ = [
    "AttributeRecord",
    "ClusterDraft",
    "ClusterRecord",
    "CommandRecord",
    "EndpointRecord",
    "EndpointTypeDraft",
    "EndpointTypeRecord",
    "KeyValuePair",
    "PackageReference",
    "StateDocument",
    "strip_endpoint_type_ref",
]

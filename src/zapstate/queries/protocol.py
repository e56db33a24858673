"""Contract of the relational query layer the export engine reads from."""

from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

Row = dict[str, Any]


@runtime_checkable
class SessionQueries(Protocol):
    """Entity-scoped reads (and the two session updates) used during export.

    Every method is a coroutine and may be awaited concurrently with the
    others. Rows use the field names of the exported document; the join
    identifiers ``endpointTypeId``, ``endpointClusterId`` and
    ``endpointTypeRef`` are included where noted.
    """

    async def list_endpoint_types(self, session_id: int) -> Sequence[Row]:
        """Endpoint types of the session, each with ``endpointTypeId``."""

    async def list_clusters(self, endpoint_type_id: Any) -> Sequence[Row]:
        """Clusters of an endpoint type, each with ``endpointClusterId``."""

    async def list_commands(self, endpoint_type_id: Any, endpoint_cluster_id: Any) -> Sequence[Row]:
        ...

    async def list_attributes(self, endpoint_type_id: Any, endpoint_cluster_id: Any) -> Sequence[Row]:
        ...

    async def list_endpoints(self, session_id: int, endpoint_types: Sequence[Row]) -> Sequence[Row]:
        """Endpoints of the session, each with ``endpointTypeRef``.

        ``endpoint_types`` is the listing returned by ``list_endpoint_types``
        and is used to compute each endpoint's ``endpointTypeIndex``.
        """

    async def list_packages(self, session_id: int) -> Sequence[Row]:
        """Packages with absolute ``path``, ``version`` and ``type``."""

    async def list_key_values(self, session_id: int) -> Sequence[Row]:
        ...

    async def read_log(self, session_id: int) -> Sequence[Any]:
        ...

    async def mark_session_clean(self, session_id: int) -> None:
        ...

    async def set_session_key(self, session_id: int, key: str, value: Any) -> None:
        ...


__all__ = ["Row", "SessionQueries"]

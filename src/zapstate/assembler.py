"""Assemble a session document from the relational query layer.

The endpoint type tree is fetched as a task tree: one task per endpoint type,
one per cluster below it, and one per leaf listing (commands, attributes).
Every level joins on ``asyncio.gather`` over tasks created up front, so
results land in the slot of the row that requested them no matter which
query answers first. Key/value pairs, packages, the log and the endpoint
listing run alongside the tree.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Iterable, Sequence, TypeVar

from .config import ExportSettings
from .constants import RESERVED_SESSION_KEYS, SessionKey
from .errors import QueryFailure, StateExportError
from .models import (
    ClusterDraft,
    ClusterRecord,
    EndpointRecord,
    EndpointTypeDraft,
    EndpointTypeRecord,
    KeyValuePair,
    PackageReference,
    StateDocument,
    strip_endpoint_type_ref,
)
from .paths import PathLike, resolve_package_path
from .queries import Row, SessionQueries

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_in_order(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """Run ``awaitables`` concurrently and return results in request order.

    The first failure cancels the siblings that are still running and is
    re-raised once they have settled.
    """

    tasks: list[asyncio.Future[T]] = []
    try:
        for awaitable in awaitables:
            tasks.append(asyncio.ensure_future(awaitable))
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_query(awaitable: Awaitable[T], *, query: str, **context: Any) -> T:
    """Await a collaborator call, tagging failures with the entity being expanded."""

    try:
        return await awaitable
    except StateExportError as exc:
        exc.details.setdefault("query", query)
        for key, value in context.items():
            exc.details.setdefault(key, value)
        raise
    except Exception as exc:
        raise QueryFailure(
            f"Query {query} failed: {exc}",
            details={"query": query, **context},
        ) from exc


class DocumentAssembler:
    """Build a :class:`StateDocument` for one session."""

    def __init__(self, queries: SessionQueries, settings: ExportSettings | None = None) -> None:
        self._queries = queries
        self._settings = settings or ExportSettings()

    async def assemble(
        self,
        session_id: int,
        *,
        include_log: bool = True,
        reference_path: PathLike | None = None,
    ) -> StateDocument:
        """Read the whole session and return its document.

        ``reference_path`` is where the document will live; package paths are
        made relative to it. When omitted, the session's stored file path is
        used, and home-relative paths when the session has none.
        """

        LOGGER.info("Exporting data for session %s", session_id)
        tree_task = asyncio.ensure_future(self._endpoint_tree(session_id))
        settings_task = asyncio.ensure_future(self._settings_and_packages(session_id, reference_path))
        log_task = asyncio.ensure_future(self._log(session_id)) if include_log else None

        branches: list[asyncio.Future[Any]] = [tree_task, settings_task]
        if log_task is not None:
            branches.append(log_task)
        await gather_in_order(branches)

        endpoint_types, endpoints = tree_task.result()
        key_value_pairs, packages = settings_task.result()
        return StateDocument(
            feature_level=self._settings.feature_level,
            creator=self._settings.creator,
            key_value_pairs=key_value_pairs,
            package=packages,
            endpoint_types=endpoint_types,
            endpoints=endpoints,
            log=tuple(log_task.result()) if log_task is not None else None,
        )

    async def _endpoint_tree(
        self, session_id: int
    ) -> tuple[list[EndpointTypeRecord], list[EndpointRecord]]:
        rows = await run_query(
            self._queries.list_endpoint_types(session_id),
            query="list_endpoint_types",
            session_id=session_id,
        )
        drafts = [EndpointTypeDraft.from_row(row) for row in rows]
        listing = [draft.as_row() for draft in drafts]

        endpoints_task = asyncio.ensure_future(
            run_query(
                self._queries.list_endpoints(session_id, listing),
                query="list_endpoints",
                session_id=session_id,
            )
        )
        types_task = asyncio.ensure_future(
            gather_in_order(self._expand_endpoint_type(draft) for draft in drafts)
        )
        endpoint_types, endpoint_rows = await gather_in_order([types_task, endpoints_task])
        endpoints = [strip_endpoint_type_ref(row) for row in endpoint_rows]
        LOGGER.debug(
            "Assembled %s endpoint types and %s endpoints for session %s",
            len(endpoint_types),
            len(endpoints),
            session_id,
        )
        return endpoint_types, endpoints

    async def _expand_endpoint_type(self, draft: EndpointTypeDraft) -> EndpointTypeRecord:
        rows = await run_query(
            self._queries.list_clusters(draft.endpoint_type_id),
            query="list_clusters",
            endpoint_type_id=draft.endpoint_type_id,
        )
        cluster_drafts = [ClusterDraft.from_row(row) for row in rows]
        clusters = await gather_in_order(
            self._expand_cluster(draft.endpoint_type_id, cluster_draft) for cluster_draft in cluster_drafts
        )
        return draft.finalize(clusters)

    async def _expand_cluster(self, endpoint_type_id: Any, draft: ClusterDraft) -> ClusterRecord:
        context = {
            "endpoint_type_id": endpoint_type_id,
            "endpoint_cluster_id": draft.endpoint_cluster_id,
        }
        commands, attributes = await gather_in_order(
            [
                run_query(
                    self._queries.list_commands(endpoint_type_id, draft.endpoint_cluster_id),
                    query="list_commands",
                    **context,
                ),
                run_query(
                    self._queries.list_attributes(endpoint_type_id, draft.endpoint_cluster_id),
                    query="list_attributes",
                    **context,
                ),
            ]
        )
        return draft.finalize(commands, attributes)

    async def _settings_and_packages(
        self,
        session_id: int,
        reference_path: PathLike | None,
    ) -> tuple[list[KeyValuePair], list[PackageReference]]:
        packages_task = asyncio.ensure_future(
            run_query(
                self._queries.list_packages(session_id),
                query="list_packages",
                session_id=session_id,
            )
        )
        try:
            rows = await run_query(
                self._queries.list_key_values(session_id),
                query="list_key_values",
                session_id=session_id,
            )
        except BaseException:
            packages_task.cancel()
            await asyncio.gather(packages_task, return_exceptions=True)
            raise
        LOGGER.debug("Retrieved session keys: %s", len(rows))

        stored_file_path: str | None = None
        key_value_pairs: list[KeyValuePair] = []
        for row in rows:
            if row["key"] == SessionKey.FILE_PATH.value:
                stored_file_path = row["value"]
            if row["key"] in RESERVED_SESSION_KEYS:
                continue
            key_value_pairs.append(KeyValuePair(key=row["key"], value=row.get("value")))

        document_path = reference_path if reference_path is not None else stored_file_path
        package_rows = await packages_task
        return key_value_pairs, self._resolve_packages(package_rows, document_path)

    def _resolve_packages(
        self,
        rows: Sequence[Row],
        document_path: PathLike | None,
    ) -> list[PackageReference]:
        home_dir = self._settings.resolved_home_dir
        packages: list[PackageReference] = []
        for row in rows:
            resolved = resolve_package_path(row["path"], document_path, home_dir=home_dir)
            packages.append(
                PackageReference(
                    path_relativity=resolved.path_relativity,
                    path=resolved.path,
                    version=row.get("version"),
                    type=row.get("type"),
                )
            )
        return packages

    async def _log(self, session_id: int) -> Sequence[Any]:
        return await run_query(
            self._queries.read_log(session_id),
            query="read_log",
            session_id=session_id,
        )


__all__ = ["DocumentAssembler", "gather_in_order", "run_query"]

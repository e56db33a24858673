"""Write assembled documents to disk and finalize the session."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .assembler import DocumentAssembler, run_query
from .config import ExportSettings
from .constants import SessionKey
from .errors import StateExportError, WriteFailure
from .models import StateDocument
from .paths import PathLike, to_posix
from .persistence import write_json_atomic
from .queries import SessionQueries

LOGGER = logging.getLogger(__name__)


def write_document(
    document: StateDocument,
    destination: PathLike,
    *,
    remove_log: bool = False,
    durable: bool = True,
) -> Path:
    """Serialize ``document`` to ``destination`` and return the written path.

    The document itself is left untouched; ``remove_log`` only affects what
    lands on disk. Any I/O error surfaces as :class:`WriteFailure` and no
    partially written file is left at ``destination``.
    """

    target = Path(destination)
    payload = document.to_payload(include_log=not remove_log)
    try:
        write_json_atomic(target, payload, durable=durable)
    except OSError as exc:
        raise WriteFailure(
            f"Failed to write session document: {exc}",
            path=target,
            details={"error": str(exc)},
        ) from exc
    return target


class StateExporter:
    """Export a session into a document file and mark it clean on success."""

    def __init__(
        self,
        queries: SessionQueries,
        *,
        settings: ExportSettings | None = None,
    ) -> None:
        self._queries = queries
        self._settings = settings or ExportSettings()
        self._assembler = DocumentAssembler(queries, self._settings)

    @property
    def assembler(self) -> DocumentAssembler:
        return self._assembler

    async def export_to_file(
        self,
        session_id: int,
        destination: PathLike,
        *,
        remove_log: bool | None = None,
    ) -> Path:
        """Write the session to ``destination``; returns the path written."""

        if remove_log is None:
            remove_log = not self._settings.include_log
        target = Path(destination)
        LOGGER.debug("Writing state from session %s into file %s", session_id, target)

        try:
            document = await self._assembler.assemble(
                session_id,
                include_log=not remove_log,
                reference_path=target,
            )
            written = await asyncio.to_thread(
                write_document,
                document,
                target,
                remove_log=remove_log,
                durable=self._settings.durable_writes,
            )
        except StateExportError as exc:
            self._log_failure(session_id, exc)
            raise

        try:
            await run_query(
                self._queries.mark_session_clean(session_id),
                query="mark_session_clean",
                session_id=session_id,
            )
        except StateExportError as exc:
            exc.details.setdefault("path", to_posix(written))
            self._log_failure(session_id, exc)
            raise
        LOGGER.info(
            "Exported session %s",
            session_id,
            extra={"extra_payload": {"session_id": session_id, "path": to_posix(written)}},
        )
        return written

    async def save(
        self,
        session_id: int,
        destination: PathLike | None = None,
        *,
        remove_log: bool | None = None,
    ) -> Path:
        """Save to the session's own file, or to ``destination`` for "save as"."""

        if destination is None:
            stored = await self._stored_file_path(session_id)
            if not stored:
                raise WriteFailure(
                    "Session has no file path; choose a destination.",
                    code="NO_DESTINATION",
                    details={"session_id": session_id},
                )
            return await self.export_to_file(session_id, stored, remove_log=remove_log)

        written = await self.export_to_file(session_id, destination, remove_log=remove_log)
        await self._queries.set_session_key(session_id, SessionKey.FILE_PATH.value, str(written))
        return written

    @staticmethod
    def _log_failure(session_id: int, exc: StateExportError) -> None:
        LOGGER.warning(
            "Export of session %s failed: %s",
            session_id,
            exc.message,
            extra={"extra_payload": {"session_id": session_id, **exc.to_payload()}},
        )

    async def _stored_file_path(self, session_id: int) -> str | None:
        rows = await run_query(
            self._queries.list_key_values(session_id),
            query="list_key_values",
            session_id=session_id,
        )
        for row in rows:
            if row["key"] == SessionKey.FILE_PATH.value:
                return row.get("value")
        return None


__all__ = ["StateExporter", "write_document"]

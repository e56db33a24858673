"""SQLite implementation of the session query layer on top of aiosqlite."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Sequence

import aiosqlite

from ..errors import PartialDataFailure
from .protocol import Row

LOGGER = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS session (
    session_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_key TEXT NOT NULL UNIQUE,
    dirty INTEGER NOT NULL DEFAULT 1,
    creation_time TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS session_key_value (
    session_ref INTEGER NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    key TEXT NOT NULL,
    value TEXT,
    PRIMARY KEY (session_ref, key)
);
CREATE TABLE IF NOT EXISTS package (
    package_id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL UNIQUE,
    version TEXT,
    type TEXT
);
CREATE TABLE IF NOT EXISTS session_package (
    session_ref INTEGER NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    package_ref INTEGER NOT NULL REFERENCES package(package_id) ON DELETE CASCADE,
    enabled INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (session_ref, package_ref)
);
CREATE TABLE IF NOT EXISTS endpoint_type (
    endpoint_type_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_ref INTEGER NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    device_type_name TEXT,
    device_type_code INTEGER,
    device_type_profile_id INTEGER
);
CREATE TABLE IF NOT EXISTS endpoint_type_cluster (
    endpoint_type_cluster_id INTEGER PRIMARY KEY AUTOINCREMENT,
    endpoint_type_ref INTEGER NOT NULL REFERENCES endpoint_type(endpoint_type_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    code INTEGER NOT NULL,
    mfg_code INTEGER,
    define_name TEXT,
    side TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS endpoint_type_command (
    endpoint_type_command_id INTEGER PRIMARY KEY AUTOINCREMENT,
    endpoint_type_ref INTEGER NOT NULL REFERENCES endpoint_type(endpoint_type_id) ON DELETE CASCADE,
    endpoint_type_cluster_ref INTEGER NOT NULL
        REFERENCES endpoint_type_cluster(endpoint_type_cluster_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    code INTEGER NOT NULL,
    mfg_code INTEGER,
    source TEXT,
    incoming INTEGER NOT NULL DEFAULT 1,
    outgoing INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS endpoint_type_attribute (
    endpoint_type_attribute_id INTEGER PRIMARY KEY AUTOINCREMENT,
    endpoint_type_ref INTEGER NOT NULL REFERENCES endpoint_type(endpoint_type_id) ON DELETE CASCADE,
    endpoint_type_cluster_ref INTEGER NOT NULL
        REFERENCES endpoint_type_cluster(endpoint_type_cluster_id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    code INTEGER NOT NULL,
    mfg_code INTEGER,
    side TEXT,
    type TEXT,
    included INTEGER NOT NULL DEFAULT 1,
    storage_option TEXT,
    singleton INTEGER NOT NULL DEFAULT 0,
    bounded INTEGER NOT NULL DEFAULT 0,
    default_value TEXT,
    reportable INTEGER NOT NULL DEFAULT 0,
    min_interval INTEGER,
    max_interval INTEGER,
    reportable_change INTEGER
);
CREATE TABLE IF NOT EXISTS endpoint (
    endpoint_row_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_ref INTEGER NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    endpoint_type_ref INTEGER REFERENCES endpoint_type(endpoint_type_id) ON DELETE SET NULL,
    endpoint_identifier INTEGER NOT NULL,
    profile INTEGER,
    network_identifier INTEGER
);
CREATE TABLE IF NOT EXISTS session_log (
    session_log_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_ref INTEGER NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    timestamp TEXT NOT NULL,
    log TEXT NOT NULL
);
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SqliteSessionQueries:
    """Read session state from a shared aiosqlite connection.

    aiosqlite runs statements one at a time on its worker thread, so
    concurrent callers simply queue behind each other.
    """

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def _fetch(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        async with self.db.execute(query, tuple(params)) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def _exists(self, query: str, params: Sequence[Any]) -> bool:
        async with self.db.execute(query, tuple(params)) as cur:
            return await cur.fetchone() is not None

    async def list_endpoint_types(self, session_id: int) -> list[Row]:
        return await self._fetch(
            """
            SELECT endpoint_type_id AS endpointTypeId,
                   name,
                   device_type_name AS deviceTypeName,
                   device_type_code AS deviceTypeCode,
                   device_type_profile_id AS deviceTypeProfileId
            FROM endpoint_type
            WHERE session_ref = ?
            ORDER BY endpoint_type_id
            """,
            (session_id,),
        )

    async def list_clusters(self, endpoint_type_id: Any) -> list[Row]:
        if not await self._exists(
            "SELECT 1 FROM endpoint_type WHERE endpoint_type_id = ?", (endpoint_type_id,)
        ):
            raise PartialDataFailure(
                "Endpoint type disappeared while its clusters were being exported.",
                details={"endpoint_type_id": endpoint_type_id},
            )
        return await self._fetch(
            """
            SELECT endpoint_type_cluster_id AS endpointClusterId,
                   name,
                   code,
                   mfg_code AS mfgCode,
                   define_name AS "define",
                   side,
                   enabled
            FROM endpoint_type_cluster
            WHERE endpoint_type_ref = ?
            ORDER BY code, side, endpoint_type_cluster_id
            """,
            (endpoint_type_id,),
        )

    async def _require_cluster(self, endpoint_type_id: Any, endpoint_cluster_id: Any) -> None:
        if not await self._exists(
            """
            SELECT 1 FROM endpoint_type_cluster
            WHERE endpoint_type_cluster_id = ? AND endpoint_type_ref = ?
            """,
            (endpoint_cluster_id, endpoint_type_id),
        ):
            raise PartialDataFailure(
                "Cluster disappeared while its contents were being exported.",
                details={
                    "endpoint_type_id": endpoint_type_id,
                    "endpoint_cluster_id": endpoint_cluster_id,
                },
            )

    async def list_commands(self, endpoint_type_id: Any, endpoint_cluster_id: Any) -> list[Row]:
        await self._require_cluster(endpoint_type_id, endpoint_cluster_id)
        return await self._fetch(
            """
            SELECT name,
                   code,
                   mfg_code AS mfgCode,
                   source,
                   incoming,
                   outgoing
            FROM endpoint_type_command
            WHERE endpoint_type_ref = ? AND endpoint_type_cluster_ref = ?
            ORDER BY code, endpoint_type_command_id
            """,
            (endpoint_type_id, endpoint_cluster_id),
        )

    async def list_attributes(self, endpoint_type_id: Any, endpoint_cluster_id: Any) -> list[Row]:
        await self._require_cluster(endpoint_type_id, endpoint_cluster_id)
        return await self._fetch(
            """
            SELECT name,
                   code,
                   mfg_code AS mfgCode,
                   side,
                   type,
                   included,
                   storage_option AS storageOption,
                   singleton,
                   bounded,
                   default_value AS defaultValue,
                   reportable,
                   min_interval AS minInterval,
                   max_interval AS maxInterval,
                   reportable_change AS reportableChange
            FROM endpoint_type_attribute
            WHERE endpoint_type_ref = ? AND endpoint_type_cluster_ref = ?
            ORDER BY code, endpoint_type_attribute_id
            """,
            (endpoint_type_id, endpoint_cluster_id),
        )

    async def list_endpoints(self, session_id: int, endpoint_types: Sequence[Row]) -> list[Row]:
        positions = {row["endpointTypeId"]: index for index, row in enumerate(endpoint_types)}
        rows = await self._fetch(
            """
            SELECT e.endpoint_type_ref AS endpointTypeRef,
                   et.name AS endpointTypeName,
                   e.profile AS profileId,
                   e.endpoint_identifier AS endpointId,
                   e.network_identifier AS networkId
            FROM endpoint AS e
            LEFT JOIN endpoint_type AS et ON et.endpoint_type_id = e.endpoint_type_ref
            WHERE e.session_ref = ?
            ORDER BY e.endpoint_identifier, e.endpoint_row_id
            """,
            (session_id,),
        )
        for row in rows:
            row["endpointTypeIndex"] = positions.get(row["endpointTypeRef"], -1)
        return rows

    async def list_packages(self, session_id: int) -> list[Row]:
        return await self._fetch(
            """
            SELECT p.path, p.version, p.type
            FROM session_package AS sp
            JOIN package AS p ON p.package_id = sp.package_ref
            WHERE sp.session_ref = ? AND sp.enabled = 1
            ORDER BY p.package_id
            """,
            (session_id,),
        )

    async def list_key_values(self, session_id: int) -> list[Row]:
        return await self._fetch(
            "SELECT key, value FROM session_key_value WHERE session_ref = ? ORDER BY key",
            (session_id,),
        )

    async def read_log(self, session_id: int) -> list[Row]:
        return await self._fetch(
            """
            SELECT timestamp, log
            FROM session_log
            WHERE session_ref = ?
            ORDER BY session_log_id
            """,
            (session_id,),
        )

    async def mark_session_clean(self, session_id: int) -> None:
        await self.db.execute("UPDATE session SET dirty = 0 WHERE session_id = ?", (session_id,))
        await self.db.commit()

    async def set_session_key(self, session_id: int, key: str, value: Any) -> None:
        await self.db.execute(
            """
            INSERT INTO session_key_value (session_ref, key, value) VALUES (?, ?, ?)
            ON CONFLICT (session_ref, key) DO UPDATE SET value = excluded.value
            """,
            (session_id, key, value),
        )
        await self.db.commit()


class SessionStore:
    """Owns the session database: schema setup and row insertion."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db
        self.queries = SqliteSessionQueries(db)

    @classmethod
    @asynccontextmanager
    async def open(cls, path: Path | str) -> AsyncIterator["SessionStore"]:
        async with aiosqlite.connect(str(path)) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA foreign_keys = ON")
            store = cls(db)
            await store.initialize()
            yield store

    async def initialize(self) -> None:
        await self.db.executescript(SCHEMA)
        await self.db.commit()

    async def _insert(self, query: str, params: Sequence[Any]) -> int:
        async with self.db.execute(query, tuple(params)) as cur:
            row_id = cur.lastrowid
        await self.db.commit()
        if row_id is None:  # pragma: no cover - sqlite always reports a rowid for inserts
            raise RuntimeError("Insert did not produce a row id.")
        return row_id

    async def create_session(self, session_key: str) -> int:
        session_id = await self._insert(
            "INSERT INTO session (session_key, dirty, creation_time) VALUES (?, 1, ?)",
            (session_key, _utc_now()),
        )
        LOGGER.debug("Created session %s (%s)", session_id, session_key)
        return session_id

    async def is_dirty(self, session_id: int) -> bool:
        async with self.db.execute("SELECT dirty FROM session WHERE session_id = ?", (session_id,)) as cur:
            row = await cur.fetchone()
        if row is None:
            raise KeyError(session_id)
        return bool(row[0])

    async def mark_dirty(self, session_id: int) -> None:
        await self.db.execute("UPDATE session SET dirty = 1 WHERE session_id = ?", (session_id,))
        await self.db.commit()

    async def set_key_value(self, session_id: int, key: str, value: Any) -> None:
        await self.queries.set_session_key(session_id, key, value)

    async def add_package(
        self,
        session_id: int,
        path: Path | str,
        *,
        version: str | None = None,
        type: str | None = None,
    ) -> int:
        async with self.db.execute("SELECT package_id FROM package WHERE path = ?", (str(path),)) as cur:
            existing = await cur.fetchone()
        if existing is not None:
            package_id = int(existing[0])
        else:
            package_id = await self._insert(
                "INSERT INTO package (path, version, type) VALUES (?, ?, ?)",
                (str(path), version, type),
            )
        await self.db.execute(
            "INSERT OR IGNORE INTO session_package (session_ref, package_ref, enabled) VALUES (?, ?, 1)",
            (session_id, package_id),
        )
        await self.db.commit()
        return package_id

    async def add_endpoint_type(
        self,
        session_id: int,
        name: str,
        *,
        device_type_name: str | None = None,
        device_type_code: int | None = None,
        device_type_profile_id: int | None = None,
    ) -> int:
        return await self._insert(
            """
            INSERT INTO endpoint_type
                (session_ref, name, device_type_name, device_type_code, device_type_profile_id)
            VALUES (?, ?, ?, ?, ?)
            """,
            (session_id, name, device_type_name, device_type_code, device_type_profile_id),
        )

    async def delete_endpoint_type(self, endpoint_type_id: int) -> None:
        await self.db.execute("DELETE FROM endpoint_type WHERE endpoint_type_id = ?", (endpoint_type_id,))
        await self.db.commit()

    async def add_cluster(
        self,
        endpoint_type_id: int,
        name: str,
        code: int,
        *,
        mfg_code: int | None = None,
        define: str | None = None,
        side: str = "server",
        enabled: bool = True,
    ) -> int:
        return await self._insert(
            """
            INSERT INTO endpoint_type_cluster
                (endpoint_type_ref, name, code, mfg_code, define_name, side, enabled)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (endpoint_type_id, name, code, mfg_code, define, side, int(enabled)),
        )

    async def add_command(
        self,
        endpoint_type_id: int,
        endpoint_cluster_id: int,
        name: str,
        code: int,
        *,
        mfg_code: int | None = None,
        source: str = "client",
        incoming: bool = True,
        outgoing: bool = True,
    ) -> int:
        return await self._insert(
            """
            INSERT INTO endpoint_type_command
                (endpoint_type_ref, endpoint_type_cluster_ref, name, code, mfg_code, source, incoming, outgoing)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (endpoint_type_id, endpoint_cluster_id, name, code, mfg_code, source, int(incoming), int(outgoing)),
        )

    async def add_attribute(
        self,
        endpoint_type_id: int,
        endpoint_cluster_id: int,
        name: str,
        code: int,
        *,
        mfg_code: int | None = None,
        side: str = "server",
        type: str | None = None,
        included: bool = True,
        storage_option: str = "RAM",
        singleton: bool = False,
        bounded: bool = False,
        default_value: str | None = None,
        reportable: bool = False,
        min_interval: int = 1,
        max_interval: int = 65534,
        reportable_change: int = 0,
    ) -> int:
        return await self._insert(
            """
            INSERT INTO endpoint_type_attribute
                (endpoint_type_ref, endpoint_type_cluster_ref, name, code, mfg_code, side, type,
                 included, storage_option, singleton, bounded, default_value, reportable,
                 min_interval, max_interval, reportable_change)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                endpoint_type_id,
                endpoint_cluster_id,
                name,
                code,
                mfg_code,
                side,
                type,
                int(included),
                storage_option,
                int(singleton),
                int(bounded),
                default_value,
                int(reportable),
                min_interval,
                max_interval,
                reportable_change,
            ),
        )

    async def add_endpoint(
        self,
        session_id: int,
        endpoint_type_id: int,
        endpoint_id: int,
        *,
        profile_id: int | None = None,
        network_id: int = 0,
    ) -> int:
        return await self._insert(
            """
            INSERT INTO endpoint
                (session_ref, endpoint_type_ref, endpoint_identifier, profile, network_identifier)
            VALUES (?, ?, ?, ?, ?)
            """,
            (session_id, endpoint_type_id, endpoint_id, profile_id, network_id),
        )

    async def append_log(self, session_id: int, message: str, *, timestamp: str | None = None) -> int:
        return await self._insert(
            "INSERT INTO session_log (session_ref, timestamp, log) VALUES (?, ?, ?)",
            (session_id, timestamp or _utc_now(), message),
        )


__all__ = ["SCHEMA", "SessionStore", "SqliteSessionQueries"]

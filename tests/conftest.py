"""Pytest configuration and shared fakes for the export engine tests."""

from __future__ import annotations

import asyncio
import copy
import sys
from pathlib import Path
from typing import Any, Sequence

import pytest


def _ensure_src_on_path() -> None:
    """Add the src directory to ``sys.path`` for imports."""

    src_dir = Path(__file__).resolve().parent.parent / "src"
    src_path = str(src_dir)
    if src_dir.is_dir() and src_path not in sys.path:
        sys.path.insert(0, src_path)


_ensure_src_on_path()

from zapstate.config import ExportSettings  # noqa: E402


class FakeSessionQueries:
    """In-memory query layer with per-call delays and failure injection.

    ``delays`` and ``failures`` are keyed by ``(method, *ids)`` tuples, for
    example ``("list_commands", 10, 100)``.
    """

    def __init__(
        self,
        *,
        endpoint_types: list[dict[str, Any]] | None = None,
        clusters: dict[Any, list[dict[str, Any]]] | None = None,
        commands: dict[tuple[Any, Any], list[dict[str, Any]]] | None = None,
        attributes: dict[tuple[Any, Any], list[dict[str, Any]]] | None = None,
        endpoints: list[dict[str, Any]] | None = None,
        packages: list[dict[str, Any]] | None = None,
        key_values: list[dict[str, Any]] | None = None,
        log: list[Any] | None = None,
    ) -> None:
        self.endpoint_types = endpoint_types or []
        self.clusters = clusters or {}
        self.commands = commands or {}
        self.attributes = attributes or {}
        self.endpoints = endpoints or []
        self.packages = packages or []
        self.key_values = key_values or []
        self.log = log or []
        self.delays: dict[tuple[Any, ...], float] = {}
        self.failures: dict[tuple[Any, ...], BaseException] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.clean_calls: list[int] = []
        self.cancelled: list[tuple[Any, ...]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _answer(self, key: tuple[Any, ...], result: Any) -> Any:
        self.calls.append(key)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(key, 0))
        except asyncio.CancelledError:
            self.cancelled.append(key)
            raise
        finally:
            self.in_flight -= 1
        if key in self.failures:
            raise self.failures[key]
        return copy.deepcopy(result)

    async def list_endpoint_types(self, session_id: int) -> list[dict[str, Any]]:
        return await self._answer(("list_endpoint_types", session_id), self.endpoint_types)

    async def list_clusters(self, endpoint_type_id: Any) -> list[dict[str, Any]]:
        return await self._answer(("list_clusters", endpoint_type_id), self.clusters.get(endpoint_type_id, []))

    async def list_commands(self, endpoint_type_id: Any, endpoint_cluster_id: Any) -> list[dict[str, Any]]:
        key = (endpoint_type_id, endpoint_cluster_id)
        return await self._answer(("list_commands", *key), self.commands.get(key, []))

    async def list_attributes(self, endpoint_type_id: Any, endpoint_cluster_id: Any) -> list[dict[str, Any]]:
        key = (endpoint_type_id, endpoint_cluster_id)
        return await self._answer(("list_attributes", *key), self.attributes.get(key, []))

    async def list_endpoints(self, session_id: int, endpoint_types: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        positions = {row["endpointTypeId"]: index for index, row in enumerate(endpoint_types)}
        rows = [
            {**row, "endpointTypeIndex": positions.get(row["endpointTypeRef"], -1)}
            for row in self.endpoints
        ]
        return await self._answer(("list_endpoints", session_id), rows)

    async def list_packages(self, session_id: int) -> list[dict[str, Any]]:
        return await self._answer(("list_packages", session_id), self.packages)

    async def list_key_values(self, session_id: int) -> list[dict[str, Any]]:
        return await self._answer(("list_key_values", session_id), self.key_values)

    async def read_log(self, session_id: int) -> list[Any]:
        return await self._answer(("read_log", session_id), self.log)

    async def mark_session_clean(self, session_id: int) -> None:
        key = ("mark_session_clean", session_id)
        if key in self.failures:
            raise self.failures[key]
        self.clean_calls.append(session_id)

    async def set_session_key(self, session_id: int, key: str, value: Any) -> None:
        self.key_values = [row for row in self.key_values if row["key"] != key]
        self.key_values.append({"key": key, "value": value})


def build_fake_session(home: Path) -> FakeSessionQueries:
    """Two endpoint types with two clusters each, one package under ``home``."""

    return FakeSessionQueries(
        endpoint_types=[
            {"endpointTypeId": 10, "name": "Light", "deviceTypeName": "HA-dimmablelight", "deviceTypeCode": 257},
            {"endpointTypeId": 20, "name": "Switch", "deviceTypeName": "HA-onoff", "deviceTypeCode": 259},
        ],
        clusters={
            10: [
                {"endpointClusterId": 100, "name": "On/off", "code": 6, "side": "server", "enabled": 1},
                {"endpointClusterId": 101, "name": "Level Control", "code": 8, "side": "server", "enabled": 1},
            ],
            20: [
                {"endpointClusterId": 200, "name": "Basic", "code": 0, "side": "server", "enabled": 1},
                {"endpointClusterId": 201, "name": "On/off", "code": 6, "side": "client", "enabled": 1},
            ],
        },
        commands={
            (10, 100): [
                {"name": "Off", "code": 0, "source": "client", "incoming": 1, "outgoing": 0},
                {"name": "On", "code": 1, "source": "client", "incoming": 1, "outgoing": 0},
            ],
            (20, 201): [{"name": "Toggle", "code": 2, "source": "client", "incoming": 0, "outgoing": 1}],
        },
        attributes={
            (10, 100): [{"name": "on/off", "code": 0, "side": "server", "type": "boolean", "defaultValue": "0"}],
            (10, 101): [{"name": "current level", "code": 0, "side": "server", "type": "int8u", "defaultValue": None}],
            (20, 200): [{"name": "ZCL version", "code": 0, "side": "server", "type": "int8u", "defaultValue": "3"}],
        },
        endpoints=[
            {"endpointTypeRef": 20, "endpointTypeName": "Switch", "endpointId": 2, "profileId": 260, "networkId": 0},
            {"endpointTypeRef": 10, "endpointTypeName": "Light", "endpointId": 1, "profileId": 260, "networkId": 0},
        ],
        packages=[
            {"path": str(home / "pkgs" / "zcl.properties"), "version": "ZCL Test Data", "type": "zcl-properties"},
        ],
        key_values=[
            {"key": "commandDiscovery", "value": "1"},
            {"key": "filePath", "value": str(home / "projects" / "light.zap")},
            {"key": "defaultResponsePolicy", "value": "always"},
        ],
        log=[{"timestamp": "2020-06-01T10:00:00Z", "log": "Created session"}],
    )


@pytest.fixture()
def home_dir(tmp_path: Path) -> Path:
    home = tmp_path / "home" / "u"
    home.mkdir(parents=True)
    return home


@pytest.fixture()
def export_settings(home_dir: Path) -> ExportSettings:
    """Settings pinned to a temporary home directory."""

    return ExportSettings(home_dir=home_dir, durable_writes=False)


@pytest.fixture()
def fake_queries(home_dir: Path) -> FakeSessionQueries:
    return build_fake_session(home_dir)

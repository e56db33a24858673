"""Tests for the aiosqlite-backed session query layer."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from zapstate.config import ExportSettings
from zapstate.errors import PartialDataFailure, WriteFailure
from zapstate.queries import SessionQueries, SessionStore
from zapstate.reader import read_document
from zapstate.writer import StateExporter


async def _seed(store: SessionStore, home: Path) -> int:
    session_id = await store.create_session("session-1")
    await store.set_key_value(session_id, "commandDiscovery", "1")
    await store.set_key_value(session_id, "filePath", str(home / "projects" / "light.zap"))
    await store.add_package(session_id, home / "pkgs" / "zcl.properties", version="ZCL Test Data", type="zcl-properties")

    light = await store.add_endpoint_type(session_id, "Light", device_type_name="HA-dimmablelight", device_type_code=257)
    switch = await store.add_endpoint_type(session_id, "Switch", device_type_name="HA-onoff", device_type_code=259)

    level = await store.add_cluster(light, "Level Control", 8, define="LEVEL_CONTROL_CLUSTER")
    on_off = await store.add_cluster(light, "On/off", 6, define="ON_OFF_CLUSTER")
    await store.add_command(light, on_off, "On", 1)
    await store.add_command(light, on_off, "Off", 0)
    await store.add_attribute(light, on_off, "on/off", 0, type="boolean", default_value="0")
    await store.add_attribute(light, level, "current level", 0, type="int8u")
    await store.add_cluster(switch, "Basic", 0, define="BASIC_CLUSTER")

    await store.add_endpoint(session_id, switch, 2, profile_id=260)
    await store.add_endpoint(session_id, light, 1, profile_id=260)
    await store.append_log(session_id, "Created session", timestamp="2020-06-01T10:00:00Z")
    return session_id


def test_store_implements_query_protocol(tmp_path: Path) -> None:
    async def run() -> bool:
        async with SessionStore.open(tmp_path / "zap.sqlite") as store:
            return isinstance(store.queries, SessionQueries)

    assert asyncio.run(run())


def test_listing_queries_return_document_field_names(tmp_path: Path, home_dir: Path) -> None:
    async def run() -> dict:
        async with SessionStore.open(tmp_path / "zap.sqlite") as store:
            session_id = await _seed(store, home_dir)
            queries = store.queries
            types = await queries.list_endpoint_types(session_id)
            clusters = await queries.list_clusters(types[0]["endpointTypeId"])
            commands = await queries.list_commands(types[0]["endpointTypeId"], clusters[0]["endpointClusterId"])
            endpoints = await queries.list_endpoints(session_id, types)
            return {"types": types, "clusters": clusters, "commands": commands, "endpoints": endpoints}

    result = asyncio.run(run())

    assert [row["name"] for row in result["types"]] == ["Light", "Switch"]
    assert [row["name"] for row in result["clusters"]] == ["On/off", "Level Control"]
    assert result["clusters"][0]["define"] == "ON_OFF_CLUSTER"
    assert [row["name"] for row in result["commands"]] == ["Off", "On"]
    assert [(row["endpointId"], row["endpointTypeIndex"]) for row in result["endpoints"]] == [(1, 0), (2, 1)]


def test_vanished_endpoint_type_raises_partial_data(tmp_path: Path, home_dir: Path) -> None:
    async def run() -> None:
        async with SessionStore.open(tmp_path / "zap.sqlite") as store:
            session_id = await _seed(store, home_dir)
            types = await store.queries.list_endpoint_types(session_id)
            await store.delete_endpoint_type(types[0]["endpointTypeId"])
            await store.queries.list_clusters(types[0]["endpointTypeId"])

    with pytest.raises(PartialDataFailure):
        asyncio.run(run())


def test_export_and_reload_from_sqlite(tmp_path: Path, home_dir: Path) -> None:
    settings = ExportSettings(home_dir=home_dir, durable_writes=False)
    target = home_dir / "projects" / "light.zap"
    target.parent.mkdir()

    async def run() -> tuple[int, bool, bool]:
        async with SessionStore.open(tmp_path / "zap.sqlite") as store:
            session_id = await _seed(store, home_dir)
            dirty_before = await store.is_dirty(session_id)
            await StateExporter(store.queries, settings=settings).save(session_id)
            return session_id, dirty_before, await store.is_dirty(session_id)

    _, dirty_before, dirty_after = asyncio.run(run())

    assert dirty_before is True
    assert dirty_after is False

    payload = json.loads(target.read_text(encoding="utf-8"))
    light = payload["endpointTypes"][0]
    assert "endpointTypeId" not in light
    assert [cluster["name"] for cluster in light["clusters"]] == ["On/off", "Level Control"]
    assert all("endpointClusterId" not in cluster for cluster in light["clusters"])
    assert payload["endpointTypes"][1]["clusters"][0]["commands"] == []
    assert payload["keyValuePairs"] == [{"key": "commandDiscovery", "value": "1"}]

    loaded = read_document(target, settings=settings)
    assert loaded.package_paths == (str(home_dir / "pkgs" / "zcl.properties"),)
    assert loaded.document.endpoint_types[0].clusters[0].commands[0].model_dump()["name"] == "Off"


def test_vanished_cluster_raises_partial_data(tmp_path: Path, home_dir: Path) -> None:
    async def run() -> None:
        async with SessionStore.open(tmp_path / "zap.sqlite") as store:
            session_id = await _seed(store, home_dir)
            types = await store.queries.list_endpoint_types(session_id)
            endpoint_type_id = types[0]["endpointTypeId"]
            clusters = await store.queries.list_clusters(endpoint_type_id)
            cluster_id = clusters[0]["endpointClusterId"]
            await store.db.execute(
                "DELETE FROM endpoint_type_cluster WHERE endpoint_type_cluster_id = ?", (cluster_id,)
            )
            await store.db.commit()
            await store.queries.list_commands(endpoint_type_id, cluster_id)

    with pytest.raises(PartialDataFailure) as excinfo:
        asyncio.run(run())

    assert "endpoint_cluster_id" in excinfo.value.details


def test_failed_write_keeps_sqlite_session_dirty(
    tmp_path: Path, home_dir: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    from zapstate import writer

    def _fail_write(path: Path, payload: dict, *, durable: bool = True) -> None:
        raise OSError(28, "No space left on device")

    settings = ExportSettings(home_dir=home_dir, durable_writes=False)
    (home_dir / "projects").mkdir()

    async def run() -> tuple[bool, bool]:
        async with SessionStore.open(tmp_path / "zap.sqlite") as store:
            session_id = await _seed(store, home_dir)
            exporter = StateExporter(store.queries, settings=settings)
            await exporter.save(session_id)
            await store.mark_dirty(session_id)
            monkeypatch.setattr(writer, "write_json_atomic", _fail_write)
            with pytest.raises(WriteFailure):
                await exporter.save(session_id)
            return await store.is_dirty(session_id), (home_dir / "projects" / "light.zap").exists()

    dirty, still_on_disk = asyncio.run(run())

    assert dirty is True
    assert still_on_disk is True

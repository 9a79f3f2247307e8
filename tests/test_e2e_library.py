from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from beaconsync.client import BeaconSyncClient
from beaconsync.config import BeaconSyncConfig
from beaconsync.exceptions import BeaconSyncError, MapVersionConflictError
from beaconsync.models.beacon import BeaconIdentity, ProximityRank
from beaconsync.models.room import Room
from beaconsync.models.sync import SyncEvent, SyncEventKind, SyncState, WorldMappingStatus

NAMESPACE = UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
ROOM_A = Room(id=UUID("0000000a-0000-0000-0000-00000000000a"), name="Kitchen")
ROOM_B = Room(id=UUID("0000000b-0000-0000-0000-00000000000b"), name="Office")
SEED_VERSION = UUID("5eed0000-0000-0000-0000-000000000000")


def _beacon(minor: int) -> BeaconIdentity:
    return BeaconIdentity(uuid=NAMESPACE, major=1, minor=minor)


@dataclass
class FakeMapBackend:
    """aiohttp application emulating the room lookup and world-map API."""

    beacon_rooms: dict[int, Room] = field(default_factory=lambda: {1: ROOM_A, 2: ROOM_B})
    # room id (uppercase text) -> (current version, blob key)
    maps: dict[str, tuple[UUID, str]] = field(default_factory=dict)
    blobs: dict[str, bytes] = field(default_factory=dict)
    slots: dict[UUID, str] = field(default_factory=dict)
    confirmations: list[dict[str, Any]] = field(default_factory=list)
    lookups: list[dict[str, Any]] = field(default_factory=list)
    base_url: str = ""

    def seed_map(self, room: Room, version: UUID, blob: bytes) -> None:
        key = f"seed-{version}"
        self.blobs[key] = blob
        self.maps[str(room.id).upper()] = (version, key)

    def current_blob(self, room: Room) -> bytes | None:
        entry = self.maps.get(str(room.id).upper())
        return None if entry is None else self.blobs.get(entry[1])

    def current_version(self, room: Room) -> UUID | None:
        entry = self.maps.get(str(room.id).upper())
        return None if entry is None else entry[0]

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/ibeacon/getRoom", self._get_room)
        app.router.add_get("/room/{room_id}/ARWorldMap/getPresignedUploadUrl", self._upload_slot)
        app.router.add_post("/room/{room_id}/ARWorldMap/presignedUploadConfirmation", self._confirm)
        app.router.add_get("/room/{room_id}/ARWorldMap", self._locate)
        app.router.add_put("/blob/{key}", self._put_blob)
        app.router.add_get("/blob/{key}", self._get_blob)
        return app

    async def _get_room(self, request: web.Request) -> web.Response:
        body = await request.json()
        self.lookups.append(body)
        room = self.beacon_rooms.get(body["minor"])
        if room is None or body["uuid"] != str(NAMESPACE).upper():
            return web.Response(status=404, text="beacon not bound")
        return web.json_response({"id": str(room.id), "name": room.name})

    async def _upload_slot(self, request: web.Request) -> web.Response:
        version = uuid4()
        key = f"upload-{version}"
        self.slots[version] = key
        return web.json_response({"url": f"{self.base_url}/blob/{key}?X-Amz-Signature=abc", "uuid": str(version)})

    async def _confirm(self, request: web.Request) -> web.Response:
        room_id = request.match_info["room_id"]
        body = await request.json()
        self.confirmations.append({"room": room_id, **body})
        current = self.maps.get(room_id)
        current_text = None if current is None else str(current[0]).upper()
        if body["old_uuid"] != current_text:
            return web.Response(status=409, text="stale version")
        new_version = UUID(body["uuid"])
        self.maps[room_id] = (new_version, self.slots.pop(new_version))
        return web.Response(status=200)

    async def _locate(self, request: web.Request) -> web.Response:
        entry = self.maps.get(request.match_info["room_id"])
        if entry is None:
            return web.Response(status=404, text="no map")
        version, key = entry
        return web.json_response({"url": f"{self.base_url}/blob/{key}?X-Amz-Signature=def", "uuid": str(version)})

    async def _put_blob(self, request: web.Request) -> web.Response:
        assert request.query.get("X-Amz-Signature") == "abc"
        self.blobs[request.match_info["key"]] = await request.read()
        return web.Response(status=200)

    async def _get_blob(self, request: web.Request) -> web.Response:
        blob = self.blobs.get(request.match_info["key"])
        if blob is None:
            return web.Response(status=404)
        return web.Response(body=blob, content_type="application/octet-stream")


@dataclass
class FakeEngine:
    blob: bytes | None = None
    applied: list[bytes] = field(default_factory=list)

    async def get_current_map_blob(self) -> bytes | None:
        return self.blob

    def apply_map_blob(self, blob: bytes) -> None:
        self.applied.append(blob)


@pytest.fixture
def backend() -> FakeMapBackend:
    return FakeMapBackend()


@pytest_asyncio.fixture
async def config(backend: FakeMapBackend) -> AsyncIterator[BeaconSyncConfig]:
    server = TestServer(backend.app())
    await server.start_server()
    backend.base_url = str(server.make_url("/")).rstrip("/")
    try:
        yield BeaconSyncConfig(base_url=backend.base_url, request_timeout=5, transfer_timeout=5)
    finally:
        await server.close()


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_room_changes_hand_maps_over_through_backend(
    config: BeaconSyncConfig,
    backend: FakeMapBackend,
) -> None:
    backend.seed_map(ROOM_A, SEED_VERSION, b"seed-kitchen")
    engine = FakeEngine()
    events: list[SyncEvent] = []

    async with BeaconSyncClient(config, engine, on_sync_event=events.append) as client:
        rooms: list[Room | None] = []
        client.current_room.subscribe(rooms.append)

        # Enter the kitchen: its seeded map is downloaded and applied.
        client.report_sighting("region-1", [(_beacon(1), ProximityRank.NEAR)])
        await client.wait_idle()

        assert client.current_room.value == ROOM_A
        assert engine.applied == [b"seed-kitchen"]
        assert client.binding is not None
        assert client.binding.version == SEED_VERSION

        # Walk to the office: the edited kitchen map is saved first.
        engine.blob = b"kitchen-edited"
        client.report_sighting("region-1", [(_beacon(2), ProximityRank.IMMEDIATE)])
        await client.wait_idle()

        assert client.current_room.value == ROOM_B
        assert backend.current_blob(ROOM_A) == b"kitchen-edited"
        kitchen_version = backend.current_version(ROOM_A)
        assert backend.confirmations[0]["old_uuid"] == str(SEED_VERSION).upper()
        assert backend.confirmations[0]["uuid"] == str(kitchen_version).upper()
        # The office never had a map.
        assert engine.applied == [b"seed-kitchen"]
        assert client.sync_status.value.state == SyncState.BOUND
        assert client.binding is not None
        assert client.binding.version is None

        # Back to the kitchen: office is saved as a first save, kitchen map comes back.
        engine.blob = b"office-map"
        client.report_sighting("region-1", [(_beacon(1), ProximityRank.IMMEDIATE)])
        await client.wait_idle()

        assert backend.confirmations[1]["old_uuid"] is None
        assert backend.current_blob(ROOM_B) == b"office-map"
        assert engine.applied == [b"seed-kitchen", b"kitchen-edited"]
        assert client.binding is not None
        assert client.binding.version == kitchen_version

    assert rooms == [ROOM_A, ROOM_B, ROOM_A]
    kinds = [event.kind for event in events]
    assert kinds.count(SyncEventKind.SAVE_SUCCEEDED) == 2
    assert SyncEventKind.MAP_NOT_FOUND in kinds
    # Each beacon was looked up once.
    assert len(backend.lookups) == 2


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_unbound_beacons_resolve_to_no_room(config: BeaconSyncConfig, backend: FakeMapBackend) -> None:
    engine = FakeEngine()

    async with BeaconSyncClient(config, engine) as client:
        client.report_sighting("region-1", [(_beacon(99), ProximityRank.IMMEDIATE)])
        await client.wait_idle()

        assert client.current_room.value is None
        assert client.sync_status.value.state == SyncState.IDLE
        assert client.binding is None


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_sightings_from_other_threads_are_rejected_and_pipeline_stays_live(
    config: BeaconSyncConfig,
    backend: FakeMapBackend,
) -> None:
    sighting = [(_beacon(1), ProximityRank.NEAR)]

    async with BeaconSyncClient(config, FakeEngine()) as client:
        with pytest.raises(BeaconSyncError, match="event loop"):
            await asyncio.to_thread(client.report_sighting, "region-1", sighting)
        with pytest.raises(BeaconSyncError, match="event loop"):
            await asyncio.to_thread(client.remove_source_group, "region-1")
        # The rejected report left no trace, so the same sighting is new.
        assert client.sightings.value.is_empty

        loop = asyncio.get_running_loop()
        await asyncio.to_thread(loop.call_soon_threadsafe, client.report_sighting, "region-1", sighting)
        await asyncio.sleep(0)
        await client.wait_idle()

        assert client.current_room.value == ROOM_A
        assert len(backend.lookups) == 1


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_explicit_save_detects_version_conflict(config: BeaconSyncConfig, backend: FakeMapBackend) -> None:
    backend.seed_map(ROOM_A, SEED_VERSION, b"seed-kitchen")
    engine = FakeEngine(blob=b"local-edit")

    async with BeaconSyncClient(config, engine) as client:
        client.report_sighting("region-1", [(_beacon(1), ProximityRank.NEAR)])
        await client.wait_idle()

        new_version = await client.save_current_map()
        assert new_version == backend.current_version(ROOM_A)
        assert client.binding is not None
        assert client.binding.version == new_version

        # Another device saved in the meantime.
        backend.seed_map(ROOM_A, uuid4(), b"remote-edit")
        with pytest.raises(MapVersionConflictError):
            await client.save_current_map()
        assert client.sync_status.value.state == SyncState.FAILED


@pytest.mark.asyncio
@pytest.mark.e2e
async def test_e2e_state_is_published_over_mqtt(
    config: BeaconSyncConfig,
    backend: FakeMapBackend,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    published: list[tuple[str, dict[str, Any]]] = []

    def fake_start(self: Any) -> None:
        self._connected = True

    def fake_stop(self: Any) -> None:
        self._connected = False

    def fake_publish(self: Any, topic: str, payload: str) -> None:
        published.append((topic, json.loads(payload)))

    monkeypatch.setattr("beaconsync._mqtt.MqttStatePublisher.start", fake_start)
    monkeypatch.setattr("beaconsync._mqtt.MqttStatePublisher.stop", fake_stop)
    monkeypatch.setattr("beaconsync._mqtt.MqttStatePublisher._publish", fake_publish)

    mqtt_config = BeaconSyncConfig(base_url=config.base_url, mqtt_enabled=True, mqtt_topic_prefix="home/sync")
    async with BeaconSyncClient(mqtt_config, FakeEngine()) as client:
        client.report_sighting("region-1", [(_beacon(2), ProximityRank.NEAR)])
        await client.wait_idle()
        client.update_world_mapping_status("mapped")

    topics = [topic for topic, _ in published]
    assert topics[:3] == ["home/sync/room", "home/sync/sync", "home/sync/mapping_status"]
    assert ("home/sync/room", {"room": {"id": str(ROOM_B.id).upper(), "name": "Office"}}) in published
    assert ("home/sync/mapping_status", {"status": "mapped"}) in published
    assert any(
        topic == "home/sync/sync" and payload["state"] == "bound" for topic, payload in published
    )
    assert client.world_mapping_status.value == WorldMappingStatus.MAPPED


@pytest.mark.asyncio
async def test_client_requires_context_manager(config: BeaconSyncConfig) -> None:
    client = BeaconSyncClient(config, FakeEngine())
    with pytest.raises(BeaconSyncError):
        client.report_sighting("region-1", [])
    with pytest.raises(BeaconSyncError):
        await client.save_current_map()

"""High-level async client wiring sightings, room resolution and map sync."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any
from uuid import UUID

import aiohttp

from beaconsync._mqtt import MqttStatePublisher
from beaconsync._transport import HttpTransport, Transport
from beaconsync.aggregator import ProximityAggregator
from beaconsync.config import BeaconSyncConfig
from beaconsync.exceptions import BeaconSyncError
from beaconsync.models.beacon import BeaconIdentity, ProximityRank, RankedBeacon, SightingSnapshot
from beaconsync.models.room import Room, RoomMapBinding
from beaconsync.models.sync import SyncEvent, SyncStatus, WorldMappingStatus
from beaconsync.resolver import RoomResolver
from beaconsync.state.observable import Observable, ObservableValue
from beaconsync.store import RemoteMapStore
from beaconsync.sync import MapSyncCoordinator, TrackingEngine

_logger = logging.getLogger(__name__)


class BeaconSyncClient:
    """Async facade over the beacon-to-room-to-map pipeline.

    Raw sightings flow into a :class:`ProximityAggregator`, whose merged
    snapshots feed a :class:`RoomResolver`; every room change drives the
    :class:`MapSyncCoordinator`, which talks to the backend through a
    :class:`RemoteMapStore` and hands map blobs to the tracking engine.

    Usage::

        async with BeaconSyncClient(config, engine) as client:
            client.current_room.subscribe(print)
            client.report_sighting(region_id, ranked_beacons)
    """

    def __init__(
        self,
        config: BeaconSyncConfig,
        engine: TrackingEngine,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        on_sync_event: Callable[[SyncEvent], None] | None = None,
    ) -> None:
        self._config = config
        self._engine = engine
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._on_sync_event = on_sync_event
        self._aggregator = ProximityAggregator(config.monitored_uuids)
        self._mapping_status: ObservableValue[WorldMappingStatus] = ObservableValue(
            WorldMappingStatus.NOT_AVAILABLE,
            name="world_mapping_status",
        )
        self._resolver: RoomResolver | None = None
        self._coordinator: MapSyncCoordinator | None = None
        self._store: RemoteMapStore | None = None
        self._mqtt: MqttStatePublisher | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BeaconSyncClient:
        self._loop = asyncio.get_running_loop()
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)

        store = RemoteMapStore(self._transport)
        resolver = RoomResolver(store.resolve_room)
        coordinator = MapSyncCoordinator(
            store,
            self._engine,
            capture_timeout=self._config.capture_timeout,
            on_event=self._on_sync_event,
        )
        self._store = store
        self._resolver = resolver
        self._coordinator = coordinator

        self._unsubscribers = [
            self._aggregator.snapshot.subscribe(resolver.handle_snapshot, internal=True),
            resolver.current_room.subscribe(coordinator.request_room, internal=True),
        ]
        self._start_mqtt()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._stop_mqtt()
        if self._resolver is not None:
            await self._resolver.aclose()
        if self._coordinator is not None:
            await self._coordinator.aclose()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_resolver(self) -> RoomResolver:
        if self._resolver is None:
            raise BeaconSyncError("Client not initialized. Use 'async with BeaconSyncClient(...) as client:'")
        return self._resolver

    def _require_coordinator(self) -> MapSyncCoordinator:
        if self._coordinator is None:
            raise BeaconSyncError("Client not initialized. Use 'async with BeaconSyncClient(...) as client:'")
        return self._coordinator

    def _require_loop_thread(self, operation: str) -> None:
        """Reject calls made off the client's event loop.

        Sightings drive lookups and transitions scheduled on the loop; a
        report from another thread would be merged but never resolved.
        """
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is None or running is not self._loop:
            raise BeaconSyncError(
                f"{operation} must be called from the client's event loop; "
                "use loop.call_soon_threadsafe() from other threads"
            )

    def _start_mqtt(self) -> None:
        """Best-effort MQTT startup (failures must not break the pipeline)."""
        if not self._config.mqtt_enabled:
            return
        publisher = MqttStatePublisher(self._config, logger=_logger)
        try:
            publisher.start()
        except Exception:
            _logger.warning("MQTT publisher startup failed", exc_info=True)
            return
        self._mqtt = publisher
        self._unsubscribers.extend(
            [
                self.current_room.subscribe(publisher.publish_room, replay=True),
                self.sync_status.subscribe(publisher.publish_sync_status, replay=True),
                self._mapping_status.subscribe(publisher.publish_mapping_status, replay=True),
            ]
        )

    def _stop_mqtt(self) -> None:
        publisher = self._mqtt
        self._mqtt = None
        if publisher is not None:
            publisher.stop()

    # ------------------------------------------------------------------
    # Sensor input
    # ------------------------------------------------------------------

    def report_sighting(
        self,
        source_group_id: str,
        ranked_beacons: Iterable[RankedBeacon | tuple[BeaconIdentity, ProximityRank]],
    ) -> None:
        """Replace the beacons currently ranged by *source_group_id*.

        Each call fully replaces the group's previous report.
        """
        self._require_resolver()
        self._require_loop_thread("report_sighting")
        self._aggregator.report_sighting(source_group_id, ranked_beacons)

    def remove_source_group(self, source_group_id: str) -> None:
        """Forget a source group (e.g. its region was exited)."""
        self._require_resolver()
        self._require_loop_thread("remove_source_group")
        self._aggregator.remove_source_group(source_group_id)

    def update_world_mapping_status(self, status: WorldMappingStatus | str) -> None:
        """Relay the tracking engine's mapping quality to observers."""
        self._mapping_status.set(WorldMappingStatus(status))

    # ------------------------------------------------------------------
    # Map sync
    # ------------------------------------------------------------------

    async def save_current_map(self) -> UUID | None:
        """Save the bound room's map now (see :meth:`MapSyncCoordinator.save_current_map`)."""
        return await self._require_coordinator().save_current_map()

    async def wait_idle(self) -> None:
        """Wait for pending room lookups and map transitions to finish."""
        resolver = self._require_resolver()
        coordinator = self._require_coordinator()
        await resolver.wait_idle()
        await coordinator.wait_idle()

    # ------------------------------------------------------------------
    # Published state
    # ------------------------------------------------------------------

    @property
    def sightings(self) -> Observable[SightingSnapshot]:
        return self._aggregator.snapshot

    @property
    def current_room(self) -> Observable[Room | None]:
        return self._require_resolver().current_room

    @property
    def sync_status(self) -> Observable[SyncStatus]:
        return self._require_coordinator().status

    @property
    def world_mapping_status(self) -> Observable[WorldMappingStatus]:
        return self._mapping_status.view()

    @property
    def binding(self) -> RoomMapBinding | None:
        return self._require_coordinator().binding

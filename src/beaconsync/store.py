"""Remote world-map store client."""

from __future__ import annotations

import logging
from typing import Protocol
from uuid import UUID

from beaconsync._api import rooms as _rooms_api
from beaconsync._api import world_map as _world_map_api
from beaconsync._transport import Transport
from beaconsync.models.beacon import BeaconIdentity
from beaconsync.models.room import Room
from beaconsync.models.world_map import DownloadedMap, MapLocation, UploadSlot

_logger = logging.getLogger(__name__)


class MapStore(Protocol):
    """Operations :class:`~beaconsync.sync.MapSyncCoordinator` needs from a store."""

    async def request_upload_slot(self, room: Room) -> UploadSlot: ...

    async def upload_map(self, upload_target: str, blob: bytes) -> None: ...

    async def confirm_upload(self, room: Room, old_version: UUID | None, new_version: UUID) -> None: ...

    async def fetch_map(self, room: Room) -> DownloadedMap | None: ...


class RemoteMapStore:
    """Backend client for room lookups and presigned world-map transfers.

    Each method is one logically atomic exchange.  Nothing is retried
    here; retry policy belongs to the caller.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def resolve_room(self, identity: BeaconIdentity) -> Room | None:
        """Room lookup for :class:`~beaconsync.resolver.RoomResolver`.

        Raises :class:`LookupFailure` when the backend has no room for the
        beacon or cannot be reached.
        """
        return await _rooms_api.fetch_room_for_beacon(self._transport, identity)

    async def request_upload_slot(self, room: Room) -> UploadSlot:
        return await _world_map_api.request_upload_slot(self._transport, room)

    async def upload_map(self, upload_target: str, blob: bytes) -> None:
        await _world_map_api.upload_blob(self._transport, upload_target, blob)

    async def confirm_upload(self, room: Room, old_version: UUID | None, new_version: UUID) -> None:
        await _world_map_api.confirm_upload(self._transport, room, old_version, new_version)

    async def locate_map(self, room: Room) -> MapLocation | None:
        return await _world_map_api.locate_map(self._transport, room)

    async def download_map(self, download_target: str) -> bytes:
        return await _world_map_api.download_blob(self._transport, download_target)

    async def fetch_map(self, room: Room) -> DownloadedMap | None:
        """Locate and download the room's current map.

        Returns ``None`` when no map was ever saved for the room.
        """
        location = await self.locate_map(room)
        if location is None:
            return None
        blob = await self.download_map(location.download_target)
        _logger.debug("Fetched map for room %s version=%s (%d bytes)", room.id, location.version, len(blob))
        return DownloadedMap(blob=blob, version=location.version)

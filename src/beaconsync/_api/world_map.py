"""World-map presigned upload/download endpoints.

Endpoints:
  - GET  /room/{roomId}/ARWorldMap/getPresignedUploadUrl -> ``{url, uuid}``
  - PUT  {url} (raw blob)
  - POST /room/{roomId}/ARWorldMap/presignedUploadConfirmation ``{old_uuid, uuid}``
  - GET  /room/{roomId}/ARWorldMap -> ``{url, uuid}`` (non-2xx: no map)
  - GET  {url} (raw blob)
"""

from __future__ import annotations

import logging
from uuid import UUID

from beaconsync._api._common import parse_payload, room_endpoint
from beaconsync._constants import UPLOAD_CONFIRM_ENDPOINT, UPLOAD_SLOT_ENDPOINT, WORLD_MAP_ENDPOINT
from beaconsync._redact import redact_url
from beaconsync._transport import Transport
from beaconsync.exceptions import MapVersionConflictError, NetworkError
from beaconsync.models.room import Room
from beaconsync.models.world_map import MapLocation, UploadConfirmation, UploadSlot

_logger = logging.getLogger(__name__)

_HTTP_CONFLICT = 409


async def request_upload_slot(transport: Transport, room: Room) -> UploadSlot:
    """Ask the backend for a presigned upload URL and the version it will create."""
    endpoint = room_endpoint(UPLOAD_SLOT_ENDPOINT, room)
    decoded = await transport.get_json(endpoint)
    slot = parse_payload(UploadSlot, decoded, endpoint=endpoint)
    _logger.debug(
        "Upload slot for room %s: target=%s version=%s",
        room.id,
        redact_url(slot.upload_target),
        slot.new_version,
    )
    return slot


async def upload_blob(transport: Transport, upload_target: str, blob: bytes) -> None:
    """Transfer *blob* to a presigned upload URL."""
    await transport.put_bytes(upload_target, blob)


async def confirm_upload(
    transport: Transport,
    room: Room,
    old_version: UUID | None,
    new_version: UUID,
) -> None:
    """Tell the backend the upload for *new_version* completed.

    Raises
    ------
    MapVersionConflictError
        When the backend's current version is no longer *old_version*.
    NetworkError
        On any other non-200 answer or transport fault.
    """
    endpoint = room_endpoint(UPLOAD_CONFIRM_ENDPOINT, room)
    body = UploadConfirmation(old_uuid=old_version, uuid=new_version).to_payload()
    try:
        await transport.post_json(endpoint, body)
    except NetworkError as exc:
        if exc.status_code == _HTTP_CONFLICT and not isinstance(exc, MapVersionConflictError):
            raise MapVersionConflictError(
                f"Map version conflict for room {room.id}: expected {old_version}",
                status_code=exc.status_code,
                endpoint=endpoint,
            ) from exc
        raise


async def locate_map(transport: Transport, room: Room) -> MapLocation | None:
    """Return where the room's current map can be downloaded from.

    ``None`` when the backend answers with a non-2xx status, meaning no
    map was ever saved for the room.  Transport faults still raise.
    """
    endpoint = room_endpoint(WORLD_MAP_ENDPOINT, room)
    try:
        decoded = await transport.get_json(endpoint)
    except NetworkError as exc:
        if exc.status_code is None:
            raise
        _logger.debug("No map for room %s (HTTP %s)", room.id, exc.status_code)
        return None
    return parse_payload(MapLocation, decoded, endpoint=endpoint)


async def download_blob(transport: Transport, download_target: str) -> bytes:
    """Fetch a raw map blob from a presigned download URL."""
    return await transport.get_bytes(download_target)

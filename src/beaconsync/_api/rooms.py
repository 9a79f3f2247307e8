"""Beacon-to-room lookup endpoint.

Endpoint:
  - POST /ibeacon/getRoom  body ``{uuid, major, minor}`` -> ``{id, name}``
"""

from __future__ import annotations

import logging

from beaconsync._api._common import parse_payload
from beaconsync._constants import ROOM_LOOKUP_ENDPOINT
from beaconsync._transport import Transport
from beaconsync.exceptions import LookupFailure, NetworkError
from beaconsync.models.beacon import BeaconIdentity
from beaconsync.models.room import Room

_logger = logging.getLogger(__name__)


async def fetch_room_for_beacon(transport: Transport, identity: BeaconIdentity) -> Room:
    """Look up the room *identity* is installed in.

    Raises
    ------
    LookupFailure
        On any non-200 answer, transport fault or malformed body.  The
        backend answers non-200 for beacons bound to no room, so callers
        treat this as "no room".
    """
    try:
        decoded = await transport.post_json(ROOM_LOOKUP_ENDPOINT, identity.to_payload())
        room = parse_payload(Room, decoded, endpoint=ROOM_LOOKUP_ENDPOINT)
    except NetworkError as exc:
        raise LookupFailure(
            f"Room lookup for beacon {identity} failed: {exc}",
            status_code=exc.status_code,
        ) from exc

    _logger.debug("Beacon %s is in room %s (%s)", identity, room.name, room.id)
    return room

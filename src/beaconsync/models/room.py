"""Room and room/map binding models."""

from __future__ import annotations

from uuid import UUID

from beaconsync.models._base import BeaconSyncBaseModel


class Room(BeaconSyncBaseModel):
    """A room as returned by the lookup service.

    Two rooms are equal when their ids are equal; the name is display
    data only.

    Parameters
    ----------
    id : UUID
        Backend room identifier.
    name : str
        Human-readable room name.
    """

    id: UUID
    name: str = ""

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Room):
            return self.id == other.id
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.id)


class RoomMapBinding(BeaconSyncBaseModel):
    """The room the coordinator last reconciled against, and its map version.

    ``version`` is ``None`` when no map has ever been persisted for the
    room (the next save is the first one).
    """

    room: Room
    version: UUID | None = None

    def with_version(self, version: UUID | None) -> RoomMapBinding:
        return self.model_copy(update={"version": version})

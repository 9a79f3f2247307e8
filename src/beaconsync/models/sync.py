"""Published synchronization status and events."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from pydantic import Field

from beaconsync.models._base import BeaconSyncBaseModel
from beaconsync.models.room import Room


class WorldMappingStatus(StrEnum):
    """Tracking-engine mapping quality, passed through unchanged."""

    NOT_AVAILABLE = "not_available"
    LIMITED = "limited"
    EXTENDING = "extending"
    MAPPED = "mapped"


class SyncState(StrEnum):
    IDLE = "idle"
    SAVING = "saving"
    FETCHING = "fetching"
    BOUND = "bound"
    FAILED = "failed"


class SyncStatus(BeaconSyncBaseModel):
    """Coordinator state as seen by observers.

    ``room``/``version`` describe the binding the state refers to:
    the room being saved while ``SAVING``, the target while
    ``FETCHING``, the bound room while ``BOUND``.  ``reason`` is set
    for ``FAILED``.
    """

    state: SyncState = SyncState.IDLE
    room: Room | None = None
    version: UUID | None = None
    reason: str | None = None

    @classmethod
    def bound(cls, room: Room, version: UUID | None) -> SyncStatus:
        return cls(state=SyncState.BOUND, room=room, version=version)

    @property
    def is_bound(self) -> bool:
        return self.state == SyncState.BOUND


class SyncEventKind(StrEnum):
    SAVE_SUCCEEDED = "save_succeeded"
    SAVE_SKIPPED = "save_skipped"
    SAVE_FAILED = "save_failed"
    MAP_APPLIED = "map_applied"
    MAP_NOT_FOUND = "map_not_found"
    FETCH_FAILED = "fetch_failed"
    TARGET_SUPERSEDED = "target_superseded"


class SyncEvent(BeaconSyncBaseModel):
    """A notable coordinator step, delivered to ``on_sync_event``."""

    kind: SyncEventKind
    room: Room | None = None
    version: UUID | None = None
    error: str | None = None
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

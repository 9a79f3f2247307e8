"""Save-before-switch world-map synchronization.

When the resolved room changes, the coordinator first saves the map of
the room it is leaving (upload slot, presigned PUT, confirmation) and only
then fetches and applies the map of the room it is entering.  Transitions
are strictly serialized; room changes that arrive meanwhile collapse into
a single pending target.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from beaconsync.exceptions import NetworkError, NoRoomBoundError
from beaconsync.models.room import Room, RoomMapBinding
from beaconsync.models.sync import SyncEvent, SyncEventKind, SyncState, SyncStatus
from beaconsync.state.observable import Observable, ObservableValue
from beaconsync.store import MapStore

_logger = logging.getLogger(__name__)


class TrackingEngine(Protocol):
    """The spatial-tracking engine that produces and consumes map blobs."""

    async def get_current_map_blob(self) -> bytes | None:
        """Serialize the current map, or ``None`` if there is nothing to save."""
        ...

    def apply_map_blob(self, blob: bytes) -> None:
        """Relocalize against *blob*.  Fire-and-forget."""
        ...


class MapSyncCoordinator:
    """Per-room map handoff state machine.

    States (published through :attr:`status`): ``IDLE`` before the first
    room, ``SAVING`` while uploading the previous room's map, ``FETCHING``
    while loading the next room's map, ``BOUND`` once reconciled and
    ``FAILED`` when a save did not go through.

    A failed automatic save never blocks the room switch.  It is surfaced
    as a ``FAILED`` status, a ``save_failed`` event and a warning log.

    Parameters
    ----------
    store
        Remote map store.
    engine
        Tracking engine providing and applying map blobs.
    capture_timeout
        Seconds to wait for the engine's map blob before skipping a save.
    on_event
        Optional callback receiving a :class:`SyncEvent` for every notable
        step.
    """

    def __init__(
        self,
        store: MapStore,
        engine: TrackingEngine,
        *,
        capture_timeout: float = 10.0,
        on_event: Callable[[SyncEvent], None] | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._capture_timeout = capture_timeout
        self._on_event = on_event
        self._binding: RoomMapBinding | None = None
        self._status: ObservableValue[SyncStatus] = ObservableValue(SyncStatus(), name="sync_status")
        self._lock = asyncio.Lock()
        self._pending: Room | None = None
        self._worker: asyncio.Task[None] | None = None

    @property
    def status(self) -> Observable[SyncStatus]:
        return self._status.view()

    @property
    def binding(self) -> RoomMapBinding | None:
        """The room/version last reconciled against."""
        return self._binding

    @property
    def pending_room(self) -> Room | None:
        return self._pending

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def request_room(self, room: Room | None) -> None:
        """Schedule a switch to *room*.

        ``None`` (no room resolved) keeps the current binding.  While a
        transition is running only the most recent request is kept.
        """
        if room is None:
            return
        if self._pending is not None and self._pending != room:
            _logger.debug("Pending room %s replaced by %s", self._pending.name, room.name)
        self._pending = room
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    async def save_current_map(self) -> UUID | None:
        """Save the bound room's map now and return the new version.

        Never overlaps an automatic transition.  Returns ``None`` when the
        engine has nothing to save.

        Raises
        ------
        NoRoomBoundError
            No room is bound yet.
        NetworkError
            Any step of the upload failed.
        """
        async with self._lock:
            binding = self._binding
            if binding is None:
                raise NoRoomBoundError("No room is bound; nothing to save")
            try:
                version = await self._save(binding)
            except NetworkError as exc:
                self._record_save_failure(binding, exc)
                raise
            current = self._binding
            assert current is not None  # noqa: S101
            self._status.set(SyncStatus.bound(current.room, current.version))
            return version

    async def wait_idle(self) -> None:
        """Wait until no transition is running or pending."""
        while self._worker is not None and not self._worker.done():
            await asyncio.wait({self._worker})

    async def aclose(self) -> None:
        """Stop the transition worker.  An in-flight transition is cancelled."""
        worker = self._worker
        self._worker = None
        self._pending = None
        if worker is not None and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

    # ------------------------------------------------------------------
    # Transition worker
    # ------------------------------------------------------------------

    def _take_pending(self) -> Room | None:
        room = self._pending
        self._pending = None
        return room

    async def _drain(self) -> None:
        while (target := self._take_pending()) is not None:
            async with self._lock:
                if self._binding is not None and self._binding.room == target:
                    continue
                try:
                    await self._transition(target)
                except Exception as exc:
                    # Keep the worker alive for the next room change.
                    _logger.exception("Room transition to %s failed", target.name)
                    self._status.set(SyncStatus(state=SyncState.FAILED, room=target, reason=repr(exc)))

    async def _transition(self, target: Room) -> None:
        previous = self._binding
        if previous is not None:
            _logger.info("Leaving room %s for %s", previous.room.name, target.name)
            try:
                await self._save(previous)
            except Exception as exc:
                # A failed save never blocks the switch, whatever the store raised.
                self._record_save_failure(previous, exc)

            newer = self._take_pending()
            if newer is not None and newer != target:
                _logger.info("Room %s superseded by %s before fetch", target.name, newer.name)
                self._emit(SyncEventKind.TARGET_SUPERSEDED, room=target)
                target = newer

            current = self._binding
            if current is not None and current.room == target:
                self._status.set(SyncStatus.bound(current.room, current.version))
                return

        await self._fetch(target)

    async def _save(self, binding: RoomMapBinding) -> UUID | None:
        """Upload the engine's current map for *binding*'s room.

        Updates the binding's version in place on success.  Returns
        ``None`` when there was nothing to upload.
        """
        room = binding.room
        self._status.set(SyncStatus(state=SyncState.SAVING, room=room, version=binding.version))

        blob = await self._capture_blob()
        if not blob:
            _logger.info("No map available to save for room %s", room.name)
            self._emit(SyncEventKind.SAVE_SKIPPED, room=room, version=binding.version)
            return None

        slot = await self._store.request_upload_slot(room)
        await self._store.upload_map(slot.upload_target, blob)
        await self._store.confirm_upload(room, binding.version, slot.new_version)

        self._binding = binding.with_version(slot.new_version)
        _logger.info("Saved map for room %s: %s -> %s", room.name, binding.version, slot.new_version)
        self._emit(SyncEventKind.SAVE_SUCCEEDED, room=room, version=slot.new_version)
        return slot.new_version

    async def _capture_blob(self) -> bytes | None:
        try:
            return await asyncio.wait_for(self._engine.get_current_map_blob(), self._capture_timeout)
        except TimeoutError:
            _logger.warning("Tracking engine gave no map within %.1fs", self._capture_timeout)
        except Exception:
            _logger.warning("Tracking engine failed to provide a map", exc_info=True)
        return None

    def _record_save_failure(self, binding: RoomMapBinding, exc: Exception) -> None:
        _logger.warning(
            "Saving map for room %s failed: %s",
            binding.room.name,
            exc,
            exc_info=not isinstance(exc, NetworkError),
        )
        self._status.set(
            SyncStatus(state=SyncState.FAILED, room=binding.room, version=binding.version, reason=str(exc))
        )
        self._emit(SyncEventKind.SAVE_FAILED, room=binding.room, version=binding.version, error=str(exc))

    async def _fetch(self, room: Room) -> None:
        self._status.set(SyncStatus(state=SyncState.FETCHING, room=room))

        version: UUID | None = None
        try:
            downloaded = await self._store.fetch_map(room)
        except Exception as exc:
            _logger.warning(
                "Fetching map for room %s failed: %s",
                room.name,
                exc,
                exc_info=not isinstance(exc, NetworkError),
            )
            self._emit(SyncEventKind.FETCH_FAILED, room=room, error=str(exc))
        else:
            if downloaded is None:
                _logger.info("Room %s has no saved map", room.name)
                self._emit(SyncEventKind.MAP_NOT_FOUND, room=room)
            else:
                version = downloaded.version
                self._apply(downloaded.blob)
                self._emit(SyncEventKind.MAP_APPLIED, room=room, version=version)

        self._binding = RoomMapBinding(room=room, version=version)
        self._status.set(SyncStatus.bound(room, version))
        _logger.info("Bound to room %s (map version %s)", room.name, version)

    def _apply(self, blob: bytes) -> None:
        try:
            self._engine.apply_map_blob(blob)
        except Exception:
            _logger.warning("Tracking engine rejected map blob", exc_info=True)

    def _emit(
        self,
        kind: SyncEventKind,
        *,
        room: Room | None = None,
        version: UUID | None = None,
        error: str | None = None,
    ) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(SyncEvent(kind=kind, room=room, version=version, error=error))
        except Exception:
            _logger.debug("on_event callback failed", exc_info=True)

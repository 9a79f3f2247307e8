"""Resolve the current room from merged beacon sightings."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable

from beaconsync.exceptions import LookupFailure
from beaconsync.models.beacon import BeaconIdentity, SightingSnapshot
from beaconsync.models.room import Room
from beaconsync.state.observable import Observable, ObservableValue

_logger = logging.getLogger(__name__)

RoomLookup = Callable[[BeaconIdentity], Awaitable[Room | None]]


def pick_room(candidates: list[Room], previous: Room | None) -> Room | None:
    """Choose the most frequent room among *candidates*.

    Ties keep *previous* when it is one of the tied rooms, otherwise the
    tied room with the lowest id wins.
    """
    if not candidates:
        return None
    frequency = Counter(candidates)
    top = max(frequency.values())
    tied = [room for room, count in frequency.items() if count == top]
    if len(tied) == 1:
        return tied[0]
    if previous is not None and previous in tied:
        return previous
    return min(tied, key=lambda room: room.id)


class RoomResolver:
    """Map sighted beacons to rooms and publish the room the client is in.

    Every beacon identity is looked up remotely at most once; the result
    (including "no room" and failures) is cached for the session.  The
    current room is recomputed after each snapshot and each completed
    lookup, and only published once every sighted beacon has a cache
    entry.

    Runs on the event loop: snapshot handling and lookup completions are
    plain callbacks, so the cache is never mutated concurrently.

    Parameters
    ----------
    lookup
        Coroutine function resolving a beacon to its room (``None`` when
        no room is bound).  Raising :class:`LookupFailure` is treated as
        "no room".
    """

    def __init__(self, lookup: RoomLookup) -> None:
        self._lookup = lookup
        self._cache: dict[BeaconIdentity, Room | None] = {}
        self._inflight: dict[BeaconIdentity, asyncio.Task[Room | None]] = {}
        self._snapshot = SightingSnapshot()
        self._last_computed: Room | None = None
        self._current: ObservableValue[Room | None] = ObservableValue(None, name="current_room")

    @property
    def current_room(self) -> Observable[Room | None]:
        return self._current.view()

    @property
    def cache(self) -> dict[BeaconIdentity, Room | None]:
        """Copy of the beacon-to-room cache."""
        return dict(self._cache)

    def handle_snapshot(self, snapshot: SightingSnapshot) -> None:
        """Accept a new merged snapshot, start missing lookups, recompute.

        Must run on the event loop; raises ``RuntimeError`` otherwise,
        before any state is touched.
        """
        loop = asyncio.get_running_loop()
        self._snapshot = snapshot
        for identity in snapshot.identities():
            if identity not in self._cache:
                self._ensure_lookup(identity, loop)
        self.compute_room()

    async def resolve_beacon(self, identity: BeaconIdentity) -> Room | None:
        """Return the cached room for *identity*, looking it up once if needed.

        Concurrent callers share the same in-flight lookup.
        """
        if identity in self._cache:
            return self._cache[identity]
        return await asyncio.shield(self._ensure_lookup(identity))

    def compute_room(self) -> Room | None:
        """Recompute the current room from the latest snapshot.

        Returns the published room.  Nothing changes while any sighted
        beacon is still awaiting its lookup.
        """
        expected = self._snapshot.identities()
        if any(identity not in self._cache for identity in expected):
            return self._current.value

        candidates: list[Room] = []
        for _rank, identities in self._snapshot.iter_ranks():
            candidates = [room for room in (self._cache[i] for i in identities) if room is not None]
            if candidates:
                break

        room = pick_room(candidates, self._last_computed)
        if room is not None:
            self._last_computed = room
        if self._current.set(room):
            _logger.info("Current room: %s", room.name if room is not None else None)
        return room

    async def wait_idle(self) -> None:
        """Wait until no lookups are in flight."""
        while self._inflight:
            await asyncio.gather(*self._inflight.values(), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight lookups."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

    def _ensure_lookup(
        self,
        identity: BeaconIdentity,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Task[Room | None]:
        task = self._inflight.get(identity)
        if task is None:
            task = (loop or asyncio.get_running_loop()).create_task(self._run_lookup(identity))
            self._inflight[identity] = task
        return task

    async def _run_lookup(self, identity: BeaconIdentity) -> Room | None:
        room: Room | None = None
        try:
            room = await self._lookup(identity)
        except LookupFailure as exc:
            _logger.debug("Room lookup failed for beacon %s: %s", identity, exc)
        except asyncio.CancelledError:
            self._inflight.pop(identity, None)
            raise
        except Exception:
            _logger.warning("Room lookup raised for beacon %s", identity, exc_info=True)

        self._cache[identity] = room
        self._inflight.pop(identity, None)
        _logger.debug("Beacon %s -> room %s", identity, room.name if room is not None else None)
        self.compute_room()
        return room

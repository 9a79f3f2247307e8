from __future__ import annotations

import asyncio
from uuid import UUID

import pytest

from beaconsync.exceptions import LookupFailure
from beaconsync.models.beacon import BeaconIdentity, ProximityRank, RankedBeacon, SightingSnapshot
from beaconsync.models.room import Room
from beaconsync.resolver import RoomResolver, pick_room

NAMESPACE = UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")

ROOM_A = Room(id=UUID("00000000-0000-0000-0000-00000000000a"), name="A")
ROOM_B = Room(id=UUID("00000000-0000-0000-0000-00000000000b"), name="B")
ROOM_C = Room(id=UUID("00000000-0000-0000-0000-00000000000c"), name="C")


def _beacon(minor: int) -> BeaconIdentity:
    return BeaconIdentity(uuid=NAMESPACE, major=1, minor=minor)


def _snapshot(**ranks: list[int]) -> SightingSnapshot:
    return SightingSnapshot.from_ranked(
        RankedBeacon(_beacon(minor), ProximityRank[rank.upper()]) for rank, minors in ranks.items() for minor in minors
    )


class _FakeLookup:
    """Room lookup backed by a dict; minors missing from it fail."""

    def __init__(self, rooms: dict[int, Room | None], *, gate: asyncio.Event | None = None) -> None:
        self._rooms = rooms
        self._gate = gate
        self.calls: list[BeaconIdentity] = []

    async def __call__(self, identity: BeaconIdentity) -> Room | None:
        self.calls.append(identity)
        if self._gate is not None:
            await self._gate.wait()
        if identity.minor not in self._rooms:
            raise LookupFailure("HTTP 404", status_code=404)
        return self._rooms[identity.minor]


def test_pick_room_majority_and_ties() -> None:
    assert pick_room([], None) is None
    assert pick_room([ROOM_A, ROOM_B, ROOM_A], None) == ROOM_A
    # Tie without previous: lowest id.
    assert pick_room([ROOM_B, ROOM_A], None) == ROOM_A
    # Tie keeps previous when tied.
    assert pick_room([ROOM_A, ROOM_B], ROOM_B) == ROOM_B
    # Previous not among tied rooms.
    assert pick_room([ROOM_B, ROOM_C], ROOM_A) == ROOM_B


@pytest.mark.asyncio
async def test_nearest_non_empty_rank_majority_wins() -> None:
    lookup = _FakeLookup({1: ROOM_A, 2: ROOM_A, 3: ROOM_B, 4: ROOM_C})
    resolver = RoomResolver(lookup)

    resolver.handle_snapshot(_snapshot(immediate=[1, 2, 3], near=[4]))
    await resolver.wait_idle()

    assert resolver.current_room.value == ROOM_A


@pytest.mark.asyncio
async def test_rank_with_only_unbound_beacons_is_skipped() -> None:
    lookup = _FakeLookup({1: None, 2: ROOM_C})
    resolver = RoomResolver(lookup)

    resolver.handle_snapshot(_snapshot(immediate=[1], far=[2]))
    await resolver.wait_idle()

    assert resolver.current_room.value == ROOM_C


@pytest.mark.asyncio
async def test_no_emission_while_any_sighted_beacon_is_unresolved() -> None:
    gate = asyncio.Event()
    fast = _FakeLookup({1: ROOM_A})

    class _SplitLookup:
        async def __call__(self, identity: BeaconIdentity) -> Room | None:
            if identity.minor == 2:
                await gate.wait()
                return ROOM_B
            return await fast(identity)

    resolver = RoomResolver(_SplitLookup())
    published: list[Room | None] = []
    resolver.current_room.subscribe(published.append)

    resolver.handle_snapshot(_snapshot(immediate=[1], near=[2]))
    # Let beacon 1 resolve while beacon 2 is still pending.
    for _ in range(5):
        await asyncio.sleep(0)
    assert _beacon(1) in resolver.cache
    assert _beacon(2) not in resolver.cache
    assert published == []

    gate.set()
    await resolver.wait_idle()
    assert published == [ROOM_A]


@pytest.mark.asyncio
async def test_tie_without_previous_room_is_deterministic() -> None:
    outcomes = []
    for _ in range(3):
        resolver = RoomResolver(_FakeLookup({1: ROOM_B, 2: ROOM_A}))
        resolver.handle_snapshot(_snapshot(immediate=[1, 2]))
        await resolver.wait_idle()
        outcomes.append(resolver.current_room.value)

    assert outcomes == [ROOM_A, ROOM_A, ROOM_A]


@pytest.mark.asyncio
async def test_tie_keeps_previous_room() -> None:
    resolver = RoomResolver(_FakeLookup({1: ROOM_A, 2: ROOM_B, 3: ROOM_B}))

    resolver.handle_snapshot(_snapshot(immediate=[2]))
    await resolver.wait_idle()
    assert resolver.current_room.value == ROOM_B

    # A and B now tie; B (higher id) is kept because it was the last room.
    resolver.handle_snapshot(_snapshot(immediate=[1, 2]))
    await resolver.wait_idle()
    assert resolver.current_room.value == ROOM_B


@pytest.mark.asyncio
async def test_failed_lookup_is_cached_and_not_retried() -> None:
    lookup = _FakeLookup({})
    resolver = RoomResolver(lookup)

    resolver.handle_snapshot(_snapshot(near=[9]))
    await resolver.wait_idle()
    resolver.handle_snapshot(_snapshot(far=[9]))
    await resolver.wait_idle()

    assert resolver.cache == {_beacon(9): None}
    assert lookup.calls == [_beacon(9)]
    assert resolver.current_room.value is None


@pytest.mark.asyncio
async def test_concurrent_lookups_for_same_beacon_are_coalesced() -> None:
    gate = asyncio.Event()
    lookup = _FakeLookup({1: ROOM_A}, gate=gate)
    resolver = RoomResolver(lookup)

    resolver.handle_snapshot(_snapshot(near=[1]))
    resolver.handle_snapshot(_snapshot(far=[1]))
    waiter = asyncio.create_task(resolver.resolve_beacon(_beacon(1)))
    await asyncio.sleep(0)

    gate.set()
    assert await waiter == ROOM_A
    await resolver.wait_idle()
    assert lookup.calls == [_beacon(1)]


@pytest.mark.asyncio
async def test_room_only_republished_on_change_and_none_when_empty() -> None:
    resolver = RoomResolver(_FakeLookup({1: ROOM_A, 2: ROOM_A}))
    published: list[Room | None] = []
    resolver.current_room.subscribe(published.append)

    resolver.handle_snapshot(_snapshot(near=[1]))
    await resolver.wait_idle()
    resolver.handle_snapshot(_snapshot(near=[1, 2]))
    await resolver.wait_idle()
    resolver.handle_snapshot(SightingSnapshot())

    assert published == [ROOM_A, None]


@pytest.mark.asyncio
async def test_aclose_cancels_pending_lookups() -> None:
    lookup = _FakeLookup({1: ROOM_A}, gate=asyncio.Event())
    resolver = RoomResolver(lookup)
    resolver.handle_snapshot(_snapshot(near=[1]))
    await asyncio.sleep(0)

    await resolver.aclose()

    assert resolver.cache == {}
    assert resolver.current_room.value is None

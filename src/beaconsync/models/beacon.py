"""Beacon identity, proximity rank and merged sighting snapshot models."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any, NamedTuple
from uuid import UUID

from pydantic import Field

from beaconsync._constants import BEACON_FIELD_MAX
from beaconsync.models._base import BeaconSyncBaseModel, BeaconSyncEnum, uuid_text


class ProximityRank(BeaconSyncEnum):
    """Coarse distance bucket assigned by the sensing layer.

    Member order is the total order, nearest first.
    """

    IMMEDIATE = 0
    NEAR = 1
    FAR = 2
    UNKNOWN = 3


#: All ranks, nearest to farthest.
ALL_PROXIMITY_RANKS: tuple[ProximityRank, ...] = tuple(ProximityRank)


class BeaconIdentity(BeaconSyncBaseModel):
    """Immutable (namespace UUID, major, minor) beacon identity.

    Equality and hashing are structural, so identities are usable as
    cache keys.
    """

    uuid: UUID
    major: int = Field(ge=0, le=BEACON_FIELD_MAX)
    minor: int = Field(ge=0, le=BEACON_FIELD_MAX)

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.uuid.int, self.major, self.minor)

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the room lookup endpoint."""
        return {"uuid": uuid_text(self.uuid), "major": self.major, "minor": self.minor}

    def __str__(self) -> str:
        return f"{uuid_text(self.uuid)}/{self.major}/{self.minor}"


class RankedBeacon(NamedTuple):
    """A single sighted beacon with the rank it was ranged at."""

    identity: BeaconIdentity
    rank: ProximityRank


class SightingSnapshot(BeaconSyncBaseModel):
    """Merged, proximity-ranked view of every currently sighted beacon.

    ``beacons`` maps each non-empty rank to its identities, sorted
    canonically so that equality does not depend on arrival order.
    Build instances with :meth:`from_ranked`.
    """

    beacons: dict[ProximityRank, tuple[BeaconIdentity, ...]] = Field(default_factory=dict)

    @classmethod
    def from_ranked(cls, ranked: Iterable[RankedBeacon]) -> SightingSnapshot:
        """Partition ranked beacons into rank buckets.

        A beacon seen at several ranks (e.g. by overlapping source groups)
        is kept at its nearest rank only.
        """
        nearest: dict[BeaconIdentity, ProximityRank] = {}
        for identity, rank in ranked:
            current = nearest.get(identity)
            if current is None or rank < current:
                nearest[identity] = rank

        buckets: dict[ProximityRank, list[BeaconIdentity]] = {}
        for identity, rank in nearest.items():
            buckets.setdefault(rank, []).append(identity)

        return cls(
            beacons={
                rank: tuple(sorted(buckets[rank], key=lambda b: b.sort_key))
                for rank in ALL_PROXIMITY_RANKS
                if buckets.get(rank)
            }
        )

    @property
    def is_empty(self) -> bool:
        return not self.beacons

    def beacons_at(self, rank: ProximityRank) -> tuple[BeaconIdentity, ...]:
        return self.beacons.get(rank, ())

    def iter_ranks(self) -> Iterator[tuple[ProximityRank, tuple[BeaconIdentity, ...]]]:
        """Yield ``(rank, identities)`` for non-empty ranks, nearest first."""
        for rank in ALL_PROXIMITY_RANKS:
            identities = self.beacons.get(rank)
            if identities:
                yield rank, identities

    def identities(self) -> frozenset[BeaconIdentity]:
        """Every sighted identity across all ranks."""
        return frozenset(identity for identities in self.beacons.values() for identity in identities)

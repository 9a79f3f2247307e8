"""Merge per-source-group beacon sightings into one ranked snapshot."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from uuid import UUID

from beaconsync.models.beacon import BeaconIdentity, ProximityRank, RankedBeacon, SightingSnapshot
from beaconsync.state.observable import Observable, ObservableValue

_logger = logging.getLogger(__name__)


class ProximityAggregator:
    """Combine independent ranging regions into a single sighting snapshot.

    Each source group (one ranging region of the radio stack) reports the
    complete list of beacons it currently ranges.  A report **fully
    replaces** that group's previous contribution; there is no incremental
    patching.  After each report the beacons of all groups are merged and
    the snapshot is republished only if it changed by value.

    Parameters
    ----------
    namespaces
        Beacon namespace UUIDs to accept.  Beacons from other namespaces
        are dropped.  ``None`` or empty accepts everything.
    """

    def __init__(self, namespaces: Iterable[UUID | str] | None = None) -> None:
        self._namespaces: frozenset[UUID] = frozenset(
            ns if isinstance(ns, UUID) else UUID(str(ns)) for ns in (namespaces or ())
        )
        self._groups: dict[str, tuple[RankedBeacon, ...]] = {}
        self._snapshot: ObservableValue[SightingSnapshot] = ObservableValue(SightingSnapshot(), name="sightings")

    @property
    def snapshot(self) -> Observable[SightingSnapshot]:
        """The merged snapshot, republished only on change."""
        return self._snapshot.view()

    @property
    def source_groups(self) -> frozenset[str]:
        return frozenset(self._groups)

    def report_sighting(
        self,
        source_group_id: str,
        ranked_beacons: Iterable[RankedBeacon | tuple[BeaconIdentity, ProximityRank]],
    ) -> bool:
        """Replace *source_group_id*'s sightings and republish if the merge changed.

        Returns ``True`` when a new snapshot was published.
        """
        accepted = tuple(
            RankedBeacon(identity, ProximityRank(rank))
            for identity, rank in ranked_beacons
            if self._accepts(identity)
        )
        self._groups[source_group_id] = accepted
        return self._publish()

    def remove_source_group(self, source_group_id: str) -> bool:
        """Drop a group entirely (e.g. the client left its region)."""
        if self._groups.pop(source_group_id, None) is None:
            return False
        return self._publish()

    def _accepts(self, identity: BeaconIdentity) -> bool:
        return not self._namespaces or identity.uuid in self._namespaces

    def _publish(self) -> bool:
        merged = SightingSnapshot.from_ranked(beacon for group in self._groups.values() for beacon in group)
        changed = self._snapshot.set(merged)
        if changed:
            _logger.debug(
                "Sightings changed: %s",
                {rank.name: [str(b) for b in beacons] for rank, beacons in merged.iter_ranks()},
            )
        return changed

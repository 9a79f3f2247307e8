"""beaconsync - Beacon-based room resolution and per-room world-map handoff."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("beaconsync")
except PackageNotFoundError:
    __version__ = "0+local"
from beaconsync.aggregator import ProximityAggregator
from beaconsync.client import BeaconSyncClient
from beaconsync.config import BeaconSyncConfig
from beaconsync.exceptions import (
    BeaconSyncConfigError,
    BeaconSyncError,
    DecodeFailure,
    LookupFailure,
    MapVersionConflictError,
    NetworkError,
    NoRoomBoundError,
)
from beaconsync.models import (
    BeaconIdentity,
    DownloadedMap,
    ProximityRank,
    RankedBeacon,
    Room,
    RoomMapBinding,
    SightingSnapshot,
    SyncEvent,
    SyncEventKind,
    SyncState,
    SyncStatus,
    WorldMappingStatus,
)
from beaconsync.resolver import RoomResolver
from beaconsync.store import RemoteMapStore
from beaconsync.sync import MapSyncCoordinator, TrackingEngine

__all__ = [
    "__version__",
    "BeaconIdentity",
    "BeaconSyncClient",
    "BeaconSyncConfig",
    "BeaconSyncConfigError",
    "BeaconSyncError",
    "DecodeFailure",
    "DownloadedMap",
    "LookupFailure",
    "MapSyncCoordinator",
    "MapVersionConflictError",
    "NetworkError",
    "NoRoomBoundError",
    "ProximityAggregator",
    "ProximityRank",
    "RankedBeacon",
    "RemoteMapStore",
    "Room",
    "RoomMapBinding",
    "RoomResolver",
    "SightingSnapshot",
    "SyncEvent",
    "SyncEventKind",
    "SyncState",
    "SyncStatus",
    "TrackingEngine",
    "WorldMappingStatus",
]

"""Data models for beaconsync."""

from beaconsync.models._base import BeaconSyncBaseModel, BeaconSyncEnum
from beaconsync.models.beacon import (
    ALL_PROXIMITY_RANKS,
    BeaconIdentity,
    ProximityRank,
    RankedBeacon,
    SightingSnapshot,
)
from beaconsync.models.room import Room, RoomMapBinding
from beaconsync.models.sync import SyncEvent, SyncEventKind, SyncState, SyncStatus, WorldMappingStatus
from beaconsync.models.world_map import DownloadedMap, MapLocation, UploadConfirmation, UploadSlot

__all__ = [
    "ALL_PROXIMITY_RANKS",
    "BeaconIdentity",
    "BeaconSyncBaseModel",
    "BeaconSyncEnum",
    "DownloadedMap",
    "MapLocation",
    "ProximityRank",
    "RankedBeacon",
    "Room",
    "RoomMapBinding",
    "SightingSnapshot",
    "SyncEvent",
    "SyncEventKind",
    "SyncState",
    "SyncStatus",
    "UploadConfirmation",
    "UploadSlot",
    "WorldMappingStatus",
]

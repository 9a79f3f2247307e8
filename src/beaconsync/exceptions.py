"""Custom exception hierarchy for beaconsync."""

from __future__ import annotations


class BeaconSyncError(Exception):
    """Base exception for all beaconsync errors."""


class BeaconSyncConfigError(BeaconSyncError):
    """Invalid or missing configuration."""


class LookupFailure(BeaconSyncError):
    """Beacon-to-room lookup failed (non-200, transport fault, bad body).

    The resolver recovers from this locally by caching "no room" for the
    beacon; it is never retried.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class NetworkError(BeaconSyncError):
    """HTTP-level failure (transport fault, timeout, non-success status)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class MapVersionConflictError(NetworkError):
    """Upload confirmation rejected because ``old_uuid`` is stale (HTTP 409)."""


class DecodeFailure(NetworkError):
    """Response body or map payload could not be decoded.

    Subclasses :class:`NetworkError` so callers handle both the same way.
    """


class NoRoomBoundError(BeaconSyncError):
    """An explicit map save was requested while no room is bound."""

"""Base model and enum for beaconsync models.

Every wire-facing model inherits from :class:`BeaconSyncBaseModel`, which
is frozen (hashable, safe to publish to observers) and ignores unknown
keys so backend additions never break parsing.

Ordered enums inherit from :class:`BeaconSyncEnum`, which adds a
``_missing_`` hook resolving unmapped values (including member names
given as strings) to ``UNKNOWN``.
"""

from __future__ import annotations

import enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict


def uuid_text(value: UUID) -> str:
    """Render a UUID the way the backend stores it (uppercase, hyphenated)."""
    return str(value).upper()


class BeaconSyncEnum(enum.IntEnum):
    """Base for ordered enums.

    Every subclass **must** define an ``UNKNOWN`` member.
    """

    @classmethod
    def _missing_(cls, value: object) -> BeaconSyncEnum:
        if isinstance(value, str):
            member = cls.__members__.get(value.strip().upper())
            if member is not None:
                return member
        unknown: BeaconSyncEnum = cls.UNKNOWN  # type: ignore[attr-defined]
        return unknown


class BeaconSyncBaseModel(BaseModel):
    """Base for beaconsync models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

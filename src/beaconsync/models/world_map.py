"""World-map transfer models (presigned upload/download handoff)."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import AliasChoices, Field

from beaconsync.models._base import BeaconSyncBaseModel, uuid_text


class UploadSlot(BeaconSyncBaseModel):
    """Presigned upload destination plus the version it will become.

    Parameters
    ----------
    upload_target : str
        Presigned URL to ``PUT`` the blob to.
    new_version : UUID
        Version token to confirm once the transfer succeeded.
    """

    upload_target: str = Field(validation_alias=AliasChoices("url", "upload_target"))
    new_version: UUID = Field(validation_alias=AliasChoices("uuid", "new_version"))


class MapLocation(BeaconSyncBaseModel):
    """Presigned download source for a room's current map."""

    download_target: str = Field(validation_alias=AliasChoices("url", "download_target"))
    version: UUID = Field(validation_alias=AliasChoices("uuid", "version"))


class DownloadedMap(BeaconSyncBaseModel):
    """A fetched map blob and the version it belongs to."""

    blob: bytes = Field(repr=False)
    version: UUID


class UploadConfirmation(BeaconSyncBaseModel):
    """Body of the upload confirmation call.

    ``old_uuid`` is the version the upload replaces (``None`` for a
    room's first save); the backend uses it for optimistic concurrency.
    """

    old_uuid: UUID | None = None
    uuid: UUID

    def to_payload(self) -> dict[str, Any]:
        return {
            "old_uuid": uuid_text(self.old_uuid) if self.old_uuid is not None else None,
            "uuid": uuid_text(self.uuid),
        }

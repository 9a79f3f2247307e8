"""Shared helpers for backend endpoint modules.

It is internal to beaconsync and may change at any time.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from beaconsync.exceptions import DecodeFailure
from beaconsync.models._base import uuid_text
from beaconsync.models.room import Room

TModel = TypeVar("TModel", bound=BaseModel)


def room_endpoint(template: str, room: Room) -> str:
    """Fill a ``{room_id}`` endpoint template for *room*."""
    return template.format(room_id=uuid_text(room.id))


def parse_payload(model_cls: type[TModel], payload: Any, *, endpoint: str) -> TModel:
    """Validate a decoded JSON payload, mapping failures to :class:`DecodeFailure`."""
    if not isinstance(payload, dict):
        raise DecodeFailure(
            f"{endpoint} returned {type(payload).__name__}, expected an object",
            endpoint=endpoint,
        )
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        raise DecodeFailure(f"{endpoint} returned an unexpected body: {exc}", endpoint=endpoint) from exc

"""Internal constants shared across the library."""

BASE_URL = "https://api.fyp.maitree.dev"
USER_AGENT = "beaconsync/0 (+aiohttp)"

#: Namespace the reference deployment's beacons advertise under.
DEFAULT_BEACON_NAMESPACE = "AAAAAAAA-AAAA-AAAA-AAAA-AAAAAAAAAAAA"

# ------------------------------------------------------------------
# Backend endpoints
# ------------------------------------------------------------------

ROOM_LOOKUP_ENDPOINT = "/ibeacon/getRoom"
WORLD_MAP_ENDPOINT = "/room/{room_id}/ARWorldMap"
UPLOAD_SLOT_ENDPOINT = "/room/{room_id}/ARWorldMap/getPresignedUploadUrl"
UPLOAD_CONFIRM_ENDPOINT = "/room/{room_id}/ARWorldMap/presignedUploadConfirmation"

BLOB_CONTENT_TYPE = "application/octet-stream"

# iBeacon major/minor are unsigned 16-bit fields.
BEACON_FIELD_MAX = 0xFFFF

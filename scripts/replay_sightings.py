#!/usr/bin/env python3
"""Replay recorded beacon sightings through beaconsync.

Feeds a JSON file of sighting reports into a ``BeaconSyncClient`` and
prints every room change and sync status change.  The tracking engine is
emulated by a single file: its content is the "current map" handed over
on save, and applied maps overwrite it.

Input format
------------
A JSON list of steps::

    [
      {"group": "region-1",
       "beacons": [{"uuid": "AAAAAAAA-...", "major": 1, "minor": 2, "rank": "near"}]},
      {"group": "region-1", "remove": true},
      {"sleep": 1.5},
      {"save": true}
    ]

Usage
-----
::

    export BEACONSYNC_BASE_URL="https://api.example.com"
    python scripts/replay_sightings.py sightings.json --map-file /tmp/map.bin
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from beaconsync import BeaconSyncClient, BeaconSyncConfig, BeaconSyncError  # noqa: E402
from beaconsync.models.beacon import BeaconIdentity, ProximityRank, RankedBeacon  # noqa: E402
from beaconsync.models.room import Room  # noqa: E402
from beaconsync.models.sync import SyncEvent, SyncStatus  # noqa: E402


class FileTrackingEngine:
    """Tracking engine whose map is the content of one file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    async def get_current_map_blob(self) -> bytes | None:
        if not self._path.exists():
            return None
        return self._path.read_bytes() or None

    def apply_map_blob(self, blob: bytes) -> None:
        self._path.write_bytes(blob)
        print(f"  engine: applied map ({len(blob)} bytes) -> {self._path}")


def _parse_beacons(entries: list[dict[str, Any]]) -> list[RankedBeacon]:
    ranked: list[RankedBeacon] = []
    for entry in entries:
        identity = BeaconIdentity(uuid=entry["uuid"], major=entry["major"], minor=entry["minor"])
        ranked.append(RankedBeacon(identity, ProximityRank(entry.get("rank", "unknown"))))
    return ranked


def _print_room(room: Room | None) -> None:
    print(f"room -> {room.name if room else '-'} ({room.id if room else 'none'})")


def _print_status(status: SyncStatus) -> None:
    room = status.room.name if status.room else "-"
    suffix = f" reason={status.reason}" if status.reason else ""
    print(f"sync -> {status.state.value} room={room} version={status.version}{suffix}")


def _print_event(event: SyncEvent) -> None:
    print(f"  event: {event.kind.value} room={event.room.name if event.room else '-'} version={event.version}")


async def run(args: argparse.Namespace) -> int:
    steps = json.loads(Path(args.input).read_text())
    if not isinstance(steps, list):
        print("Input must be a JSON list of steps", file=sys.stderr)
        return 2

    overrides: dict[str, Any] = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    config = BeaconSyncConfig.from_env(**overrides)
    engine = FileTrackingEngine(Path(args.map_file))

    async with BeaconSyncClient(config, engine, on_sync_event=_print_event) as client:
        client.current_room.subscribe(_print_room)
        client.sync_status.subscribe(_print_status)

        for index, step in enumerate(steps):
            if "sleep" in step:
                await asyncio.sleep(float(step["sleep"]))
            elif step.get("save"):
                try:
                    version = await client.save_current_map()
                except BeaconSyncError as exc:
                    print(f"  save failed: {exc}")
                else:
                    print(f"  saved version {version}")
            elif step.get("remove"):
                client.remove_source_group(step["group"])
            elif "group" in step:
                client.report_sighting(step["group"], _parse_beacons(step.get("beacons", [])))
            else:
                print(f"Skipping unrecognised step #{index}: {step!r}", file=sys.stderr)
                continue
            if not args.no_wait:
                await client.wait_idle()

        await client.wait_idle()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay recorded beacon sightings through beaconsync.")
    parser.add_argument("input", help="JSON file with sighting steps")
    parser.add_argument("--map-file", default="worldmap.bin", help="File emulating the tracking engine's map")
    parser.add_argument("--base-url", help="Backend base URL (default: BEACONSYNC_BASE_URL or built-in)")
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Do not wait for lookups and transitions between steps",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()

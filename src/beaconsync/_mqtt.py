"""Internal MQTT publisher for the published observables."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from beaconsync.config import BeaconSyncConfig
from beaconsync.models._base import uuid_text
from beaconsync.models.room import Room
from beaconsync.models.sync import SyncStatus, WorldMappingStatus


@dataclass(frozen=True)
class MqttTopics:
    """Topics the publisher writes to, derived from a common prefix."""

    room: str
    sync: str
    mapping_status: str

    @classmethod
    def from_prefix(cls, prefix: str) -> MqttTopics:
        base = prefix.rstrip("/")
        return cls(room=f"{base}/room", sync=f"{base}/sync", mapping_status=f"{base}/mapping_status")


def encode_room(room: Room | None) -> str:
    if room is None:
        return json.dumps({"room": None})
    return json.dumps({"room": {"id": uuid_text(room.id), "name": room.name}})


def encode_sync_status(status: SyncStatus) -> str:
    payload: dict[str, Any] = {
        "state": status.state.value,
        "room": uuid_text(status.room.id) if status.room is not None else None,
        "version": uuid_text(status.version) if status.version is not None else None,
        "reason": status.reason,
    }
    return json.dumps(payload)


def encode_mapping_status(status: WorldMappingStatus) -> str:
    return json.dumps({"status": status.value})


class MqttStatePublisher:
    """Threaded paho-mqtt client publishing retained state messages.

    Publishing is best-effort: broker outages are logged and never
    propagate into the resolution or sync pipeline.
    """

    def __init__(
        self,
        config: BeaconSyncConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._topics = MqttTopics.from_prefix(config.mqtt_topic_prefix)
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._connected = False
        # Latest payload per topic, replayed after every (re)connect.
        self._retained: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def topics(self) -> MqttTopics:
        return self._topics

    def start(self) -> None:
        """Connect to the broker in the background.

        State published before the connection is up is kept and sent once
        the broker accepts the connection.
        """
        self.stop()
        config = self._config
        self._logger.debug(
            "Starting MQTT state publisher broker=%s:%s prefix=%s tls=%s",
            config.mqtt_host,
            config.mqtt_port,
            config.mqtt_topic_prefix,
            config.mqtt_tls,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.mqtt_username:
            client.username_pw_set(config.mqtt_username, config.mqtt_password)
        if config.mqtt_tls:
            client.tls_set()

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.connect_async(config.mqtt_host, config.mqtt_port, keepalive=config.mqtt_keepalive)
        client.loop_start()
        self._client = client

    def stop(self) -> None:
        """Disconnect and stop the network loop.  Safe to call repeatedly."""
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            if self._connected:
                client.disconnect()
        finally:
            self._connected = False
            client.loop_stop()
            self._logger.debug("MQTT state publisher stopped")

    # paho callbacks run on the network-loop thread.

    def _on_connect(self, client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _props: Any) -> None:
        if reason_code.value != 0:
            self._logger.warning("MQTT broker refused connection: %s", reason_code)
            return
        self._connected = True
        with self._lock:
            pending = list(self._retained.items())
        self._logger.debug("MQTT connected, replaying %d retained topics", len(pending))
        for topic, payload in pending:
            self._send(client, topic, payload)

    def _on_disconnect(self, _client: mqtt.Client, _userdata: Any, _flags: Any, reason_code: Any, _props: Any) -> None:
        was_connected = self._connected
        self._connected = False
        if was_connected:
            self._logger.info("MQTT connection lost: %s", reason_code)

    def _send(self, client: mqtt.Client, topic: str, payload: str) -> None:
        try:
            client.publish(topic, payload, qos=1, retain=True)
        except Exception:
            self._logger.debug("MQTT publish to %s failed", topic, exc_info=True)

    def _publish(self, topic: str, payload: str) -> None:
        with self._lock:
            self._retained[topic] = payload
        client = self._client
        if client is None or not self._connected:
            return
        self._send(client, topic, payload)

    def publish_room(self, room: Room | None) -> None:
        self._publish(self._topics.room, encode_room(room))

    def publish_sync_status(self, status: SyncStatus) -> None:
        self._publish(self._topics.sync, encode_sync_status(status))

    def publish_mapping_status(self, status: WorldMappingStatus) -> None:
        self._publish(self._topics.mapping_status, encode_mapping_status(status))

"""Client configuration for beaconsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any
from uuid import UUID

from beaconsync._constants import BASE_URL, DEFAULT_BEACON_NAMESPACE, USER_AGENT
from beaconsync.exceptions import BeaconSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise BeaconSyncConfigError(f"{env_key} must be a number, got {value!r}") from exc


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclasses.dataclass(frozen=True)
class BeaconSyncConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Backend base URL for room lookups and world-map metadata calls.
    request_timeout : float
        Seconds allowed for each metadata request (lookup, upload slot,
        confirmation, map location).
    transfer_timeout : float
        Seconds allowed for each presigned blob transfer (PUT or GET).
    capture_timeout : float
        Seconds to wait for the tracking engine to hand over its current
        map blob before the save is skipped.
    monitored_uuids : tuple of str
        Beacon namespace UUIDs to accept.  Sightings from other namespaces
        are ignored.  An empty tuple accepts every namespace.
    user_agent : str
        ``User-Agent`` header sent with backend requests.
    mqtt_enabled : bool
        Publish room/sync/mapping state to an MQTT broker.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_topic_prefix : str
        Prefix for the published topics (``{prefix}/room`` etc.).
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    mqtt_tls : bool
        Connect to the broker over TLS.
    mqtt_username : str or None
        Broker username, if the broker requires authentication.
    mqtt_password : str or None
        Broker password.
    """

    base_url: str = BASE_URL
    request_timeout: float = 10.0
    transfer_timeout: float = 60.0
    capture_timeout: float = 10.0
    monitored_uuids: tuple[str, ...] = (DEFAULT_BEACON_NAMESPACE,)
    user_agent: str = USER_AGENT
    mqtt_enabled: bool = False
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_topic_prefix: str = "beaconsync"
    mqtt_keepalive: int = 60
    mqtt_tls: bool = False
    mqtt_username: str | None = None
    mqtt_password: str | None = None

    def __post_init__(self) -> None:
        for name in ("request_timeout", "transfer_timeout", "capture_timeout"):
            if getattr(self, name) <= 0:
                raise BeaconSyncConfigError(f"{name} must be positive")
        if not self.base_url.startswith(("http://", "https://")):
            raise BeaconSyncConfigError(f"base_url must be an http(s) URL, got {self.base_url!r}")
        for namespace in self.monitored_uuids:
            try:
                UUID(str(namespace))
            except ValueError as exc:
                raise BeaconSyncConfigError(f"monitored_uuids entry {namespace!r} is not a UUID") from exc
        # Normalise so endpoint paths can be appended directly.
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @classmethod
    def from_env(cls, **overrides: Any) -> BeaconSyncConfig:
        """Create configuration from environment variables.

        Reads optional ``BEACONSYNC_*`` variables.  Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        BeaconSyncConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "BEACONSYNC_BASE_URL": "base_url",
            "BEACONSYNC_USER_AGENT": "user_agent",
            "BEACONSYNC_MQTT_HOST": "mqtt_host",
            "BEACONSYNC_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
            "BEACONSYNC_MQTT_USERNAME": "mqtt_username",
            "BEACONSYNC_MQTT_PASSWORD": "mqtt_password",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_FLOAT_MAP = {
            "BEACONSYNC_REQUEST_TIMEOUT": "request_timeout",
            "BEACONSYNC_TRANSFER_TIMEOUT": "transfer_timeout",
            "BEACONSYNC_CAPTURE_TIMEOUT": "capture_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_number(env_key, val, float)

        _ENV_INT_MAP = {
            "BEACONSYNC_MQTT_PORT": "mqtt_port",
            "BEACONSYNC_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_number(env_key, val, int)

        uuids_env = env.get("BEACONSYNC_MONITORED_UUIDS")
        if uuids_env is not None:
            config_kwargs["monitored_uuids"] = _split_csv(uuids_env)

        config_kwargs["mqtt_enabled"] = _env_bool(env.get("BEACONSYNC_MQTT_ENABLED"), False)
        config_kwargs["mqtt_tls"] = _env_bool(env.get("BEACONSYNC_MQTT_TLS"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

"""HTTP transport for backend metadata calls and presigned blob transfers."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import aiohttp

from beaconsync._constants import BLOB_CONTENT_TYPE
from beaconsync._redact import redact_for_log, redact_url
from beaconsync.config import BeaconSyncConfig
from beaconsync.exceptions import DecodeFailure, NetworkError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`HttpTransport`) concrete.

    Metadata calls take backend-relative *endpoint* paths; blob transfers
    take absolute presigned URLs.  Every method raises
    :class:`NetworkError` on transport faults, timeouts and unexpected
    statuses, carrying ``status_code`` when the server answered.
    """

    async def get_json(self, endpoint: str) -> Any: ...

    async def post_json(self, endpoint: str, body: Any) -> Any: ...

    async def put_bytes(self, url: str, data: bytes) -> None: ...

    async def get_bytes(self, url: str) -> bytes: ...


def _decode_json(text: str, endpoint: str) -> Any:
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeFailure(
            f"Invalid JSON from {endpoint}: {text[:200]}",
            endpoint=endpoint,
        ) from exc


class HttpTransport:
    """aiohttp-backed :class:`Transport` with bounded timeouts.

    Metadata calls use ``config.request_timeout``; presigned transfers use
    ``config.transfer_timeout``.  A stalled call therefore always ends in
    :class:`NetworkError` instead of hanging its caller.
    """

    def __init__(self, config: BeaconSyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._request_timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        self._transfer_timeout = aiohttp.ClientTimeout(total=config.transfer_timeout)

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {"user-agent": self._config.user_agent}
        if content_type:
            headers["content-type"] = content_type
        return headers

    async def get_json(self, endpoint: str) -> Any:
        """GET a backend endpoint; any 2xx is success."""
        text = await self._request_text("GET", endpoint, success=range(200, 300))
        return _decode_json(text, endpoint)

    async def post_json(self, endpoint: str, body: Any) -> Any:
        """POST a JSON body to a backend endpoint; only 200 is success."""
        _logger.debug("POST %s body=%s", endpoint, redact_for_log(body))
        text = await self._request_text(
            "POST",
            endpoint,
            success=(200,),
            data=json.dumps(body, separators=(",", ":")),
            content_type="application/json",
        )
        return _decode_json(text, endpoint)

    async def _request_text(
        self,
        method: str,
        endpoint: str,
        *,
        success: range | tuple[int, ...],
        data: str | None = None,
        content_type: str | None = None,
    ) -> str:
        url = f"{self._config.base_url}{endpoint}"
        _logger.debug("%s %s", method, url)
        try:
            async with self._http.request(
                method,
                url,
                data=data,
                headers=self._headers(content_type),
                timeout=self._request_timeout,
            ) as resp:
                text = await resp.text()
                if resp.status not in success:
                    raise NetworkError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
                return text
        except NetworkError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(
                f"Request to {endpoint} failed: {exc!r}",
                endpoint=endpoint,
            ) from exc

    async def put_bytes(self, url: str, data: bytes) -> None:
        """PUT a raw blob to a presigned URL; only 200 is success."""
        endpoint = redact_url(url)
        _logger.debug("PUT %s (%d bytes)", endpoint, len(data))
        try:
            async with self._http.put(
                url,
                data=data,
                headers={"content-type": BLOB_CONTENT_TYPE},
                timeout=self._transfer_timeout,
            ) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise NetworkError(
                        f"HTTP {resp.status} uploading to {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except NetworkError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(f"Upload to {endpoint} failed: {exc!r}", endpoint=endpoint) from exc

    async def get_bytes(self, url: str) -> bytes:
        """GET a raw blob from a presigned URL; any 2xx is success."""
        endpoint = redact_url(url)
        _logger.debug("GET %s", endpoint)
        try:
            async with self._http.get(url, timeout=self._transfer_timeout) as resp:
                if not 200 <= resp.status < 300:
                    text = await resp.text()
                    raise NetworkError(
                        f"HTTP {resp.status} downloading {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
                payload = await resp.read()
        except NetworkError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise NetworkError(f"Download from {endpoint} failed: {exc!r}", endpoint=endpoint) from exc

        _logger.debug("Downloaded %d bytes from %s", len(payload), endpoint)
        return payload

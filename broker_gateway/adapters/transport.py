"""
Exchange Adapter - Transport.

============================================================
PURPOSE
============================================================
The single seam between adapters and the network:

    await transport.invoke(endpoint, params, method) -> payload

Failures are raised as TransportError with a message the error
classifier understands (errno names, "Response code NNN").

BitsoTransport signs private requests:
    Authorization: Bitso <key>:<nonce>:<hmac_sha256(nonce+method+path+body)>

============================================================
"""

import asyncio
import errno
import hashlib
import hmac
import json
import logging
import socket
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode, urlsplit

import aiohttp

from ..types import Credentials
from .errors import TransportError
from .logging_utils import AdapterLogger


logger = logging.getLogger(__name__)


class Transport(ABC):
    """
    Abstract request transport.
    """

    async def connect(self) -> None:
        """Open underlying resources."""

    async def disconnect(self) -> None:
        """Release underlying resources."""

    @abstractmethod
    async def invoke(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
    ) -> Any:
        """
        Issue one request.

        Args:
            endpoint: Endpoint name, may contain `:name:` placeholders
                filled from `params` (e.g., "orders/:oid:")
            params: Query parameters or body
            method: HTTP method

        Returns:
            Decoded response body

        Raises:
            TransportError: On any transport or HTTP failure
        """


def render_endpoint(endpoint: str, params: Optional[Dict[str, Any]]) -> Tuple[str, Dict[str, Any]]:
    """
    Fill `:name:` placeholders from params.

    Returns:
        (path, remaining params)
    """
    remaining = dict(params or {})
    parts = []
    for part in endpoint.strip("/").split("/"):
        if len(part) > 2 and part.startswith(":") and part.endswith(":"):
            name = part[1:-1]
            if name not in remaining:
                raise ValueError(f"Missing path parameter {name!r} for {endpoint}")
            parts.append(str(remaining.pop(name)))
        else:
            parts.append(part)
    return "/".join(parts), remaining


class BitsoTransport(Transport):
    """
    aiohttp transport for the Bitso REST API.
    """

    def __init__(
        self,
        rest_url: str,
        credentials: Optional[Credentials] = None,
        timeout_seconds: float = 6.0,
        adapter_logger: Optional[AdapterLogger] = None,
    ):
        self._rest_url = rest_url.rstrip("/")
        self._credentials = credentials
        self._timeout_seconds = timeout_seconds
        self._log = adapter_logger or AdapterLogger("bitso")
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_connected(self) -> bool:
        return self._session is not None and not self._session.closed

    async def connect(self) -> None:
        if self.is_connected:
            return
        timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
        self._session = aiohttp.ClientSession(timeout=timeout)

    async def disconnect(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    # --------------------------------------------------------
    # SIGNING
    # --------------------------------------------------------

    def _auth_headers(self, method: str, request_path: str, body: str) -> Dict[str, str]:
        if not self._credentials:
            return {}

        nonce = str(int(time.time() * 1000))
        message = f"{nonce}{method}{request_path}{body}"
        signature = hmac.new(
            self._credentials.secret.encode(),
            message.encode(),
            hashlib.sha256,
        ).hexdigest()

        return {"Authorization": f"Bitso {self._credentials.key}:{nonce}:{signature}"}

    # --------------------------------------------------------
    # REQUEST
    # --------------------------------------------------------

    async def invoke(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        method: str = "GET",
    ) -> Any:
        if not self.is_connected:
            await self.connect()

        method = method.upper()
        path, remaining = render_endpoint(endpoint, params)
        url = f"{self._rest_url}/{path}/"
        request_path = urlsplit(url).path

        body = ""
        if method in ("GET", "DELETE"):
            if remaining:
                query = urlencode(remaining)
                url = f"{url}?{query}"
                request_path = f"{request_path}?{query}"
        else:
            body = json.dumps(remaining)

        headers = {"Content-Type": "application/json"}
        headers.update(self._auth_headers(method, request_path, body))

        request_id = self._log.log_request(endpoint, method, request_path, remaining, headers)
        started = time.monotonic()

        try:
            async with self._session.request(
                method,
                url,
                data=body or None,
                headers=headers,
            ) as response:
                try:
                    data = await response.json(content_type=None)
                except (ValueError, aiohttp.ContentTypeError):
                    data = None

                latency_ms = (time.monotonic() - started) * 1000

                if response.status >= 400:
                    message = f"Response code {response.status}"
                    detail = (data or {}).get("error") if isinstance(data, dict) else None
                    if isinstance(detail, dict):
                        message = (
                            f"{message}: Error {detail.get('code')}: {detail.get('message')}"
                        )
                    self._log.log_response(
                        endpoint, request_id, latency_ms, False,
                        http_status=response.status, error_message=message,
                    )
                    raise TransportError(
                        message,
                        http_status=response.status,
                        code=detail.get("code") if isinstance(detail, dict) else None,
                        payload=data,
                    )

                self._log.log_response(
                    endpoint, request_id, latency_ms, True,
                    http_status=response.status, response_body=data,
                )
                return data

        except asyncio.TimeoutError:
            raise TransportError(f"ETIMEDOUT: {method} {request_path} timed out")
        except aiohttp.ClientConnectorError as e:
            raise TransportError(f"{_connector_error_code(e)}: {e}")
        except aiohttp.ServerDisconnectedError as e:
            raise TransportError(f"ECONNRESET: {e}")
        except aiohttp.ClientError as e:
            raise TransportError(f"ECONNRESET: {e.__class__.__name__}: {e}")


def _connector_error_code(error: aiohttp.ClientConnectorError) -> str:
    """errno name for a connection failure, e.g. ECONNREFUSED."""
    os_error = getattr(error, "os_error", None)
    if isinstance(os_error, socket.gaierror):
        return "EAI_AGAIN"
    code = errno.errorcode.get(getattr(os_error, "errno", None) or 0)
    return code or "ECONNREFUSED"

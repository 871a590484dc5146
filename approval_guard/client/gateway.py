"""HTTP gateway to the approval service."""

import asyncio
import codecs
import json
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlsplit

import aiohttp
from loguru import logger

from .exceptions import HttpError, InvalidResponseError, NetworkError
from .models import ApprovalRequest, RequestStatus

REQUEST_PATH = "/api/guard/request"
STATUS_PATH = "/api/guard/status"
STREAM_PATH = "/api/guard/wait-sse"


def connection_hint(url: str) -> str:
    """Build a human readable hint for an unreachable service URL."""
    parts = urlsplit(url)
    host = parts.hostname or "localhost"
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is None:
        port = 443 if parts.scheme == "https" else 80
    return (
        f"Is the approval service running and reachable at {host}:{port}? "
        "Set APPROVAL_GUARD_BASE_URL to point at a different server."
    )



def _error_text(body: bytes) -> str:
    # Error bodies are informational only; undecodable bytes must not hide the status
    return body.decode("utf-8", errors="replace")

class GuardGateway:
    """Issues the create, status and stream calls against the approval service.

    Holds a single lazily created ``aiohttp.ClientSession`` and nothing else
    between calls.
    """

    def __init__(
        self,
        base_url: str,
        request_timeout: float = 30.0,
        stream_connect_timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.request_timeout = request_timeout
        self.stream_connect_timeout = stream_connect_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "GuardGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _network_error(self, url: str, error: BaseException) -> NetworkError:
        logger.warning(f"Approval service unreachable at {url}: {type(error).__name__}: {error}")
        return NetworkError(url, connection_hint(url), cause=error)

    @staticmethod
    def _decode_status(body: bytes, url: str) -> RequestStatus:
        try:
            data: Any = json.loads(body.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise InvalidResponseError(f"Response from {url} is not valid UTF-8: {e}")
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"Invalid JSON from {url}: {e}")
        return RequestStatus.from_dict(data)

    async def _call(self, method: str, url: str, **kwargs) -> RequestStatus:
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with session.request(method, url, timeout=timeout, **kwargs) as response:
                body = await response.read()
                if not 200 <= response.status < 300:
                    raise HttpError(response.status, _error_text(body), url=url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._network_error(url, e)
        return self._decode_status(body, url)

    async def create_request(self, request: ApprovalRequest) -> RequestStatus:
        """Submit a new approval request."""
        url = f"{self.base_url}{REQUEST_PATH}"
        logger.debug(f"Creating approval request for action {request.action!r}")
        return await self._call(
            "POST",
            url,
            json=request.to_payload(),
            headers={"Content-Type": "application/json"},
        )

    async def fetch_status(self, request_id: str) -> RequestStatus:
        """Read the current status of a request."""
        url = f"{self.base_url}{STATUS_PATH}"
        return await self._call("GET", url, params={"requestId": request_id})

    async def stream(self, token: str) -> AsyncIterator[str]:
        """Open the server-push channel and yield decoded text chunks.

        Ends when the server closes the body. Transport failures surface as
        NetworkError, non-2xx answers as HttpError.
        """
        url = f"{self.base_url}{STREAM_PATH}"
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(
            total=None, sock_read=None, sock_connect=self.stream_connect_timeout
        )
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            async with session.get(
                url,
                params={"token": token},
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
            ) as response:
                if not 200 <= response.status < 300:
                    raise HttpError(response.status, _error_text(await response.read()), url=url)
                async for chunk in response.content.iter_any():
                    text = decoder.decode(chunk)
                    if text:
                        yield text
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield tail
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self._network_error(url, e)

"""HTTP fan-out — send N JSON-RPC payloads in parallel, get N replies back.

Replies preserve the order of the requests and carry the URL they came
from, so callers can pair them back to endpoints without relying on array
position.  Transport failures never raise; they come back as a reply with
``status_code == 0`` and the error text.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class HttpRequest:
    """One POST to send: *payload* is JSON-encoded as the body."""

    url: str
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HttpReply:
    url: str
    status_code: int
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    def json(self) -> Any:
        """Decode the body; raises ``ValueError`` on invalid JSON."""
        return json.loads(self.text)


@runtime_checkable
class FanoutTransport(Protocol):
    """Sends a batch of requests concurrently."""

    async def fetch_all(self, requests: Sequence[HttpRequest]) -> list[HttpReply]:
        """Return one reply per request, in request order."""
        ...


class HttpxFanout:
    """:class:`FanoutTransport` backed by a shared ``httpx.AsyncClient``.

    Usage::

        async with HttpxFanout(timeout=30) as fanout:
            replies = await fanout.fetch_all([HttpRequest(url, payload)])
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> HttpxFanout:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self

    async def __aexit__(self, *_: object) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "HttpxFanout must be used as an async context manager"
            raise RuntimeError(msg)
        return self._client

    async def fetch_all(self, requests: Sequence[HttpRequest]) -> list[HttpReply]:
        return list(await asyncio.gather(*[self._post(r) for r in requests]))

    async def _post(self, request: HttpRequest) -> HttpReply:
        headers = {**self._headers, **request.headers}
        try:
            response = await self._http().post(request.url, json=request.payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("POST %s failed: %s", request.url, exc)
            return HttpReply(url=request.url, status_code=0, error=str(exc))
        return HttpReply(url=request.url, status_code=response.status_code, text=response.text)

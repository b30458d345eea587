"""Sending offload requests.

Copyright (C) 2025 Sergey Porfiriev <parf@difive.com>

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 2 of the License, or
(at your option) any later version.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol

import aiohttp
from aiohttp import ClientSession, ClientTimeout
from multidict import CIMultiDict

from offload_proxy.errors import OffloadTransportError
from offload_proxy.models import BodyStream, OffloadRequest, OffloadResponse

logger = logging.getLogger(__name__)

# Not settable by the backend, only through proxy configuration
DEFAULT_OFFLOAD_TIMEOUT = 30

CHUNK_SIZE = 64 * 1024


class HttpClient(Protocol):
    """Anything able to send a request and return its response."""

    async def send(
        self,
        method: str,
        url: str,
        headers: CIMultiDict,
        body: Optional[BodyStream],
        timeout: float,
    ) -> OffloadResponse:
        ...


class StreamedBody:
    """Body of an offload response.

    The connection is released once the body has been read to the end, or
    when ``aclose`` is called, whether or not iteration ever started.
    """

    def __init__(self, resp: aiohttp.ClientResponse):
        self.resp = resp

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.resp.content.iter_chunked(CHUNK_SIZE):
                yield chunk
        finally:
            self.resp.release()

    async def aclose(self):
        self.resp.release()


class AiohttpClient:
    """HttpClient backed by an aiohttp ClientSession."""

    def __init__(self, session: ClientSession):
        self.session = session

    async def send(
        self,
        method: str,
        url: str,
        headers: CIMultiDict,
        body: Optional[BodyStream],
        timeout: float,
    ) -> OffloadResponse:
        """Send a request, returning as soon as the response headers arrive.

        The response body is streamed; the connection is released once the
        body has been read to the end or the stream is closed.

        Raises:
            OffloadTransportError: connection failure or timeout
        """
        try:
            resp = await self.session.request(
                method,
                url,
                headers=headers,
                data=body,
                timeout=ClientTimeout(total=timeout),
            )
        except asyncio.TimeoutError as e:
            raise OffloadTransportError(
                f"Offload request timed out after {timeout}s: {method} {url}",
                timeout=True,
            ) from e
        except aiohttp.ClientError as e:
            raise OffloadTransportError(f"Offload request failed: {method} {url}: {e}") from e

        return OffloadResponse(
            status=resp.status,
            headers=CIMultiDict(resp.headers),
            body=StreamedBody(resp),
        )


class OffloadExecutor:
    """Sends offload requests through an HttpClient with a bounded timeout."""

    def __init__(self, client: HttpClient, timeout: float = DEFAULT_OFFLOAD_TIMEOUT):
        self.client = client
        self.timeout = timeout

    async def execute(self, request: OffloadRequest) -> OffloadResponse:
        logger.debug(f"Sending offload request {request.method} {request.url}")
        return await self.client.send(
            request.method,
            request.url,
            request.headers,
            request.body,
            self.timeout,
        )

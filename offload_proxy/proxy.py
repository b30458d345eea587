"""Reverse proxy server that offloads backend responses on request.

Copyright (C) 2025 Sergey Porfiriev <parf@difive.com>

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 2 of the License, or
(at your option) any later version.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout, web
from aiohttp.web import Request, StreamResponse
from multidict import CIMultiDict

from offload_proxy.errors import OffloadError, OffloadTransportError
from offload_proxy.executor import DEFAULT_OFFLOAD_TIMEOUT, AiohttpClient, OffloadExecutor
from offload_proxy.models import DEFAULT_HEADER_PREFIX, BackendResponse, HeaderNames
from offload_proxy.offloader import OffloadHandler

logger = logging.getLogger(__name__)

# Recomputed by aiohttp for the client-facing response
EXCLUDED_RESPONSE_HEADERS = frozenset(
    ["transfer-encoding", "content-encoding", "content-length", "connection"]
)


class ProxyServer:
    """Reverse proxy that hands every backend response to an after-response hook."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8080,
        target_host: Optional[str] = None,
        timeout: int = 30,
        offload_timeout: float = DEFAULT_OFFLOAD_TIMEOUT,
        header_prefix: str = DEFAULT_HEADER_PREFIX,
        after_response_hook: Optional[
            Callable[[BackendResponse], Awaitable[Any]]
        ] = None,
    ):
        """Initialize proxy server.

        Args:
            host: Host to bind the proxy server to
            port: Port to bind the proxy server to
            target_host: Backend base URL every request is proxied to
            timeout: Backend request timeout in seconds
            offload_timeout: Offload request timeout in seconds
            header_prefix: Prefix shared by the offload control headers
            after_response_hook: Async function that may replace the backend
                response in place; defaults to an OffloadHandler with its
                own client session
        """
        self.host = host
        self.port = port
        self.target_host = target_host
        self.timeout = ClientTimeout(total=timeout)
        self.offload_timeout = offload_timeout
        self.header_names = HeaderNames(header_prefix)
        self.after_response_hook = after_response_hook
        self.app = web.Application()
        self.app.router.add_route("*", "/{path:.*}", self.handle_request)
        self.session: Optional[ClientSession] = None
        self.offload_session: Optional[ClientSession] = None
        self.runner: Optional[web.AppRunner] = None

    async def start(self):
        """Start the proxy server."""
        self.session = ClientSession(timeout=self.timeout)
        if self.after_response_hook is None:
            # Separate connection pool: the backend connection stays held
            # while the offload request waits for one
            self.offload_session = ClientSession()
            executor = OffloadExecutor(
                AiohttpClient(self.offload_session), self.offload_timeout
            )
            self.after_response_hook = OffloadHandler(executor, self.header_names)

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info(f"Proxy server started on {self.host}:{self.port}")
        if self.target_host:
            logger.info(f"Backend target: {self.target_host}")
        logger.info(
            f"Offload header prefix: {self.header_names.prefix}, "
            f"offload timeout: {self.offload_timeout}s"
        )

    async def stop(self):
        """Stop the proxy server."""
        if self.runner:
            await self.runner.cleanup()
        if self.session:
            await self.session.close()
        if self.offload_session:
            await self.offload_session.close()
        logger.info("Proxy server stopped")

    async def handle_request(self, request: Request) -> StreamResponse:
        """Proxy a request to the backend and offload its response if asked to.

        Args:
            request: Incoming HTTP request

        Returns:
            The backend response, or the offload response replacing it
        """
        if not self.target_host:
            return web.Response(
                text="No target host specified. Configure a backend target.",
                status=400,
            )

        path = request.match_info.get("path", "")
        query_string = f"?{request.query_string}" if request.query_string else ""
        target_url = f"{self.target_host.rstrip('/')}/{path}{query_string}"

        headers = CIMultiDict(request.headers)
        # Set by aiohttp for the backend
        for header in ("Host", "Content-Length", "Transfer-Encoding"):
            headers.popall(header, None)

        request_data = {
            "method": request.method,
            "url": target_url,
            "headers": headers,
            "data": await request.read(),
        }

        try:
            async with self.session.request(**request_data) as resp:
                response = BackendResponse(
                    status=resp.status,
                    headers=CIMultiDict(resp.headers),
                    body=resp.content.iter_any(),
                )

                try:
                    await self.after_response_hook(response)
                except OffloadTransportError as e:
                    logger.error(f"Offload failed for {target_url}: {e}", exc_info=True)
                    status = 504 if e.timeout else 502
                    return web.Response(text=f"Offload error: {e}", status=status)
                except OffloadError as e:
                    logger.error(f"Invalid offload request from {target_url}: {e}")
                    return web.Response(text=f"Offload error: {e}", status=502)

                return await self._send_response(request, response)

        except asyncio.TimeoutError:
            logger.error(f"Request timeout: {target_url}")
            return web.Response(text="Request timeout", status=504)
        except ClientError as e:
            logger.error(f"Proxy error: {e}", exc_info=True)
            return web.Response(text=f"Proxy error: {e}", status=502)

    async def _send_response(
        self, request: Request, response: BackendResponse
    ) -> StreamResponse:
        """Stream a (possibly offloaded) response to the client."""
        headers = CIMultiDict(
            (k, v)
            for k, v in response.headers.items()
            if k.lower() not in EXCLUDED_RESPONSE_HEADERS
        )
        client_response = web.StreamResponse(status=response.status, headers=headers)
        body = response.body
        try:
            await client_response.prepare(request)
            if body is not None:
                async for chunk in body:
                    await client_response.write(chunk)
        except (asyncio.TimeoutError, ClientError) as e:
            # Headers are already sent, all we can do is drop the connection
            logger.error(f"Response body interrupted for {request.path}: {e!r}")
            client_response.force_close()
            return client_response
        finally:
            aclose = getattr(body, "aclose", None)
            if aclose is not None:
                await aclose()

        await client_response.write_eof()
        return client_response

    async def run(self):
        """Run the proxy server indefinitely."""
        await self.start()
        try:
            # Keep running
            await asyncio.Event().wait()
        except KeyboardInterrupt:
            logger.info("Shutting down...")
        finally:
            await self.stop()

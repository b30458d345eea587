"""Backend response interception and offload request construction.

A backend asks the proxy to offload by setting ``Offload-Requested`` on its
response. The proxy then builds a request from the remaining ``Offload-*``
headers, sends it, and replaces the backend's response with the result:

    Offload-Requested      presence only, enables offloading
    Offload-Url            target URL, used verbatim
    Offload-Method         GET, POST or HEAD (case-insensitive)
    Offload-Forward-Body   presence only, send the backend body along
    Offload-X-<Name>       sent as header <Name> on the offload request

Copyright (C) 2025 Sergey Porfiriev <parf@difive.com>

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 2 of the License, or
(at your option) any later version.
"""

import logging
from typing import Optional

from multidict import CIMultiDict
from yarl import URL

from offload_proxy.errors import (
    InvalidVerbError,
    MissingUrlError,
    RequestConstructionError,
)
from offload_proxy.executor import OffloadExecutor
from offload_proxy.models import (
    BackendResponse,
    HeaderNames,
    OffloadRequest,
    OffloadResponse,
    OffloadSignal,
    canonical_header_key,
)

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "POST", "HEAD"})

DEFAULT_HEADER_NAMES = HeaderNames()


def resolve_method(value: Optional[str]) -> str:
    """Normalize the requested method, rejecting anything but GET, POST and HEAD."""
    method = (value or "").upper()
    if method not in SUPPORTED_METHODS:
        raise InvalidVerbError(value or "")
    return method


def _unwrap_custom_headers(headers: CIMultiDict, names: HeaderNames) -> CIMultiDict:
    unwrapped = CIMultiDict()
    for key, value in headers.items():
        key = canonical_header_key(key)
        if not key.startswith(names.custom_prefix):
            continue
        name = key[len(names.custom_prefix):]
        # First value wins for repeated headers
        if name and name not in unwrapped:
            unwrapped[name] = value
    return unwrapped


def read_signal(headers: CIMultiDict, names: HeaderNames = DEFAULT_HEADER_NAMES) -> OffloadSignal:
    """Decode the offload control headers of a backend response."""
    if names.requested not in headers:
        return OffloadSignal(requested=False)

    return OffloadSignal(
        requested=True,
        method=headers.get(names.method, ""),
        target_url=headers.get(names.url, ""),
        forward_body=names.forward_body in headers,
        custom_headers=_unwrap_custom_headers(headers, names),
    )


def translate_headers(
    headers: CIMultiDict, names: HeaderNames = DEFAULT_HEADER_NAMES
) -> CIMultiDict:
    """Build the offload request headers from the backend response headers.

    Only the backend's content type and the unwrapped custom headers are
    kept. Custom headers are applied last, so an unwrapped ``Content-Type``
    replaces the inherited one.
    """
    request_headers = CIMultiDict()
    request_headers["Content-Type"] = headers.get("Content-Type", "")
    for key, value in _unwrap_custom_headers(headers, names).items():
        request_headers[key] = value
    return request_headers


def decide(
    response: BackendResponse, names: HeaderNames = DEFAULT_HEADER_NAMES
) -> Optional[OffloadRequest]:
    """Build the offload request for a backend response.

    Returns None when offloading was not requested. The response itself is
    never modified; a forwarded body is handed to the request as the same
    stream object, so it is read once, by whoever sends the request.

    Raises:
        InvalidVerbError: method header missing or unsupported
        MissingUrlError: URL header missing or empty
        RequestConstructionError: URL cannot be parsed
    """
    signal = read_signal(response.headers, names)
    if not signal.requested:
        return None

    method = resolve_method(signal.method)

    if not signal.target_url:
        raise MissingUrlError()

    try:
        URL(signal.target_url)
    except (ValueError, TypeError) as e:
        raise RequestConstructionError(
            f"invalid offload url {signal.target_url!r}: {e}"
        ) from e

    return OffloadRequest(
        method=method,
        url=signal.target_url,
        headers=translate_headers(response.headers, names),
        body=response.body if signal.forward_body else None,
    )


def apply(response: BackendResponse, offload_response: OffloadResponse) -> None:
    """Replace status, headers and body of the response with the offload result."""
    response.status = offload_response.status
    response.headers = offload_response.headers
    response.body = offload_response.body


class OffloadHandler:
    """After-response hook that offloads backend responses on request."""

    def __init__(
        self,
        executor: OffloadExecutor,
        header_names: Optional[HeaderNames] = None,
    ):
        """Initialize offload handler.

        Args:
            executor: Executor used to send offload requests
            header_names: Control header names (default prefix "Offload-")
        """
        self.executor = executor
        self.header_names = header_names or DEFAULT_HEADER_NAMES

    async def __call__(self, response: BackendResponse) -> bool:
        """Offload the response if the backend asked for it.

        Args:
            response: Backend response, replaced in place on success

        Returns:
            True if the response was replaced by an offload response
        """
        request = decide(response, self.header_names)
        if request is None:
            logger.debug("Offload not requested, passing backend response through")
            return False

        logger.info(f"Offloading response to {request.method} {request.url}")
        offload_response = await self.executor.execute(request)
        apply(response, offload_response)
        logger.info(f"Offload completed with status {offload_response.status}")
        return True

"""Data passed between the backend response, the offload request and the client.

Copyright (C) 2025 Sergey Porfiriev <parf@difive.com>

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 2 of the License, or
(at your option) any later version.
"""

from dataclasses import dataclass, field
from typing import AsyncIterable, Optional

from multidict import CIMultiDict

BodyStream = AsyncIterable[bytes]

DEFAULT_HEADER_PREFIX = "Offload-"


def canonical_header_key(key: str) -> str:
    """Return the canonical MIME form of a header name.

    The first letter and every letter following a hyphen are upper-cased,
    the rest lower-cased: ``offload-x-content-type`` -> ``Offload-X-Content-Type``.
    """
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


@dataclass(frozen=True)
class HeaderNames:
    """Names of the offload control headers, all sharing one prefix."""

    prefix: str = DEFAULT_HEADER_PREFIX

    def __post_init__(self):
        object.__setattr__(self, "prefix", canonical_header_key(self.prefix))

    @property
    def requested(self) -> str:
        return self.prefix + "Requested"

    @property
    def method(self) -> str:
        return self.prefix + "Method"

    @property
    def url(self) -> str:
        return self.prefix + "Url"

    @property
    def forward_body(self) -> str:
        return self.prefix + "Forward-Body"

    @property
    def custom_prefix(self) -> str:
        return self.prefix + "X-"


@dataclass
class BackendResponse:
    """Response returned by the backend, mutated in place when offloaded."""

    status: int
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: Optional[BodyStream] = None


@dataclass
class OffloadSignal:
    """Offload intent decoded from the backend's response headers."""

    requested: bool
    method: str = ""
    target_url: str = ""
    forward_body: bool = False
    custom_headers: CIMultiDict = field(default_factory=CIMultiDict)


@dataclass
class OffloadRequest:
    method: str
    url: str
    headers: CIMultiDict
    body: Optional[BodyStream] = None


@dataclass
class OffloadResponse:
    status: int
    headers: CIMultiDict
    body: Optional[BodyStream] = None


"""Errors raised while offloading a backend response.

Copyright (C) 2025 Sergey Porfiriev <parf@difive.com>

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 2 of the License, or
(at your option) any later version.
"""


class OffloadError(Exception):
    """Base class for all offload failures."""


class InvalidVerbError(OffloadError):
    """The requested offload method is missing or not one of GET, POST, HEAD."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"unsupported verb: {method!r}")


class MissingUrlError(OffloadError):
    """The offload URL header is missing or empty."""

    def __init__(self):
        super().__init__("missing url")


class RequestConstructionError(OffloadError):
    """The offload request could not be formed (e.g. malformed URL)."""


class OffloadTransportError(OffloadError):
    """The offload request failed on the network or timed out."""

    def __init__(self, message: str, timeout: bool = False):
        self.timeout = timeout
        super().__init__(message)

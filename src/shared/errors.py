"""
Exception taxonomy shared by the archiver packages.

``ConfigError`` is fatal at startup.  ``ApiError`` and its subclasses are
raised by the transport client and abort the current sync pass; the
scheduler catches them at the pass boundary.  ``NotFoundError`` is raised
by the channel store when a checkpoint record is absent.
"""

from __future__ import annotations

from typing import Optional


class ArchiverError(Exception):
    """Base class for every error raised by dm-archiver."""


class ConfigError(ArchiverError):
    """Required startup configuration is missing or invalid."""


class NotFoundError(ArchiverError):
    """A stored record (e.g. a channel checkpoint) does not exist."""


class ApiError(ArchiverError):
    """A request against the REST API failed.

    Args:
        message: Human-readable description.
        method: HTTP method of the failed request.
        path: API path (relative to the base URL).
        status: HTTP status code, or ``None`` for transport failures.
    """

    def __init__(
        self,
        message: str,
        method: str = "",
        path: str = "",
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.path = path
        self.status = status


class AuthError(ApiError):
    """The API rejected the credentials (401 / 403)."""


class HttpError(ApiError):
    """The API answered with any other non-2xx status."""


class TransportError(ApiError):
    """Network failure, timeout, or an undecodable response body."""

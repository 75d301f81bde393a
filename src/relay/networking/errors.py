"""Error taxonomy for the Relay networking layer."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .assembly import RequestDescriptor
    from .transport import ResponseMeta


class RelayError(Exception):
    """Base class for every reported (user-visible) failure."""


class BadURL(RelayError):
    """Target URL could not be assembled from base, path and query."""

    def __init__(self, components: dict[str, Any]) -> None:
        self.components = components
        super().__init__(f"Incorrect URL: {components}")


class BadHTTPResponse(RelayError):
    """The response validator rejected the response."""

    def __init__(
        self,
        request: RequestDescriptor,
        response: ResponseMeta,
        data: bytes,
        description: str,
    ) -> None:
        self.request = request
        self.response = response
        self.data = data
        self.description = description
        super().__init__(f"Server error: {description}")

    @property
    def status_code(self) -> int | None:
        return self.response.status_code


class DecodingError(RelayError):
    """The Take decode function failed; the original error is kept."""

    def __init__(
        self,
        request: RequestDescriptor,
        response: ResponseMeta,
        data: bytes,
        error: BaseException,
    ) -> None:
        self.request = request
        self.response = response
        self.data = data
        self.error = error
        super().__init__(f"Server provided incorrect data: {error}")
        self.__cause__ = error


class TransportError(RelayError):
    """Generic failure raised by the transport."""


class RequestTimeoutError(TransportError):
    """The transport gave up waiting for the server."""


class ConnectionFailedError(TransportError):
    """The transport could not reach the server."""


class TransportCancelled(TransportError):
    """The transport operation was cancelled before it completed."""


class Cancelled(Exception):
    """Silent cancellation.

    Not a ``RelayError``: a call ending this way carries neither a value nor a
    reported failure and callers usually treat it as a no-op.
    """


def status_text(status_code: int) -> str:
    """Return the standard reason phrase for ``status_code``."""
    try:
        return HTTPStatus(status_code).phrase.lower()
    except ValueError:
        return "unknown status"

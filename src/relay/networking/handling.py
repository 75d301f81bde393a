"""Response validation, response decoding and error mapping."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar, Union

from .config import Check, CustomResponse, ServerConfig
from .errors import (
    BadHTTPResponse,
    Cancelled,
    DecodingError,
    TransportCancelled,
    status_text,
)
from .reports import Reporter

if TYPE_CHECKING:
    from .assembly import RequestDescriptor
    from .take import Take
    from .transport import ResponseMeta

logger = logging.getLogger(__name__)

T = TypeVar("T")

Catcher = Callable[[Exception], Union[T, Awaitable[T]]]


def describe_status(status_code: int, data: bytes) -> str:
    """Standard status text plus any UTF-8 body text."""
    message = status_text(status_code)
    try:
        info = data.decode("utf-8")
    except UnicodeDecodeError:
        return message
    return f"{message}: {info}"


def config_check(config: ServerConfig) -> Check:
    """Return the validator selected by the configuration."""
    handler = config.response
    if isinstance(handler, CustomResponse):
        return handler.check

    describe = handler.describe

    def check(
        config: ServerConfig,
        request: RequestDescriptor,
        response: ResponseMeta,
        data: bytes,
    ) -> None:
        status = response.status_code
        if status is None or 200 <= status < 300:
            return
        if describe is not None:
            description = describe(config, request, response, data)
        else:
            description = describe_status(status, data)
        raise BadHTTPResponse(request, response, data, description)

    return check


def validate(
    config: ServerConfig,
    take: Take[Any],
    request: RequestDescriptor,
    response: ResponseMeta,
    data: bytes,
    reporter: Reporter,
) -> None:
    """Run the Take's validator, or the configuration's when it has none."""
    check = take.check or config_check(config)
    try:
        check(config, request, response, data)
    except BadHTTPResponse:
        reporter.bad_status(request, response, data)
        raise


async def decode(
    config: ServerConfig,
    take: Take[T],
    request: RequestDescriptor,
    response: ResponseMeta,
    data: bytes,
    reporter: Reporter,
) -> T:
    """Decode the body, wrapping any failure in ``DecodingError``."""
    try:
        return await take.decode(config, data, response)
    except Exception as exc:
        try:
            reporter.decoding_failed(request, response, data, exc)
        except Exception:  # reporting must never replace the decoding error
            logger.exception("Decoding failure report failed")
        raise DecodingError(request, response, data, exc) from exc


async def map_error(
    config: ServerConfig,
    catcher: Catcher[T] | None,
    error: Exception,
) -> T:
    """Resolve ``error`` into a value, a replacement error or ``Cancelled``.

    The per-call catcher wins over the configuration's; without either, only
    transport cancellation is silenced.
    """
    if catcher is not None:
        result = catcher(error)
        if inspect.isawaitable(result):
            result = await result
        return result

    if config.catcher is not None:
        mapped = config.catcher(error)
        if mapped is None:
            raise Cancelled() from error
        if mapped is error:
            raise error
        raise mapped from error

    if isinstance(error, TransportCancelled):
        raise Cancelled() from error
    raise error

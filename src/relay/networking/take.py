"""Expected response strategies."""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar, Union

from pydantic import TypeAdapter

from . import handling
from .config import Check, ServerConfig
from .transport import ResponseMeta

T = TypeVar("T")
U = TypeVar("U")

Decode = Callable[[ServerConfig, bytes, ResponseMeta], Union[T, Awaitable[T]]]


def _skip_check(config: Any, request: Any, response: Any, data: Any) -> None:
    return None


class Take(Generic[T]):
    """Response strategy.

    Carries the ``Accept`` mime type, an optional validator that replaces the
    configuration's one, and the decode function.
    """

    def __init__(
        self,
        mime_type: str | None,
        decode: Decode[T],
        check: Check | None = None,
    ) -> None:
        self.mime_type = mime_type
        self.check = check
        self._decode = decode

    async def decode(
        self, config: ServerConfig, data: bytes, response: ResponseMeta
    ) -> T:
        decoded = self._decode(config, data, response)
        if inspect.isawaitable(decoded):
            decoded = await decoded
        return decoded

    @staticmethod
    def void() -> Take[None]:
        """Expect no data; any received body is ignored."""
        return Take("*/*", lambda config, data, response: None)

    @staticmethod
    def data(mime_type: str = "*/*") -> Take[bytes]:
        return Take(mime_type, lambda config, data, response: data)

    @staticmethod
    def json(type_: type[U]) -> Take[U]:
        """Decode a JSON body into ``type_`` using pydantic validation."""
        adapter = TypeAdapter(type_)

        def decode(
            config: ServerConfig, data: bytes, response: ResponseMeta
        ) -> U:
            return adapter.validate_json(data, strict=config.decoder.strict)

        return Take("application/json", decode)

    @staticmethod
    def custom(
        mime_type: str | None, decode: Decode[U], check: Check | None = None
    ) -> Take[U]:
        return Take(mime_type, decode, check)

    @staticmethod
    def response(take: Take[U]) -> Take[tuple[ResponseMeta, U]]:
        """Return the response metadata with the value; skips validation."""

        async def decode(
            config: ServerConfig, data: bytes, response: ResponseMeta
        ) -> tuple[ResponseMeta, U]:
            return response, await take.decode(config, data, response)

        return Take(take.mime_type, decode, _skip_check)

    @staticmethod
    def status(
        codes: Iterable[int],
        take: Take[U],
        mapper: Decode[U] | None = None,
    ) -> Take[U | None]:
        """Short-circuit responses whose status is in ``codes``.

        Matching responses skip validation and decode to ``None`` or to
        whatever ``mapper`` returns; others go through ``take``.
        """
        matched = frozenset(codes)

        def check(
            config: ServerConfig,
            request: Any,
            response: ResponseMeta,
            data: bytes,
        ) -> None:
            if response.status_code in matched:
                return
            fallback = take.check or handling.config_check(config)
            fallback(config, request, response, data)

        async def decode(
            config: ServerConfig, data: bytes, response: ResponseMeta
        ) -> U | None:
            if response.status_code not in matched:
                return await take.decode(config, data, response)
            if mapper is None:
                return None
            mapped = mapper(config, data, response)
            if inspect.isawaitable(mapped):
                mapped = await mapped
            return mapped

        return Take(take.mime_type, decode, check)

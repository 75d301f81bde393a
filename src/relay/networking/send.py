"""Outgoing payload strategies."""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence, Union
from urllib.parse import urlencode

from pydantic import TypeAdapter
from urllib3.fields import RequestField
from urllib3.filepost import encode_multipart_formdata

from .config import ServerConfig

Encoded = tuple[Union[bytes, None], Union[Mapping[str, str], None]]
Encode = Callable[[ServerConfig], Union[Encoded, Awaitable[Encoded]]]


@dataclass(frozen=True)
class Part:
    """One part of a multipart form."""

    name: str
    data: bytes | None = None
    filename: str | None = None
    mime_type: str | None = None

    @classmethod
    def raw(
        cls,
        data: bytes | None,
        name: str,
        filename: str | None = None,
        mime_type: str | None = None,
    ) -> Part:
        return cls(
            name=name, data=data, filename=filename, mime_type=mime_type
        )

    @classmethod
    def text(
        cls, text: str | None, name: str, filename: str | None = None
    ) -> Part:
        return cls(
            name=name,
            data=text.encode("utf-8") if text is not None else None,
            filename=filename,
            mime_type="text/plain",
        )

    def to_field(self) -> RequestField:
        field = RequestField(
            name=self.name, data=self.data or b"", filename=self.filename
        )
        field.make_multipart(content_type=self.mime_type)
        return field


class Send:
    """Request body strategy.

    Build one with the factory class methods; ``encode`` returns the body
    bytes and the extra headers for the request.
    """

    def __init__(self, encode: Encode, label: str = "custom") -> None:
        self._encode = encode
        self._label = label

    def __repr__(self) -> str:
        return f"Send.{self._label}()"

    async def encode(self, config: ServerConfig) -> Encoded:
        encoded = self._encode(config)
        if inspect.isawaitable(encoded):
            encoded = await encoded
        return encoded

    @classmethod
    def void(cls) -> Send:
        """No body and no extra headers."""
        return cls(lambda config: (None, None), "void")

    @classmethod
    def data(
        cls, data: bytes, content_type: str = "application/octet-stream"
    ) -> Send:
        headers = {"Content-Type": content_type}
        return cls(lambda config: (data, headers), "data")

    @classmethod
    def json(cls, value: Any) -> Send:
        """Serialise ``value`` with the configuration's encode settings."""

        def encode(config: ServerConfig) -> Encoded:
            body = TypeAdapter(type(value)).dump_json(
                value,
                by_alias=config.encoder.by_alias,
                exclude_none=config.encoder.exclude_none,
            )
            return body, {"Content-Type": "application/json"}

        return cls(encode, "json")

    @classmethod
    def form(cls, items: Mapping[str, str]) -> Send:
        def encode(config: ServerConfig) -> Encoded:
            body = urlencode(dict(items)).encode("utf-8")
            return body, {
                "Content-Type": "application/x-www-form-urlencoded",
                "Content-Length": str(len(body)),
            }

        return cls(encode, "form")

    @classmethod
    def multipart(cls, parts: Sequence[Part]) -> Send:
        def encode(config: ServerConfig) -> Encoded:
            body, content_type = encode_multipart_formdata(
                [part.to_field() for part in parts]
            )
            return body, {
                "Content-Type": content_type,
                "Content-Length": str(len(body)),
            }

        return cls(encode, "multipart")

    @classmethod
    def custom(cls, encode: Encode) -> Send:
        return cls(encode)

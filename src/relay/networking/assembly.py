"""Request assembly: configuration + call parameters -> RequestDescriptor."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import quote, urlencode
from uuid import uuid4

from urllib3.exceptions import LocationParseError
from urllib3.util import Url, parse_url

from .config import ServerConfig
from .errors import BadURL
from .method import Method

if TYPE_CHECKING:
    from .send import Send
    from .take import Take

logger = logging.getLogger(__name__)


class CachePolicy(Enum):
    USE_PROTOCOL_CACHE = None
    RELOAD_IGNORING_CACHE = "no-cache"

    @property
    def directive(self) -> str | None:
        return self.value


@dataclass
class RequestDescriptor:
    """Transport-ready request built once per call.

    Only the configuration's customizer hook may mutate it, and only during
    assembly.
    """

    method: str
    url: str
    headers: dict[str, str] | None = None
    body: bytes | None = None
    timeout: float = 60.0
    cache: CachePolicy = CachePolicy.RELOAD_IGNORING_CACHE
    task_id: str = field(default_factory=lambda: uuid4().hex)


# Characters a path may carry unescaped; "?" and "#" are always encoded.
_PATH_SAFE = "/:@!$&'()*+,;="


def _is_root(path: str | None) -> bool:
    return path in (None, "", "/")


def resolve_url(base: str, path: str) -> Url:
    """Resolve ``path`` against ``base``.

    An absolute ``path`` replaces the base path only when the base path is
    empty or root; otherwise ``path`` is appended as a relative segment.
    """
    try:
        url = parse_url(base)
    except LocationParseError as exc:
        raise BadURL({"base": base, "path": path}) from exc

    if not path:
        return url

    path = quote(path, safe=_PATH_SAFE)
    if _is_root(url.path) and path.startswith("/"):
        return url._replace(path=path)

    prefix = (url.path or "").rstrip("/")
    return url._replace(path=f"{prefix}/{path.lstrip('/')}")


def merge_query(
    defaults: Mapping[str, str], query: Mapping[str, str] | None
) -> dict[str, str]:
    return {**defaults, **(query or {})}


def merge_headers(
    *layers: Mapping[str, str | None] | None,
) -> dict[str, str] | None:
    """Merge header layers lowest to highest.

    Absent (``None``) values never override a lower layer.
    """
    merged: dict[str, str] = {}
    for layer in layers:
        if layer:
            merged.update(
                {k: v for k, v in layer.items() if v is not None}
            )
    return merged or None


async def assemble(
    config: ServerConfig,
    method: Method | str,
    path: str,
    *,
    base: str | None = None,
    timeout: float | None = None,
    headers: Mapping[str, str] | None = None,
    query: Mapping[str, str] | None = None,
    send: Send,
    take: Take[Any],
) -> RequestDescriptor:
    """Build the request descriptor for one call.

    Raises:
        BadURL: The URL could not be composed or serialised.
        Exception: Whatever ``send`` raised while encoding, unchanged.
    """
    target = resolve_url(base or config.base, path)
    merged_query = merge_query(config.query, query)
    components = target._replace(
        query=urlencode(merged_query) if merged_query else None
    )

    try:
        if not components.scheme or not components.host:
            raise ValueError("URL must be absolute")
        url = parse_url(components.url).url
    except (LocationParseError, ValueError) as exc:
        logger.debug("Failed to assemble URL from %s", components)
        raise BadURL(dict(components._asdict())) from exc

    try:
        body, send_headers = await send.encode(config)
    except Exception:
        logger.debug("Failed to encode payload: %r", send)
        raise

    descriptor = RequestDescriptor(
        method=method.value if isinstance(method, Method) else method.upper(),
        url=url,
        headers=merge_headers(
            config.headers, headers, send_headers, {"Accept": take.mime_type}
        ),
        body=body,
        timeout=timeout if timeout is not None else config.timeout,
    )

    if config.request is not None:
        config.request(descriptor)

    return descriptor

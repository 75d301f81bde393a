"""Debug side channels: pipeline logs and raw response dumps.

Nothing here may raise into the request pipeline.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote

from .config import ReportMode

if TYPE_CHECKING:
    from .assembly import RequestDescriptor
    from .transport import ResponseMeta

logger = logging.getLogger(__name__)

SLOW_SECONDS = 3.0

_OOXML = "application/vnd.openxmlformats-officedocument."

EXTENSIONS: dict[str, str] = {
    "application/epub+zip": "epub",
    "application/gzip": "gz",
    "application/java-archive": "jar",
    "application/json": "json",
    "application/ld+json": "jsonld",
    "application/msword": "doc",
    "application/octet-stream": "bin",
    "application/ogg": "ogx",
    "application/pdf": "pdf",
    "application/rtf": "rtf",
    "application/vnd.ms-excel": "xls",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.oasis.opendocument.presentation": "odp",
    "application/vnd.oasis.opendocument.spreadsheet": "ods",
    "application/vnd.oasis.opendocument.text": "odt",
    _OOXML + "presentationml.presentation": "pptx",
    _OOXML + "spreadsheetml.sheet": "xlsx",
    _OOXML + "wordprocessingml.document": "docx",
    "application/vnd.rar": "rar",
    "application/x-7z-compressed": "7z",
    "application/x-bzip2": "bz2",
    "application/x-sh": "sh",
    "application/x-tar": "tar",
    "application/xhtml+xml": "xhtml",
    "application/xml": "xml",
    "application/zip": "zip",
    "audio/aac": "aac",
    "audio/midi": "midi",
    "audio/mpeg": "mp3",
    "audio/ogg": "oga",
    "audio/opus": "opus",
    "audio/wav": "wav",
    "audio/webm": "weba",
    "font/otf": "otf",
    "font/ttf": "ttf",
    "font/woff": "woff",
    "font/woff2": "woff2",
    "image/bmp": "bmp",
    "image/gif": "gif",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/svg+xml": "svg",
    "image/tiff": "tiff",
    "image/vnd.microsoft.icon": "ico",
    "image/webp": "webp",
    "text/calendar": "ics",
    "text/css": "css",
    "text/csv": "csv",
    "text/html": "html",
    "text/javascript": "js",
    "text/plain": "txt",
    "text/xml": "xml",
    "video/mp2t": "ts",
    "video/mpeg": "mpeg",
    "video/ogg": "ogv",
    "video/webm": "webm",
    "video/x-msvideo": "avi",
}


def extension_for(mime_type: str | None) -> str:
    if mime_type is None:
        return "bin"
    return EXTENSIONS.get(mime_type, "bin")


def dump_filename(url: str, mime_type: str | None, timestamp: float) -> str:
    return f"{timestamp}-{quote(url, safe='')}.{extension_for(mime_type)}"


def _text(data: bytes | None) -> str:
    if data is None:
        return "<empty>"
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return "<binary>"


class Reporter(Protocol):
    def phase(
        self, phase: str, path: str, elapsed: float, message: str = ""
    ) -> None: ...

    def bad_status(
        self, request: RequestDescriptor, response: ResponseMeta, data: bytes
    ) -> None: ...

    def decoding_failed(
        self,
        request: RequestDescriptor,
        response: ResponseMeta,
        data: bytes,
        error: BaseException,
    ) -> None: ...


class NullReporter:
    """Production reporter: does nothing."""

    def phase(
        self, phase: str, path: str, elapsed: float, message: str = ""
    ) -> None:
        pass

    def bad_status(
        self, request: RequestDescriptor, response: ResponseMeta, data: bytes
    ) -> None:
        pass

    def decoding_failed(
        self,
        request: RequestDescriptor,
        response: ResponseMeta,
        data: bytes,
        error: BaseException,
    ) -> None:
        pass


class DebugReporter:
    """Logs pipeline events and dumps undecodable bodies to ``folder``."""

    def __init__(self, mode: ReportMode) -> None:
        self._logs = mode.logs
        self._folder = mode.folder

    def phase(
        self, phase: str, path: str, elapsed: float, message: str = ""
    ) -> None:
        if not self._logs:
            return
        logger.info(
            "[server] %-6s %s %6.3f %s %s",
            phase,
            "•" if elapsed > SLOW_SECONDS else " ",
            elapsed,
            path,
            message,
        )

    def bad_status(
        self, request: RequestDescriptor, response: ResponseMeta, data: bytes
    ) -> None:
        if not self._logs:
            return
        logger.warning(
            "server error %s: [%s],\nrequest: %s %s\n%s\n"
            "response: %s\ndata: %s",
            response.status_code,
            response.reason,
            request.method,
            request.url,
            _text(request.body),
            response.url,
            _text(data),
        )

    def decoding_failed(
        self,
        request: RequestDescriptor,
        response: ResponseMeta,
        data: bytes,
        error: BaseException,
    ) -> None:
        if self._logs:
            logger.warning(
                "server error decoding [%s]: %s\n\n%s",
                response.url,
                error,
                _text(data),
            )
        if self._folder is None:
            return
        file = Path(self._folder) / dump_filename(
            request.url, response.mime_type, time.time()
        )
        try:
            file.write_bytes(data)
        except OSError as exc:
            logger.warning("Could not dump response data to %s: %s", file, exc)


def reporter_for(mode: ReportMode) -> Reporter:
    if not mode.enabled:
        return NullReporter()
    return DebugReporter(mode)

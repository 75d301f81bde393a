"""Relay networking layer: configurable, cancellable HTTP request pipeline."""

from .assembly import CachePolicy, RequestDescriptor, assemble
from .client import Server
from .config import (
    CustomChallenge,
    CustomResponse,
    DecodeSettings,
    EncodeSettings,
    ReportMode,
    ServerConfig,
    StandardChallenge,
    StandardResponse,
    TransportSettings,
)
from .errors import (
    BadHTTPResponse,
    BadURL,
    Cancelled,
    ConnectionFailedError,
    DecodingError,
    RelayError,
    RequestTimeoutError,
    TransportCancelled,
    TransportError,
)
from .lifecycle import CancellationToken, ConfigurationContainer, Generation
from .method import Method
from .reachability import Reachability
from .send import Part, Send
from .take import Take
from .transport import (
    Challenge,
    Disposition,
    RequestsTransport,
    ResponseMeta,
    Transport,
)
from .types import Err, Ok, Result, Silent

__all__ = [
    "BadHTTPResponse",
    "BadURL",
    "CachePolicy",
    "CancellationToken",
    "Cancelled",
    "Challenge",
    "ConfigurationContainer",
    "ConnectionFailedError",
    "CustomChallenge",
    "CustomResponse",
    "DecodeSettings",
    "DecodingError",
    "Disposition",
    "EncodeSettings",
    "Err",
    "Generation",
    "Method",
    "Ok",
    "Part",
    "Reachability",
    "RelayError",
    "ReportMode",
    "RequestDescriptor",
    "RequestTimeoutError",
    "RequestsTransport",
    "ResponseMeta",
    "Result",
    "Send",
    "Server",
    "ServerConfig",
    "Silent",
    "StandardChallenge",
    "StandardResponse",
    "Take",
    "Transport",
    "TransportCancelled",
    "TransportError",
    "TransportSettings",
    "assemble",
]

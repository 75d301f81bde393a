"""Configuration models for the Server request pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, Union

from urllib3.exceptions import LocationParseError
from urllib3.util import parse_url

if TYPE_CHECKING:
    from .assembly import RequestDescriptor
    from .transport import Challenge, Disposition, ResponseMeta, Transport

Describe = Callable[
    ["ServerConfig", "RequestDescriptor", "ResponseMeta", bytes], str
]
Check = Callable[
    ["ServerConfig", "RequestDescriptor", "ResponseMeta", bytes], None
]
ChallengeCallback = Callable[
    [Union[str, None], "Challenge"], "tuple[Disposition, Any]"
]
ConfigCatcher = Callable[[Exception], Union[Exception, None]]
Customizer = Callable[["RequestDescriptor"], None]


def _frozen(mapping: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping))


def _empty() -> Mapping[str, str]:
    """Return immutable empty mapping."""

    return MappingProxyType({})


@dataclass(frozen=True)
class TransportSettings:
    """Settings used to construct the transport of one configuration.

    ``factory`` replaces the default ``requests`` transport altogether.
    """

    user_agent: str | None = None
    verify_tls: bool = True
    connect_timeout_seconds: float | None = None
    allow_redirects: bool = True
    proxies: Mapping[str, str] = field(default_factory=_empty)
    trust_env: bool = True
    factory: Callable[["ServerConfig"], "Transport"] | None = None

    def __post_init__(self) -> None:
        if (
            self.connect_timeout_seconds is not None
            and self.connect_timeout_seconds <= 0
        ):
            raise ValueError(
                "connect_timeout_seconds must be > 0 when provided"
            )
        object.__setattr__(self, "proxies", _frozen(self.proxies))


@dataclass(frozen=True)
class StandardChallenge:
    """Let the transport handle authentication challenges itself."""


@dataclass(frozen=True)
class CustomChallenge:
    """Delegate authentication challenges to ``handler``."""

    handler: ChallengeCallback


ChallengeHandler = Union[StandardChallenge, CustomChallenge]


@dataclass(frozen=True)
class StandardResponse:
    """Accept 2xx responses; ``describe`` customises the failure text."""

    describe: Describe | None = None


@dataclass(frozen=True)
class CustomResponse:
    """Accept a response only if ``check`` returns without raising."""

    check: Check


ResponseHandler = Union[StandardResponse, CustomResponse]


@dataclass(frozen=True)
class EncodeSettings:
    by_alias: bool = True
    exclude_none: bool = False


@dataclass(frozen=True)
class DecodeSettings:
    strict: bool = False


@dataclass(frozen=True)
class ReportMode:
    """Debug side-channel selection.

    ``logs`` enables pipeline phase lines and decoding failure logs;
    ``folder`` enables raw response dumps on decoding failures.
    """

    logs: bool = False
    folder: Path | None = None

    @classmethod
    def none(cls) -> ReportMode:
        return cls()

    @classmethod
    def logs_only(cls) -> ReportMode:
        return cls(logs=True)

    @classmethod
    def dumps(cls, folder: str | Path) -> ReportMode:
        return cls(folder=Path(folder))

    @classmethod
    def full(cls, folder: str | Path) -> ReportMode:
        return cls(logs=True, folder=Path(folder))

    @property
    def enabled(self) -> bool:
        return self.logs or self.folder is not None


@dataclass(frozen=True)
class ServerConfig:
    """Immutable configuration of a backend.

    Replace it wholesale (``dataclasses.replace``) to change behaviour;
    requests always run against the value captured when they started.
    """

    base: str
    timeout: float = 60.0
    headers: Mapping[str, str] = field(default_factory=_empty)
    query: Mapping[str, str] = field(default_factory=_empty)
    session: TransportSettings = field(default_factory=TransportSettings)
    challenge: ChallengeHandler = field(default_factory=StandardChallenge)
    request: Customizer | None = None
    response: ResponseHandler = field(default_factory=StandardResponse)
    encoder: EncodeSettings = field(default_factory=EncodeSettings)
    decoder: DecodeSettings = field(default_factory=DecodeSettings)
    catcher: ConfigCatcher | None = None
    reports: ReportMode = field(default_factory=ReportMode)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        try:
            parsed = parse_url(self.base)
        except LocationParseError as exc:
            raise ValueError(f"base is not a valid URL: {self.base}") from exc
        if not parsed.scheme or not parsed.host:
            raise ValueError("base must be an absolute URL")
        if self.reports.folder is not None and self.reports.folder.is_file():
            raise ValueError("reports folder must be a directory")

        # Freeze copied mappings to avoid post-init mutation side effects.
        object.__setattr__(self, "headers", _frozen(self.headers))
        object.__setattr__(self, "query", _frozen(self.query))

"""Transport collaborators for the Server request pipeline.

The pipeline only depends on the ``Transport`` protocol. The default
implementation wraps one ``requests.Session`` per configuration generation
and runs its blocking calls in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Protocol

import requests
from requests.auth import AuthBase, HTTPBasicAuth

from .config import CustomChallenge, ServerConfig
from .errors import (
    ConnectionFailedError,
    RequestTimeoutError,
    TransportCancelled,
    TransportError,
)

if TYPE_CHECKING:
    from .assembly import RequestDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResponseMeta:
    """Response metadata handed to validators and decoders."""

    status_code: int | None
    url: str
    reason: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    elapsed_s: float | None = None

    @property
    def mime_type(self) -> str | None:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.split(";", 1)[0].strip().lower() or None
        return None


class Transport(Protocol):
    """Black-box executor owned by exactly one configuration generation."""

    async def execute(
        self, descriptor: RequestDescriptor
    ) -> tuple[bytes, ResponseMeta]: ...

    def cancel_all(self) -> None: ...

    async def aclose(self) -> None: ...


class Disposition(str, Enum):
    USE_CREDENTIAL = "use_credential"
    PERFORM_DEFAULT_HANDLING = "perform_default_handling"
    CANCEL_AUTHENTICATION_CHALLENGE = "cancel_authentication_challenge"
    REJECT_PROTECTION_SPACE = "reject_protection_space"


@dataclass(frozen=True)
class Challenge:
    """Authentication challenge carried by a 401 response."""

    scheme: str
    header: str
    response: ResponseMeta


def _meta_from_response(response: requests.Response) -> ResponseMeta:
    try:
        elapsed = response.elapsed.total_seconds()
    except AttributeError:
        elapsed = None  # In case elapsed is not available or mocked
    return ResponseMeta(
        status_code=response.status_code,
        url=response.url,
        reason=response.reason,
        headers=dict(response.headers),
        elapsed_s=elapsed,
    )


class _ChallengeAuth(AuthBase):
    """Routes 401 challenges to a user callback, like requests' digest auth."""

    def __init__(
        self, challenge: CustomChallenge, task_id: str | None
    ) -> None:
        self._challenge = challenge
        self._task_id = task_id

    def __call__(
        self, r: requests.PreparedRequest
    ) -> requests.PreparedRequest:
        r.register_hook("response", self.handle_401)
        return r

    def handle_401(
        self, r: requests.Response, **kwargs: Any
    ) -> requests.Response:
        header = r.headers.get("www-authenticate", "")
        if r.status_code != 401 or not header:
            return r

        challenge = Challenge(
            scheme=header.split(" ", 1)[0],
            header=header,
            response=_meta_from_response(r),
        )
        disposition, credential = self._challenge.handler(
            self._task_id, challenge
        )

        if disposition is Disposition.CANCEL_AUTHENTICATION_CHALLENGE:
            raise TransportCancelled("authentication challenge cancelled")
        if disposition is not Disposition.USE_CREDENTIAL or credential is None:
            return r

        if isinstance(credential, tuple):
            credential = HTTPBasicAuth(*credential)

        # Consume content and release the original connection
        # to allow our new request to reuse the same one.
        r.content
        r.close()
        prep = r.request.copy()
        prep = credential(prep)
        retried = r.connection.send(prep, **kwargs)
        retried.history.append(r)
        retried.request = prep
        return retried


class RequestsTransport:
    """Default transport backed by a ``requests.Session``.

    Blocking calls run on a thread pool owned by this transport, so workers
    left behind by a cancelled generation never delay the next one.
    ``cancel_all`` abandons queued work and discards the result of requests
    already on the wire; ``aclose`` waits for those workers to return before
    the session is closed.
    """

    def __init__(self, config: ServerConfig) -> None:
        """Create the session for one configuration generation.

        Args:
            config: Configuration whose ``session`` settings shape the session.
        """
        self._config = config
        self._settings = config.session
        self._session = requests.Session()
        self._session.trust_env = self._settings.trust_env
        if self._settings.user_agent:
            self._session.headers["User-Agent"] = self._settings.user_agent
        if self._settings.proxies:
            self._session.proxies.update(self._settings.proxies)
        self._executor = ThreadPoolExecutor(
            thread_name_prefix="relay-transport"
        )
        self._workers: set[Future[Any]] = set()
        self._workers_lock = threading.Lock()
        self._pending: set[asyncio.Future[Any]] = set()
        self._cancelled = False
        self._closed = False

    def _get_timeout(self, timeout: float) -> float | tuple[float, float]:
        """Resolve the transport-level timeout for one request."""
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self._settings.connect_timeout_seconds is not None:
            return (self._settings.connect_timeout_seconds, timeout)
        return timeout

    def _auth(self, descriptor: RequestDescriptor) -> AuthBase | None:
        challenge = self._config.challenge
        if isinstance(challenge, CustomChallenge):
            return _ChallengeAuth(challenge, descriptor.task_id)
        return None

    def _send(
        self, descriptor: RequestDescriptor
    ) -> tuple[bytes, ResponseMeta]:
        if self._cancelled:
            raise TransportCancelled("session was invalidated")
        headers = dict(descriptor.headers or {})
        if descriptor.cache.directive and not any(
            key.lower() == "cache-control" for key in headers
        ):
            headers["Cache-Control"] = descriptor.cache.directive
        try:
            response = self._session.request(
                descriptor.method,
                descriptor.url,
                headers=headers,
                data=descriptor.body,
                timeout=self._get_timeout(descriptor.timeout),
                allow_redirects=self._settings.allow_redirects,
                verify=self._settings.verify_tls,
                auth=self._auth(descriptor),
            )
        except requests.exceptions.Timeout as exc:
            raise RequestTimeoutError(str(exc)) from exc
        except requests.exceptions.ConnectionError as exc:
            raise ConnectionFailedError(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(str(exc)) from exc
        return response.content, _meta_from_response(response)

    async def execute(
        self, descriptor: RequestDescriptor
    ) -> tuple[bytes, ResponseMeta]:
        """Run one request in a worker thread.

        Raises:
            TransportCancelled: ``cancel_all`` was called before or while the
                request ran.
        """
        if self._cancelled or self._closed:
            raise TransportCancelled("session was invalidated")

        worker = self._executor.submit(self._send, descriptor)
        with self._workers_lock:
            self._workers.add(worker)
        worker.add_done_callback(self._forget)
        task = asyncio.wrap_future(worker)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            cancelling = current is not None and current.cancelling()
            if self._cancelled and not cancelling:
                raise TransportCancelled("session was invalidated") from None
            raise

    def _forget(self, worker: Future[Any]) -> None:
        with self._workers_lock:
            self._workers.discard(worker)

    def cancel_all(self) -> None:
        self._cancelled = True
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        logger.debug("Cancelled %d in-flight request(s)", len(pending))

    async def aclose(self) -> None:
        """Close the session once every worker thread has returned."""
        if self._closed:
            return
        self._closed = True
        with self._workers_lock:
            workers = list(self._workers)
        if workers:
            logger.debug(
                "Waiting for %d worker(s) before closing session", len(workers)
            )
            await asyncio.wait([asyncio.wrap_future(w) for w in workers])
        self._executor.shutdown(wait=False)
        self._session.close()
        logger.debug("Closed transport session for %s", self._config.base)


def make_transport(config: ServerConfig) -> Transport:
    """Build the transport for ``config``."""
    if config.session.factory is not None:
        return config.session.factory(config)
    return RequestsTransport(config)

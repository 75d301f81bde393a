import asyncio
from typing import Any

import pytest

from relay.networking.config import ServerConfig, TransportSettings
from relay.networking.errors import TransportCancelled
from relay.networking.transport import ResponseMeta

BASE = "https://api.example.com"


def make_response(
    *,
    data: bytes = b"",
    status: int = 200,
    url: str = BASE,
    reason: str = "OK",
    headers: dict[str, str] | None = None,
) -> tuple[bytes, ResponseMeta]:
    meta = ResponseMeta(
        status_code=status,
        url=url,
        reason=reason,
        headers=headers or {"Content-Type": "application/json"},
        elapsed_s=0.1,
    )
    return data, meta


class FakeTransport:
    """In-memory transport; ``hold=True`` parks requests until released."""

    def __init__(self, *outcomes: Any, hold: bool = False) -> None:
        self.outcomes = list(outcomes)
        self.hold = hold
        self.descriptors: list[Any] = []
        self.cancel_calls = 0
        self.close_calls = 0
        self.started = asyncio.Event()
        self._cancelled = False
        self._pending: set[asyncio.Future[None]] = set()

    async def execute(self, descriptor):
        if self._cancelled:
            raise TransportCancelled("session was invalidated")
        self.descriptors.append(descriptor)
        self.started.set()
        if self.hold:
            waiter = asyncio.get_running_loop().create_future()
            self._pending.add(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                if self._cancelled:
                    raise TransportCancelled("invalidated") from None
                raise
            finally:
                self._pending.discard(waiter)
        outcome = self.outcomes.pop(0) if self.outcomes else make_response()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def release(self) -> None:
        for waiter in list(self._pending):
            if not waiter.done():
                waiter.set_result(None)

    def cancel_all(self) -> None:
        self.cancel_calls += 1
        self._cancelled = True
        for waiter in list(self._pending):
            waiter.cancel()

    async def aclose(self) -> None:
        self.close_calls += 1


class TransportPool:
    """Transport factory handing out queued fakes, then fresh ones."""

    def __init__(self) -> None:
        self.queued: list[FakeTransport] = []
        self.created: list[FakeTransport] = []

    def factory(self, config: ServerConfig) -> FakeTransport:
        transport = self.queued.pop(0) if self.queued else FakeTransport()
        self.created.append(transport)
        return transport

    def config(self, **kwargs: Any) -> ServerConfig:
        kwargs.setdefault("base", BASE)
        kwargs.setdefault("session", TransportSettings(factory=self.factory))
        return ServerConfig(**kwargs)


@pytest.fixture
def pool() -> TransportPool:
    return TransportPool()

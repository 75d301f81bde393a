"""Configuration generations and their safe replacement.

Every configuration value lives in a ``Generation`` together with the
transport built for it. Requests check in to the generation they captured
and check out when they finish. Replacing the configuration invalidates the
old generation: its transport operations are cancelled, and once usage
drains to zero the transport is released.

All state changes happen on the event loop; the lock serialises check-in
against invalidation so no request can slip into a dying generation.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable

from .config import ServerConfig
from .errors import Cancelled
from .transport import Transport, make_transport

logger = logging.getLogger(__name__)


class CancellationToken:
    """Caller-owned cancellation signal threaded through one or more calls."""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Run ``callback`` on cancellation; returns an unregister function."""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister


class Generation:
    """One configuration value plus the transport it exclusively owns."""

    def __init__(
        self, config: ServerConfig, transport: Transport, number: int = 0
    ) -> None:
        self.config = config
        self.transport = transport
        self.number = number
        self._usage = 0
        self._invalidated = False
        self._released = False
        self._lock = asyncio.Lock()
        self._drained = asyncio.Event()

    def __repr__(self) -> str:
        return (
            f"Generation(number={self.number}, usage={self._usage}, "
            f"invalidated={self._invalidated}, released={self._released})"
        )

    @property
    def usage(self) -> int:
        return self._usage

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    @property
    def released(self) -> bool:
        return self._released

    async def checkin(self) -> None:
        """Register one in-flight call.

        Raises:
            Cancelled: The generation has already been invalidated.
        """
        async with self._lock:
            if self._invalidated:
                raise Cancelled()
            self._usage += 1

    def checkout(self) -> None:
        if self._usage <= 0:
            raise RuntimeError("checkout without matching checkin")
        self._usage -= 1
        if self._usage == 0 and self._invalidated:
            self._drained.set()

    def check_cancellation(
        self, token: CancellationToken | None = None
    ) -> None:
        if self._invalidated or (token is not None and token.cancelled):
            raise Cancelled()

    async def invalidate(self) -> None:
        """Cancel in-flight work, wait for usage to drain, then release.

        Raises:
            Cancelled: The generation was already invalidated.
        """
        await self.mark_invalidated()
        await self.drain()

    async def mark_invalidated(self) -> None:
        """Flag the generation and cancel its transport operations.

        Raises:
            Cancelled: The generation was already invalidated.
        """
        async with self._lock:
            if self._invalidated:
                raise Cancelled()
            self._invalidated = True
            if self._usage == 0:
                self._drained.set()

        logger.debug(
            "Invalidated generation %d (usage=%d)", self.number, self._usage
        )
        self.transport.cancel_all()

    async def drain(self) -> None:
        """Wait until usage reaches zero, then release the transport once."""
        await self._drained.wait()
        logger.debug("Generation %d drained", self.number)
        await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self.transport.aclose()


class ConfigurationContainer:
    """Holds the current generation and retires replaced ones."""

    def __init__(self, config: ServerConfig) -> None:
        self._numbers = itertools.count()
        self._current = self._generation(config)
        self._lock = asyncio.Lock()
        self._drains: set[asyncio.Task[None]] = set()

    def _generation(self, config: ServerConfig) -> Generation:
        return Generation(config, make_transport(config), next(self._numbers))

    @property
    def current(self) -> Generation:
        return self._current

    async def snapshot(self) -> Generation:
        async with self._lock:
            return self._current

    async def get(self) -> ServerConfig:
        return (await self.snapshot()).config

    async def set(self, config: ServerConfig) -> asyncio.Task[None]:
        """Make ``config`` current and retire the previous generation.

        The swap is immediate and unconditional, even when ``config`` equals
        the current value. The returned task completes once the previous
        generation has drained and released its transport.
        """
        async with self._lock:
            previous = self._current
            self._current = self._generation(config)

        try:
            await previous.mark_invalidated()
        except Cancelled:
            logger.debug(
                "Generation %d was already invalidated", previous.number
            )
        return self._retire(previous)

    def _retire(self, generation: Generation) -> asyncio.Task[None]:
        drain = asyncio.ensure_future(generation.drain())
        self._drains.add(drain)
        drain.add_done_callback(self._drain_done)
        return drain

    def _drain_done(self, task: asyncio.Task[None]) -> None:
        self._drains.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None and not isinstance(error, Cancelled):
            logger.error(
                "Failed to retire configuration generation: %s", error
            )

    async def aclose(self) -> None:
        """Invalidate the current generation and wait for every drain."""
        async with self._lock:
            current = self._current
        if not current.invalidated:
            await current.mark_invalidated()
            self._retire(current)
        await asyncio.gather(*list(self._drains), return_exceptions=True)

"""Passive network reachability property.

An external monitor pushes values with ``update``; the networking layer only
reads them and never gates requests on them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class Reachability:
    def __init__(self, initial: bool = True) -> None:
        self._value = initial
        self._subscribers: list[Callable[[bool], None]] = []
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def value(self) -> bool:
        return self._value

    def update(self, value: bool) -> None:
        if value == self._value:
            return
        self._value = value
        logger.debug("Network reachability changed: %s", value)
        for subscriber in list(self._subscribers):
            subscriber(value)
        if value:
            waiters, self._waiters = self._waiters, []
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(None)

    def subscribe(
        self, callback: Callable[[bool], None]
    ) -> Callable[[], None]:
        """Call ``callback`` on every change; returns an unsubscriber."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def wait_until_reachable(self) -> None:
        if self._value:
            return
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

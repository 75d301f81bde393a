import asyncio

import pytest

from relay.networking.client import Server
from relay.networking.reachability import Reachability


def test_defaults_to_reachable():
    assert Reachability().value is True


def test_subscribers_receive_changes_only():
    reachability = Reachability()
    seen = []
    unsubscribe = reachability.subscribe(seen.append)

    reachability.update(True)
    reachability.update(False)
    reachability.update(False)
    unsubscribe()
    reachability.update(True)

    assert seen == [False]
    assert reachability.value is True


@pytest.mark.asyncio
async def test_wait_until_reachable():
    reachability = Reachability(initial=False)

    waiter = asyncio.ensure_future(reachability.wait_until_reachable())
    await asyncio.sleep(0)
    assert not waiter.done()

    reachability.update(True)
    await asyncio.wait_for(waiter, 1)
    await reachability.wait_until_reachable()


def test_server_exposes_reachability(pool):
    shared = Reachability(initial=False)

    assert Server(pool.config(), reachability=shared).reachability is shared
    assert Server(pool.config()).reachability.value is True

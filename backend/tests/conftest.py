"""Pytest configuration and fixtures."""

import asyncio

import pytest


@pytest.fixture
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture
def wait_until():
    """Poll a predicate on the running loop until it holds or the timeout expires."""

    async def _wait_until(predicate, timeout: float = 3.0, interval: float = 0.005) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met within %.1fs" % timeout)
            await asyncio.sleep(interval)

    return _wait_until

"""
Shared test fixtures for the scryfall-mcp test suite.

Key fixtures:
- fake_clock: A controllable monotonic clock whose sleep() records the
  requested delay and advances time instead of waiting
- make_governor: A factory for RequestGovernors wired to an httpx.MockTransport
  handler and to fake_clock
- make_catalog_handler: A fake Commander Spellbook /cards endpoint serving a
  fixed catalog in offset/limit pages

Testing approach:
    No test touches the network. Upstream services are replaced by
    httpx.MockTransport handlers (plain functions from httpx.Request to
    httpx.Response), which exercise the real httpx client code path.
"""

import asyncio
from typing import Any, Callable

import httpx
import pytest

from scryfall_mcp.governor import GovernorConfig, RequestGovernor


class FakeClock:
    """Monotonic clock for governors; sleeping advances it instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Still yield to the event loop, like a real sleep would
        await asyncio.sleep(0)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def make_governor(fake_clock):
    """
    Factory fixture for governors backed by a mock transport.

    Usage in tests:
        async def test_something(make_governor):
            governor = make_governor(lambda request: httpx.Response(200, json={}), max_retries=1)
    """
    governors: list[RequestGovernor] = []

    def _make_governor(
        handler: Callable[[httpx.Request], httpx.Response],
        **config: Any,
    ) -> RequestGovernor:
        options = {"name": "test", "base_url": "https://upstream.test", "interval_ms": 0}
        options.update(config)
        governor = RequestGovernor(
            GovernorConfig(**options),
            transport=httpx.MockTransport(handler),
            clock=fake_clock,
            sleep=fake_clock.sleep,
        )
        governors.append(governor)
        return governor

    yield _make_governor

    for governor in governors:
        await governor.aclose()


def make_catalog(size: int) -> list[dict[str, Any]]:
    """A Spellbook-style catalog: card i has id i and oracle id "oracle-i"."""
    return [{"id": i, "oracleId": f"oracle-{i}", "name": f"Card {i}"} for i in range(1, size + 1)]


@pytest.fixture
def make_catalog_handler():
    """
    Factory fixture for a fake paginated /cards endpoint.

    Returns (handler, calls) where calls records the offset of every page
    request served.
    """

    def _make_catalog_handler(cards: list[Any], count: int | None = None):
        calls: list[int] = []
        total = len(cards) if count is None else count

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/cards"
            limit = int(request.url.params["limit"])
            offset = int(request.url.params.get("offset", "0"))
            calls.append(offset)
            page = cards[offset : offset + limit]
            has_next = offset + limit < len(cards)
            next_url = f"https://upstream.test/cards?limit={limit}&offset={offset + limit}" if has_next else None
            return httpx.Response(200, json={"results": page, "count": total, "next": next_url})

        return handler, calls

    return _make_catalog_handler

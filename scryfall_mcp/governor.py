"""
Outbound request governance for one upstream service.

A RequestGovernor guards every call to one base URL:

- Slot acquisition: callers queue up in strict arrival order and are let
  through one at a time, no sooner than `interval_ms` after the previous
  dispatch. The queue is an asyncio.Lock, whose waiters are woken FIFO.
  Only slot acquisition is serialized; the HTTP exchanges themselves may
  overlap once their slots have been granted.
- Rate-limit back-off: a 429 response is retried after the server's
  Retry-After hint (seconds) or, without a hint, after
  `retry_base_ms * 2**attempt`. Any other non-2xx status fails at once.

One governor exists per upstream for the lifetime of the process, and is
shared by reference with every client that talks to that upstream. The two
upstreams have independent governors, so their queues and timing never
interact.
"""

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

import httpx

from scryfall_mcp.errors import RetriesExhaustedError, UpstreamContractError, UpstreamError

logger = logging.getLogger(__name__)

QueryParams = Mapping[str, Any]


@dataclass(frozen=True)
class GovernorConfig:
    """
    Per-upstream governor settings.

    Attributes:
        name: Short upstream name used in errors and logs ("scryfall", "csb")
        base_url: Root URL that request paths are resolved against
        interval_ms: Minimum gap between two dispatch starts
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        retry_base_ms: Base delay for exponential back-off on 429 without a hint
        user_agent: Identifying header sent with every request
        timeout_s: Per-request network timeout
    """

    name: str
    base_url: str
    interval_ms: int = 100
    max_retries: int = 3
    retry_base_ms: int = 250
    user_agent: str = "scryfall-mcp/0.1"
    timeout_s: float = 30.0


def encode_params(params: QueryParams | None) -> dict[str, str]:
    """Drop None-valued entries and stringify the rest (booleans as true/false)."""
    encoded: dict[str, str] = {}
    if not params:
        return encoded
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


def retry_after_ms(response: httpx.Response) -> float | None:
    """Return the Retry-After hint in milliseconds, or None if absent or unusable."""
    header = response.headers.get("Retry-After")
    if not header:
        return None
    try:
        seconds = float(header)
    except ValueError:
        # HTTP-date form is not honored
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return seconds * 1000


class RequestGovernor:
    """
    Rate limiter and retry loop for one upstream.

    The clock and sleep functions are injectable so tests can observe the
    exact delays without waiting for them.
    """

    def __init__(
        self,
        config: GovernorConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_s,
            follow_redirects=True,
            transport=transport,
        )
        self._headers = {"User-Agent": config.user_agent}
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_dispatch: float | None = None
        # Recent dispatch timestamps (clock seconds), newest last.
        self.dispatch_times: deque[float] = deque(maxlen=256)

    @property
    def name(self) -> str:
        return self.config.name

    async def acquire_slot(self) -> float:
        """
        Wait for this caller's turn and for the minimum interval to elapse.

        Returns the dispatch timestamp that was recorded for this caller.
        """
        async with self._lock:
            if self._last_dispatch is not None:
                wait = self._last_dispatch + self.config.interval_ms / 1000 - self._clock()
                if wait > 0:
                    await self._sleep(wait)
            self._last_dispatch = self._clock()
            self.dispatch_times.append(self._last_dispatch)
            return self._last_dispatch

    async def request_json(self, path: str, params: QueryParams | None = None) -> Any:
        """GET `path` with query parameters and return the decoded JSON body."""
        query = encode_params(params)
        return await self._dispatch(
            lambda: self._client.get(path, params=query, headers=self._headers)
        )

    async def post_text(self, path: str, body: str) -> Any:
        """POST a text/plain body to `path` and return the decoded JSON body."""
        headers = {**self._headers, "Content-Type": "text/plain"}
        return await self._dispatch(
            lambda: self._client.post(path, content=body.encode("utf-8"), headers=headers)
        )

    async def _dispatch(self, send: Callable[[], Awaitable[httpx.Response]]) -> Any:
        attempts = self.config.max_retries + 1
        for attempt in range(attempts):
            await self.acquire_slot()
            response = await send()

            if response.status_code == 429:
                if attempt < self.config.max_retries:
                    delay_ms = retry_after_ms(response)
                    if delay_ms is None:
                        delay_ms = self.config.retry_base_ms * 2**attempt
                    logger.warning(
                        "Rate limited by %s, retrying in %.0f ms (attempt %d of %d)",
                        self.name,
                        delay_ms,
                        attempt + 1,
                        attempts,
                    )
                    await self._sleep(delay_ms / 1000)
                    continue
                raise RetriesExhaustedError(self.name, attempts, response.text)

            if not response.is_success:
                raise UpstreamError(
                    self.name,
                    status_code=response.status_code,
                    reason=response.reason_phrase,
                    body=response.text,
                )

            try:
                return response.json()
            except ValueError as e:
                raise UpstreamContractError(self.name, f"body is not JSON ({e})") from e

        raise RetriesExhaustedError(self.name, attempts)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RequestGovernor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

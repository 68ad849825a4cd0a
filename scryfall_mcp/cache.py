"""
Three-tier cache: memory, then a JSON file on disk, then a fresh fetch.

Both the cross-reference index and the tagger tag list are expensive to
produce and change slowly, so they share one resolution policy:

1. If not forced and the in-memory copy is younger than the TTL, return it.
2. If not forced and the cache file's modification time is younger than the
   TTL, adopt the file's contents as the in-memory copy and return them.
3. Otherwise fetch, adopt the result in memory, write it to disk and return
   it. A failed write is logged and ignored.

Freshness of the disk tier is judged by file mtime only. There is no
version field or checksum in the file.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """A cached value and when it was observed (epoch milliseconds)."""

    data: T
    observed_at_ms: float


def write_json_file(path: Path, payload: Any) -> Path:
    """Write `payload` as pretty JSON, replacing the file and creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


class DiskBackedCache(Generic[T]):
    """
    Memoized value with a disk fallback and TTL-based invalidation.

    Args:
        name: Label used in log messages
        fetch: Coroutine function producing a fresh value
        path: Default cache file location
        ttl_ms: Default time-to-live in milliseconds
        to_json: Converts a value to a JSON-serializable payload
        from_json: Rebuilds a value from a payload; raises ValueError,
                   KeyError, TypeError or OverflowError when the payload
                   is unusable
        clock: Wall clock in epoch seconds (must be comparable with file mtimes)
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        *,
        path: Path,
        ttl_ms: float,
        to_json: Callable[[T], Any],
        from_json: Callable[[Any], T],
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.path = Path(path)
        self.ttl_ms = ttl_ms
        self._fetch = fetch
        self._to_json = to_json
        self._from_json = from_json
        self._clock = clock
        self._memory: CacheEntry[T] | None = None

    def _now_ms(self) -> float:
        return self._clock() * 1000

    @property
    def memory(self) -> CacheEntry[T] | None:
        return self._memory

    def clear(self) -> None:
        """Forget the in-memory copy. The file on disk is left alone."""
        self._memory = None

    def read(self, path: Path | None = None) -> CacheEntry[T] | None:
        """Best-effort read of the cache file. Any failure yields None."""
        path = Path(path) if path is not None else self.path
        try:
            raw = path.read_text(encoding="utf-8")
            mtime = path.stat().st_mtime
            data = self._from_json(json.loads(raw))
        except (OSError, ValueError, KeyError, TypeError, OverflowError, RecursionError) as e:
            logger.debug("%s cache unreadable at %s: %s", self.name, path, e)
            return None
        return CacheEntry(data=data, observed_at_ms=mtime * 1000)

    def persist(self, value: T, path: Path | None = None) -> Path:
        """Write `value` to the cache file, overwriting it."""
        path = Path(path) if path is not None else self.path
        return write_json_file(path, self._to_json(value))

    async def load(
        self,
        ttl_ms: float | None = None,
        force: bool = False,
        path: Path | None = None,
    ) -> T:
        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        path = Path(path) if path is not None else self.path
        now = self._now_ms()

        if not force and self._memory is not None and now - self._memory.observed_at_ms < ttl:
            logger.debug("%s served from memory", self.name)
            return self._memory.data

        if not force:
            disk = self.read(path)
            if disk is not None and now - disk.observed_at_ms < ttl:
                logger.debug("%s served from %s", self.name, path)
                self._memory = disk
                return disk.data

        logger.info("Rebuilding %s cache", self.name)
        data = await self._fetch()
        self._memory = CacheEntry(data=data, observed_at_ms=now)
        try:
            self.persist(data, path)
        except OSError as e:
            logger.warning("Could not write %s cache to %s: %s", self.name, path, e)
        return data

"""
Cross-reference index from Scryfall oracle ids to Commander Spellbook card ids.

Spellbook's combo search takes its own numeric card ids, while everything on
the Scryfall side is keyed by oracle id. Joining the two live on every call
would mean a catalog query per card, so instead the full Spellbook catalog is
paged through once, reduced to an `oracleId -> id` mapping, and cached in
memory and in a single JSON file:

    {"builtAtMs": 1738800000000, "total": 31000, "oracleToId": {"<uuid>": 123, ...}}

The mapping is a snapshot. It is rebuilt wholesale once it is older than the
TTL (24 hours by default), never merged incrementally.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from scryfall_mcp.cache import CacheEntry, DiskBackedCache
from scryfall_mcp.config import DAY_MS
from scryfall_mcp.spellbook import SpellbookClient

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


@dataclass(frozen=True)
class CardIndex:
    """
    Snapshot of the Spellbook catalog's oracle id mapping.

    Attributes:
        built_at_ms: When the snapshot was produced (epoch milliseconds)
        total: Card count reported by the catalog at build time
        oracle_to_id: Scryfall oracle id -> Spellbook card id
    """

    built_at_ms: float
    total: int
    oracle_to_id: dict[str, int] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {"builtAtMs": self.built_at_ms, "total": self.total, "oracleToId": self.oracle_to_id}

    @classmethod
    def from_json(cls, payload: Any) -> "CardIndex":
        if not isinstance(payload, dict):
            raise TypeError("card index payload must be an object")
        mapping = payload["oracleToId"]
        if not isinstance(mapping, dict):
            raise TypeError("oracleToId must be an object")
        return cls(
            built_at_ms=float(payload["builtAtMs"]),
            total=int(payload["total"]),
            oracle_to_id={
                key: value
                for key, value in mapping.items()
                if isinstance(value, int) and not isinstance(value, bool)
            },
        )


@dataclass(frozen=True)
class LookupResult:
    found: dict[str, int]
    missing: list[str]


async def build_card_index(spellbook: SpellbookClient, page_size: int = PAGE_SIZE) -> CardIndex:
    """
    Page through the whole Spellbook catalog and build a fresh CardIndex.

    Only entries with a string `oracleId` and an integer `id` are kept; when
    an oracle id repeats, the first id seen wins. Paging stops at the first
    page without a `next` link or without results.
    """
    oracle_to_id: dict[str, int] = {}
    offset = 0
    total = 0
    pages = 0
    while True:
        page = await spellbook.cards(limit=page_size, offset=offset)
        pages += 1
        if page.count is not None:
            total = page.count
        for card in page.results:
            if not isinstance(card, dict):
                continue
            oracle_id = card.get("oracleId")
            card_id = card.get("id")
            if isinstance(oracle_id, str) and isinstance(card_id, int) and not isinstance(card_id, bool):
                oracle_to_id.setdefault(oracle_id, card_id)
        if not page.next or not page.results:
            break
        offset += page_size

    logger.info(
        "Built Spellbook card index: %d entries from %d pages (catalog total %d)",
        len(oracle_to_id),
        pages,
        total,
    )
    return CardIndex(built_at_ms=time.time() * 1000, total=total, oracle_to_id=oracle_to_id)


class CardIndexStore:
    """
    Owns the process-wide CardIndex and its cache file.

    Network errors raised while building propagate to the caller of load()
    and lookup(); only cache-file write failures are swallowed.
    """

    def __init__(
        self,
        spellbook: SpellbookClient,
        path: Path,
        ttl_ms: float = DAY_MS,
        page_size: int = PAGE_SIZE,
    ):
        self.spellbook = spellbook
        self.page_size = page_size
        self.cache: DiskBackedCache[CardIndex] = DiskBackedCache(
            "spellbook card index",
            self.build,
            path=path,
            ttl_ms=ttl_ms,
            to_json=CardIndex.to_json,
            from_json=CardIndex.from_json,
        )

    @property
    def path(self) -> Path:
        return self.cache.path

    async def build(self) -> CardIndex:
        return await build_card_index(self.spellbook, self.page_size)

    async def load(
        self,
        ttl_ms: float | None = None,
        force: bool = False,
        cache_path: Path | None = None,
    ) -> CardIndex:
        return await self.cache.load(ttl_ms=ttl_ms, force=force, path=cache_path)

    async def lookup(
        self,
        oracle_ids: Sequence[str],
        ttl_ms: float | None = None,
        force: bool = False,
        cache_path: Path | None = None,
    ) -> LookupResult:
        """Split `oracle_ids` into those with a Spellbook id and those without."""
        index = await self.load(ttl_ms=ttl_ms, force=force, cache_path=cache_path)
        found: dict[str, int] = {}
        missing: list[str] = []
        for oracle_id in oracle_ids:
            card_id = index.oracle_to_id.get(oracle_id)
            if card_id is not None:
                found[oracle_id] = card_id
            else:
                missing.append(oracle_id)
        return LookupResult(found=found, missing=missing)

    def persist(self, index: CardIndex, path: Path | None = None) -> Path:
        return self.cache.persist(index, path)

    def read(self, path: Path | None = None) -> CacheEntry[CardIndex] | None:
        return self.cache.read(path)

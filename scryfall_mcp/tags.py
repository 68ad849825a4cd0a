"""
Scryfall Tagger tag names, scraped from the public docs page.

https://scryfall.com/docs/tagger-tags lists every tag as a link to a search,
e.g. `/search?q=oracletag%3Aramp` or `/search?q=arttag%3Adragon`. The link
prefix tells the two categories apart:

- function (oracle) tags: oracletag:, otag:, function:
- art tags: arttag:, atag:, art:

The result is cached with the same memory -> disk -> refetch policy as the
card index.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import parse_qs, urlsplit

import httpx
from bs4 import BeautifulSoup

from scryfall_mcp.cache import DiskBackedCache
from scryfall_mcp.config import DAY_MS
from scryfall_mcp.errors import UpstreamError

logger = logging.getLogger(__name__)

FUNCTION_PREFIXES = frozenset({"oracletag", "otag", "function"})
ART_PREFIXES = frozenset({"arttag", "atag", "art"})


@dataclass(frozen=True)
class TaggerTags:
    function: list[str] = field(default_factory=list)
    art: list[str] = field(default_factory=list)

    def to_json(self) -> dict[str, list[str]]:
        return {"function": list(self.function), "art": list(self.art)}

    @classmethod
    def from_json(cls, payload: Any) -> "TaggerTags":
        if not isinstance(payload, dict):
            raise TypeError("tagger payload must be an object")
        function, art = payload["function"], payload["art"]
        if not isinstance(function, list) or not isinstance(art, list):
            raise TypeError("tagger categories must be lists")
        return cls(function=[str(t) for t in function], art=[str(t) for t in art])


def unique_sorted(values: Iterable[str]) -> list[str]:
    """Deduplicate and sort case-insensitively (ties broken by the raw string)."""
    return sorted(set(values), key=lambda s: (s.casefold(), s))


def _tag_prefix(href: str) -> str | None:
    """The `prefix` of a `/search?q=prefix:name` link, lowercased, or None."""
    url = urlsplit(href)
    if url.path != "/search":
        return None
    query = parse_qs(url.query).get("q")
    if not query:
        return None
    prefix, sep, _ = query[0].partition(":")
    return prefix.strip().lower() if sep else None


def parse_tagger_tags(page: str) -> TaggerTags:
    """Extract function and art tag names from the tagger docs HTML."""
    soup = BeautifulSoup(page, "html.parser")
    function_tags: list[str] = []
    art_tags: list[str] = []
    for link in soup.find_all("a", href=True):
        prefix = _tag_prefix(link["href"])
        text = link.get_text(" ", strip=True)
        if not text:
            continue
        if prefix in ART_PREFIXES:
            art_tags.append(text)
        elif prefix in FUNCTION_PREFIXES:
            function_tags.append(text)
    return TaggerTags(function=unique_sorted(function_tags), art=unique_sorted(art_tags))


def to_kebab_tag(text: str) -> str:
    """Normalize a display name into tag form: "Mana Rock" -> "mana-rock"."""
    return re.sub(r"[^a-z0-9]+", "-", text.strip().lower()).strip("-")


class TaggerTagStore:
    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        path: Path,
        ttl_ms: float = DAY_MS,
        user_agent: str = "scryfall-mcp/0.1 (+tag-fetch)",
    ):
        self.client = client
        self.url = url
        self.user_agent = user_agent
        self.cache: DiskBackedCache[TaggerTags] = DiskBackedCache(
            "tagger tags",
            self.fetch,
            path=path,
            ttl_ms=ttl_ms,
            to_json=TaggerTags.to_json,
            from_json=TaggerTags.from_json,
        )

    @property
    def path(self) -> Path:
        return self.cache.path

    async def fetch(self) -> TaggerTags:
        response = await self.client.get(self.url, headers={"User-Agent": self.user_agent})
        if not response.is_success:
            raise UpstreamError(
                "tagger",
                status_code=response.status_code,
                reason=response.reason_phrase,
                message=f"Failed to fetch tagger tags: {response.status_code} {response.reason_phrase}",
            )
        tags = parse_tagger_tags(response.text)
        logger.info("Fetched %d function and %d art tags", len(tags.function), len(tags.art))
        return tags

    async def load(
        self,
        ttl_ms: float | None = None,
        force: bool = False,
        path: Path | None = None,
    ) -> TaggerTags:
        return await self.cache.load(ttl_ms=ttl_ms, force=force, path=path)

    async def refresh(self, path: Path | None = None) -> dict[str, Any]:
        """Refetch the tag list regardless of cache age and rewrite the cache file."""
        tags = await self.load(ttl_ms=0, force=True, path=path)
        written = self.cache.persist(tags, path)
        return {
            "path": str(written),
            "counts": {"function": len(tags.function), "art": len(tags.art)},
        }

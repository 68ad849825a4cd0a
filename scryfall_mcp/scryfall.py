"""
Scryfall card database client.

Thin query builders over a RequestGovernor. Every call goes through the
governor, so callers never see rate limiting or retries, only results or
UpstreamError.
"""

from typing import Any, Literal
from urllib.parse import quote

from scryfall_mcp.governor import RequestGovernor

Unique = Literal["cards", "art", "prints"]
Order = Literal[
    "name",
    "set",
    "released",
    "rarity",
    "color",
    "usd",
    "tix",
    "eur",
    "cmc",
    "power",
    "toughness",
    "edhrec",
    "penny",
    "artist",
    "review",
]
Direction = Literal["auto", "asc", "desc"]


class ScryfallClient:
    def __init__(self, governor: RequestGovernor):
        self.governor = governor

    async def search_cards(
        self,
        q: str,
        unique: Unique | None = None,
        order: Order | None = None,
        dir: Direction | None = None,
        page: int | None = None,
        include_extras: bool | None = None,
        include_multilingual: bool | None = None,
        include_variations: bool | None = None,
    ) -> Any:
        """Full-text search using Scryfall's query syntax."""
        return await self.governor.request_json(
            "/cards/search",
            {
                "q": q,
                "unique": unique,
                "order": order,
                "dir": dir,
                "page": page,
                "include_extras": include_extras,
                "include_multilingual": include_multilingual,
                "include_variations": include_variations,
            },
        )

    async def get_card_by_id(self, card_id: str) -> Any:
        return await self.governor.request_json(f"/cards/{quote(card_id, safe='')}")

    async def get_card_named(self, name: str, fuzzy: bool = False) -> Any:
        """Look a card up by name, exactly or with Scryfall's fuzzy matching."""
        params = {"fuzzy": name} if fuzzy else {"exact": name}
        return await self.governor.request_json("/cards/named", params)

    async def random_card(self, q: str | None = None) -> Any:
        return await self.governor.request_json("/cards/random", {"q": q} if q else None)

    async def autocomplete(self, q: str) -> Any:
        return await self.governor.request_json("/cards/autocomplete", {"q": q})

    async def list_sets(self) -> Any:
        return await self.governor.request_json("/sets")

    async def get_rulings(self, card_id: str) -> Any:
        return await self.governor.request_json(f"/cards/{quote(card_id, safe='')}/rulings")

"""
Commander Spellbook combo database client.

Like ScryfallClient, every call delegates to the CSB RequestGovernor. The
paginated card catalog endpoint is validated into a CardPage so the index
builder works against a known shape.
"""

import math
from typing import Any, Sequence

from pydantic import BaseModel, ValidationError, field_validator

from scryfall_mcp.errors import UpstreamContractError
from scryfall_mcp.governor import RequestGovernor


class CardPage(BaseModel):
    """
    One page of the /cards catalog: {"results": [...], "count": N, "next": url}.

    A missing or non-list `results` is read as an empty page. Entries are kept
    as raw values; the index builder decides which ones it can use.
    """

    results: list[Any] = []
    count: int | None = None
    next: str | None = None

    @field_validator("results", mode="before")
    @classmethod
    def _results_as_list(cls, value: Any) -> list[Any]:
        return value if isinstance(value, list) else []

    @field_validator("count", mode="before")
    @classmethod
    def _count_as_int(cls, value: Any) -> int | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)

    @field_validator("next", mode="before")
    @classmethod
    def _next_as_str(cls, value: Any) -> str | None:
        return value if isinstance(value, str) and value else None


class SpellbookClient:
    def __init__(self, governor: RequestGovernor):
        self.governor = governor

    async def parse_card_list(self, text: str) -> Any:
        """Parse a free-text decklist into Spellbook's card list structure."""
        return await self.governor.post_text("/card-list-from-text", text)

    async def find_my_combos(
        self,
        ids: Sequence[int],
        limit: int | None = None,
        offset: int | None = None,
    ) -> Any:
        """Find combos contained in (or almost contained in) a set of CSB card ids."""
        return await self.governor.request_json(
            "/find-my-combos",
            {"ids": ",".join(str(i) for i in ids), "limit": limit, "offset": offset},
        )

    async def variants(
        self,
        uses: int | None = None,
        produces: int | None = None,
        of: int | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Any:
        """Search combo variants that use a card, produce a feature or belong to a combo."""
        return await self.governor.request_json(
            "/variants",
            {"uses": uses, "produces": produces, "of": of, "limit": limit, "offset": offset},
        )

    async def get_card(self, card_id: int) -> Any:
        return await self.governor.request_json(f"/cards/{int(card_id)}")

    async def cards(
        self,
        limit: int | None = None,
        offset: int | None = None,
        search: str | None = None,
        name: str | None = None,
        oracle_id: str | None = None,
    ) -> CardPage:
        """Fetch one page of the card catalog."""
        data = await self.governor.request_json(
            "/cards",
            {
                "limit": limit,
                "offset": offset,
                "search": search,
                "name": name,
                "oracleId": oracle_id,
            },
        )
        if not isinstance(data, dict):
            raise UpstreamContractError(self.governor.name, "card page is not a JSON object")
        try:
            return CardPage.model_validate(data)
        except ValidationError as e:
            raise UpstreamContractError(self.governor.name, str(e)) from e

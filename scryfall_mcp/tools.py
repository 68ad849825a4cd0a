"""
Gateway assembly and the composite workflows behind the MCP tools.

server.py registers the MCP tool functions; this module holds what they call
into, so the workflows can be tested without the protocol layer:

    Gateway
      scryfall_governor  -> ScryfallClient
      csb_governor       -> SpellbookClient -> CardIndexStore
      tagger_http        -> TaggerTagStore

The composite workflows bridge the two identifier spaces: Scryfall names and
oracle ids on one side, Spellbook numeric card ids on the other.
"""

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import httpx

from scryfall_mcp.card_index import CardIndexStore
from scryfall_mcp.config import Settings
from scryfall_mcp.errors import UpstreamError
from scryfall_mcp.governor import GovernorConfig, RequestGovernor
from scryfall_mcp.scryfall import ScryfallClient
from scryfall_mcp.spellbook import SpellbookClient
from scryfall_mcp.tags import TaggerTagStore

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """Everything the tools need, one instance per process."""

    scryfall_governor: RequestGovernor
    csb_governor: RequestGovernor
    tagger_http: httpx.AsyncClient
    scryfall: ScryfallClient
    spellbook: SpellbookClient
    card_index: CardIndexStore
    tagger: TaggerTagStore

    async def aclose(self) -> None:
        await self.scryfall_governor.aclose()
        await self.csb_governor.aclose()
        await self.tagger_http.aclose()


def build_gateway(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Gateway:
    """
    Wire governors, clients and caches from settings.

    Args:
        settings: Application settings
        transport: Optional httpx transport shared by every outbound client
                   (tests pass an httpx.MockTransport here)
    """
    scryfall_governor = RequestGovernor(
        GovernorConfig(
            name="scryfall",
            base_url=settings.scryfall_base_url,
            interval_ms=settings.scryfall_interval_ms,
            max_retries=settings.scryfall_max_retries,
            retry_base_ms=settings.scryfall_retry_base_ms,
            user_agent=settings.user_agent,
            timeout_s=settings.http_timeout_s,
        ),
        transport=transport,
    )
    csb_governor = RequestGovernor(
        GovernorConfig(
            name="csb",
            base_url=settings.csb_base_url,
            interval_ms=settings.csb_interval_ms,
            max_retries=settings.csb_max_retries,
            retry_base_ms=settings.csb_retry_base_ms,
            user_agent=settings.user_agent,
            timeout_s=settings.http_timeout_s,
        ),
        transport=transport,
    )
    tagger_http = httpx.AsyncClient(
        timeout=settings.http_timeout_s,
        follow_redirects=True,
        transport=transport,
    )

    spellbook = SpellbookClient(csb_governor)
    return Gateway(
        scryfall_governor=scryfall_governor,
        csb_governor=csb_governor,
        tagger_http=tagger_http,
        scryfall=ScryfallClient(scryfall_governor),
        spellbook=spellbook,
        card_index=CardIndexStore(
            spellbook,
            path=settings.csb_card_index_path,
            ttl_ms=settings.csb_card_index_ttl_ms,
        ),
        tagger=TaggerTagStore(
            tagger_http,
            url=settings.tagger_url,
            path=settings.tagger_cache_path,
            ttl_ms=settings.tagger_ttl_ms,
            user_agent=settings.user_agent,
        ),
    )


async def resolve_oracle_ids(gateway: Gateway, names: Sequence[str]) -> dict[str, str]:
    """
    Resolve card names to Scryfall oracle ids with fuzzy matching.

    Names that fail to resolve are left out of the result; one bad name does
    not abort the batch.
    """
    resolved: dict[str, str] = {}
    for name in names:
        try:
            card = await gateway.scryfall.get_card_named(name, fuzzy=True)
        except (UpstreamError, httpx.HTTPError) as e:
            logger.info("Skipping unresolved card name %r: %s", name, e)
            continue
        oracle_id = card.get("oracle_id") if isinstance(card, dict) else None
        if isinstance(oracle_id, str):
            resolved[name] = oracle_id
    return resolved


async def find_combos_by_oracle_ids(
    gateway: Gateway,
    oracle_ids: Sequence[str],
    limit: int | None = None,
    offset: int | None = None,
) -> dict[str, Any]:
    lookup = await gateway.card_index.lookup(oracle_ids)
    csb_ids = list(lookup.found.values())
    combos = await gateway.spellbook.find_my_combos(csb_ids, limit=limit, offset=offset) if csb_ids else None
    return {
        "csbIds": lookup.found,
        "missingOracleIds": lookup.missing,
        "combos": combos,
    }


async def find_combos_by_names(
    gateway: Gateway,
    names: Sequence[str],
    limit: int | None = None,
    offset: int | None = None,
) -> dict[str, Any]:
    """Names -> oracle ids (Scryfall) -> card ids (index) -> combos (Spellbook)."""
    resolved = await resolve_oracle_ids(gateway, names)
    result = await find_combos_by_oracle_ids(gateway, list(resolved.values()), limit, offset)
    return {"resolved": resolved, **result}


async def lookup_csb_ids(
    gateway: Gateway,
    oracle_ids: Sequence[str],
    force: bool = False,
) -> dict[str, Any]:
    lookup = await gateway.card_index.lookup(oracle_ids, force=force)
    return {"found": lookup.found, "missing": lookup.missing}


async def rebuild_card_index(gateway: Gateway) -> dict[str, Any]:
    """Force a full catalog rebuild and report what was written."""
    index = await gateway.card_index.load(force=True)
    return {
        "path": str(gateway.card_index.path),
        "total": index.total,
        "entries": len(index.oracle_to_id),
        "builtAtMs": index.built_at_ms,
    }

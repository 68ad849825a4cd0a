"""
MCP server implementation using FastMCP v2.

This module creates and runs the MCP server with:
- Scryfall tools: card search, lookup by id or name, random card, autocomplete,
  set list, rulings, tagger tag list
- Commander Spellbook tools: decklist parsing, combo search by card ids or by
  card names, variant search, card lookup, oracle id cross-reference
- A logging middleware that records every tool call with its duration
- Structured JSON logging on stderr
- Either stdio transport (desktop clients) or Streamable HTTP transport, with
  info, health and readiness HTTP endpoints

Architecture:
    Tool function -> Gateway (tools.py) -> Scryfall / Spellbook client
    -> RequestGovernor (rate limiting + 429 back-off) -> upstream

    Upstream errors are not caught here. FastMCP turns an exception raised by
    a tool into a tool result with isError=true, carrying the error message.

Running the server:
    uv run python -m scryfall_mcp.server                            # stdio
    uv run python -m scryfall_mcp.server --transport streamable-http
"""

import argparse
import json
import logging
import os
import sys
import time
import uuid
from typing import Annotated, Any, Literal
from uuid import UUID

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import ToolResult
from mcp.types import CallToolRequestParams
from pydantic import Field
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from scryfall_mcp import __version__
from scryfall_mcp import tools
from scryfall_mcp.config import settings
from scryfall_mcp.scryfall import Direction, Order, Unique
from scryfall_mcp.tools import build_gateway

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------
# One JSON object per log line. Logs go to stderr: with the stdio transport,
# stdout carries the MCP message stream and must not be written to.


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO", "logger": "scryfall-mcp",
         "message": "Tool call finished", "tool": "search_cards", "duration_ms": 212.4}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Merge structured fields passed via logger.info("msg", extra={"event_data": {...}})
        if hasattr(record, "event_data"):
            log_entry.update(record.event_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


handler = logging.StreamHandler(sys.stderr)
handler.setFormatter(JSONLogFormatter())

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[handler],
)
logger = logging.getLogger("scryfall-mcp")


# ---------------------------------------------------------------------------
# Tool call logging middleware
# ---------------------------------------------------------------------------


class ToolCallLogger(Middleware):
    """
    Logs every tools/call request: which tool, how long it took, and whether
    it failed. Errors are logged and re-raised unchanged, so FastMCP still
    produces the client-visible error result.
    """

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        request_id = str(uuid.uuid4())[:8]
        tool_name = context.message.name
        started = time.perf_counter()

        try:
            result = await call_next(context)
        except Exception as e:
            logger.warning(
                "Tool call failed",
                extra={
                    "event_data": {
                        "request_id": request_id,
                        "tool": tool_name,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                        "outcome": "error",
                        "error": str(e),
                    }
                },
            )
            raise

        logger.info(
            "Tool call finished",
            extra={
                "event_data": {
                    "request_id": request_id,
                    "tool": tool_name,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                    "outcome": "ok",
                }
            },
        )
        return result


# ---------------------------------------------------------------------------
# Server and gateway
# ---------------------------------------------------------------------------
mcp = FastMCP(
    name="scryfall-mcp",
    instructions=(
        "Magic: The Gathering card data from Scryfall and combo data from "
        "Commander Spellbook. Use search_cards / get_card for card lookups and "
        "the spellbook_* tools to find combos for cards or decklists."
    ),
    middleware=[ToolCallLogger()],
)

# Process-wide: one governor per upstream, one index and one tag cache.
gateway = build_gateway(settings)


# ---------------------------------------------------------------------------
# Scryfall tools
# ---------------------------------------------------------------------------


@mcp.tool(description="Search cards using Scryfall's powerful full-text syntax.")
async def search_cards(
    q: Annotated[str, Field(description="Scryfall search query, e.g. 't:creature cmc<=3'")],
    unique: Unique | None = None,
    order: Order | None = None,
    dir: Direction | None = None,
    page: Annotated[int | None, Field(ge=1)] = None,
    include_extras: bool | None = None,
    include_multilingual: bool | None = None,
    include_variations: bool | None = None,
) -> dict[str, Any]:
    return await gateway.scryfall.search_cards(
        q,
        unique=unique,
        order=order,
        dir=dir,
        page=page,
        include_extras=include_extras,
        include_multilingual=include_multilingual,
        include_variations=include_variations,
    )


@mcp.tool(description="Get a single card by Scryfall UUID or by name (exact/fuzzy).")
async def get_card(
    id: UUID | None = None,
    name: str | None = None,
    fuzzy: Annotated[bool, Field(description="If true, uses fuzzy name match")] = False,
) -> dict[str, Any]:
    if id is not None:
        return await gateway.scryfall.get_card_by_id(str(id))
    if not name:
        raise ToolError("Provide either 'id' or 'name'.")
    return await gateway.scryfall.get_card_named(name, fuzzy=fuzzy)


@mcp.tool(description="Fetch a random card, optionally filtered by a 'q' search query.")
async def random_card(q: str | None = None) -> dict[str, Any]:
    return await gateway.scryfall.random_card(q)


@mcp.tool(description="Autocomplete card names based on a partial query.")
async def autocomplete(q: str) -> dict[str, Any]:
    return await gateway.scryfall.autocomplete(q)


@mcp.tool(description="List all sets available on Scryfall.")
async def list_sets() -> dict[str, Any]:
    return await gateway.scryfall.list_sets()


@mcp.tool(description="Get official rulings for a card by Scryfall UUID.")
async def get_rulings(id: UUID) -> dict[str, Any]:
    return await gateway.scryfall.get_rulings(str(id))


@mcp.tool(description="List Scryfall Tagger tag names, split into function (oracle) and art tags.")
async def list_tagger_tags(
    category: Literal["all", "function", "art"] = "all",
    force: bool = False,
) -> dict[str, Any]:
    tags = await gateway.tagger.load(force=force)
    data = tags.to_json()
    if category != "all":
        data = {category: data[category]}
    return data


@mcp.tool(description="Re-download the Scryfall Tagger tag list and rewrite the local cache.")
async def refresh_tagger_tags() -> dict[str, Any]:
    return await gateway.tagger.refresh()


# ---------------------------------------------------------------------------
# Commander Spellbook tools
# ---------------------------------------------------------------------------


@mcp.tool(description="Parse a free-text decklist into Commander Spellbook's card list format.")
async def spellbook_parse_decklist(
    text: Annotated[str, Field(min_length=1, description="Decklist, one card per line")],
) -> dict[str, Any]:
    return await gateway.spellbook.parse_card_list(text)


@mcp.tool(description="Find combos among a set of Commander Spellbook card ids.")
async def spellbook_find_combos_by_ids(
    ids: Annotated[list[int], Field(min_length=1)],
    limit: Annotated[int | None, Field(ge=1)] = None,
    offset: Annotated[int | None, Field(ge=0)] = None,
) -> dict[str, Any]:
    return await gateway.spellbook.find_my_combos(ids, limit=limit, offset=offset)


@mcp.tool(
    description=(
        "Find combos for cards given by name. Names are resolved through Scryfall "
        "(fuzzy) and mapped to Commander Spellbook ids; unresolved names are skipped."
    )
)
async def spellbook_find_combos_by_names(
    names: Annotated[list[str], Field(min_length=1)],
    limit: Annotated[int | None, Field(ge=1)] = None,
    offset: Annotated[int | None, Field(ge=0)] = None,
) -> dict[str, Any]:
    return await tools.find_combos_by_names(gateway, names, limit=limit, offset=offset)


@mcp.tool(description="Search combo variants that use a card, produce a feature, or belong to a combo.")
async def spellbook_search_variants(
    uses: int | None = None,
    produces: int | None = None,
    of: int | None = None,
    limit: Annotated[int | None, Field(ge=1)] = None,
    offset: Annotated[int | None, Field(ge=0)] = None,
) -> dict[str, Any]:
    if uses is None and produces is None and of is None:
        raise ToolError("Provide at least one of 'uses', 'produces' or 'of'.")
    return await gateway.spellbook.variants(
        uses=uses, produces=produces, of=of, limit=limit, offset=offset
    )


@mcp.tool(description="Get a Commander Spellbook card by its numeric id.")
async def spellbook_get_card(id: Annotated[int, Field(ge=1)]) -> dict[str, Any]:
    return await gateway.spellbook.get_card(id)


@mcp.tool(description="Map Scryfall oracle ids to Commander Spellbook card ids using the local index.")
async def spellbook_lookup_oracle_ids(
    oracle_ids: Annotated[list[str], Field(min_length=1)],
    force: bool = False,
) -> dict[str, Any]:
    return await tools.lookup_csb_ids(gateway, oracle_ids, force=force)


@mcp.tool(description="Rebuild the local oracle id -> Commander Spellbook id index from the full catalog.")
async def spellbook_build_card_index() -> dict[str, Any]:
    return await tools.rebuild_card_index(gateway)


# ---------------------------------------------------------------------------
# Info, Health and Readiness Endpoints
# ---------------------------------------------------------------------------
# Plain HTTP endpoints (not MCP protocol), only served with the HTTP transport.


@mcp.custom_route("/", methods=["GET"])
async def server_info(request: Request) -> Response:
    return JSONResponse(
        {
            "name": "scryfall-mcp",
            "version": __version__,
            "transport": "streamable-http",
            "endpoints": {"mcp": "/mcp", "health": "/health", "ready": "/ready"},
        }
    )


@mcp.custom_route("/health", methods=["GET"])
async def health_check(request: Request) -> Response:
    """Liveness probe: is the server process alive and responsive?"""
    return JSONResponse({"status": "healthy"})


@mcp.custom_route("/ready", methods=["GET"])
async def readiness_check(request: Request) -> Response:
    """Readiness probe: can the caches be written?"""
    unwritable = []
    for path in (gateway.card_index.path, gateway.tagger.path):
        directory = path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError:
            unwritable.append(str(directory))
            continue
        if not os.access(directory, os.W_OK):
            unwritable.append(str(directory))

    if unwritable:
        return JSONResponse(
            {"status": "not_ready", "reason": "cache directory not writable", "paths": unwritable},
            status_code=503,
        )

    return JSONResponse({"status": "ready"})


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def main() -> None:
    parser = argparse.ArgumentParser(description="Scryfall + Commander Spellbook MCP server.")
    parser.add_argument(
        "--transport",
        choices=["stdio", "streamable-http"],
        default=settings.transport,
        help=f"MCP transport (default: {settings.transport})",
    )
    parser.add_argument("--host", default=settings.host)
    parser.add_argument("--port", type=int, default=settings.port)
    args = parser.parse_args()

    if args.transport == "stdio":
        logger.info("Starting MCP server (transport=stdio)")
        mcp.run(transport="stdio")
        return

    logger.info(
        "Starting MCP server on %s:%d (transport=streamable-http)",
        args.host,
        args.port,
    )
    mcp.run(
        transport="streamable-http",
        host=args.host,
        port=args.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()

"""
CLI utility to prebuild the on-disk caches before starting the server.

The first combo-by-name lookup otherwise pays for a full Commander Spellbook
catalog crawl (a few hundred paginated requests at the polite request rate).
Running this once, e.g. in a container build step or a cron job, leaves a
fresh cache file for the server to adopt on startup.

Usage examples:

    # Build both caches if they are missing or stale
    uv run python -m scripts.warm_cache

    # Only the Spellbook card index, rebuilt regardless of age
    uv run python -m scripts.warm_cache --index --force

    # Only the tagger tag list, written to a custom path
    uv run python -m scripts.warm_cache --tags --tags-path /data/tagger-tags.json

Paths, TTLs and rate-limit settings come from the same MCP_* environment
variables the server reads.
"""

import argparse
import asyncio
from pathlib import Path

from scryfall_mcp.config import settings
from scryfall_mcp.tools import build_gateway


async def warm(
    index: bool,
    tags: bool,
    force: bool,
    index_path: Path | None = None,
    tags_path: Path | None = None,
) -> None:
    """
    Load (or rebuild) the requested caches and print a summary of each.

    Args:
        index: Whether to warm the Spellbook card index
        tags: Whether to warm the tagger tag list
        force: Rebuild even when the cache file is still fresh
        index_path: Override for MCP_CSB_CARD_INDEX_PATH
        tags_path: Override for MCP_TAGGER_CACHE_PATH
    """
    gateway = build_gateway(settings)
    try:
        if index:
            card_index = await gateway.card_index.load(force=force, cache_path=index_path)
            print(f"Card index: {index_path or gateway.card_index.path}")
            print(f"  Entries:  {len(card_index.oracle_to_id)}")
            print(f"  Total:    {card_index.total}")
            print(f"  Built at: {card_index.built_at_ms:.0f} ms")

        if tags:
            if force:
                summary = await gateway.tagger.refresh(path=tags_path)
                counts = summary["counts"]
            else:
                tag_list = await gateway.tagger.load(path=tags_path)
                counts = {"function": len(tag_list.function), "art": len(tag_list.art)}
            print(f"Tagger tags: {tags_path or gateway.tagger.path}")
            print(f"  Function: {counts['function']}")
            print(f"  Art:      {counts['art']}")
    finally:
        await gateway.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Prebuild the scryfall-mcp on-disk caches.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Both caches, only if stale:
    %(prog)s

  Force a full Spellbook catalog crawl:
    %(prog)s --index --force
        """,
    )

    parser.add_argument("--index", action="store_true", help="Warm the Spellbook card index")
    parser.add_argument("--tags", action="store_true", help="Warm the tagger tag list")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Rebuild even if the cache file is younger than its TTL",
    )
    parser.add_argument("--index-path", type=Path, default=None, help="Card index file location")
    parser.add_argument("--tags-path", type=Path, default=None, help="Tagger cache file location")

    args = parser.parse_args()

    # Neither flag means both.
    both = not args.index and not args.tags
    asyncio.run(
        warm(
            index=args.index or both,
            tags=args.tags or both,
            force=args.force,
            index_path=args.index_path,
            tags_path=args.tags_path,
        )
    )


if __name__ == "__main__":
    main()

"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables. Every value has a default, so the server runs
with no configuration at all against the public Scryfall and Commander
Spellbook APIs.

Each upstream gets its own group of governor settings (base URL, minimum
interval between dispatches, retry budget, back-off base). The two on-disk
caches each get a path and a TTL.

Locally, you can set them via environment variables or a .env file.
"""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings

DAY_MS = 24 * 60 * 60 * 1000


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the MCP_ prefix.
    For example, `scryfall_interval_ms` reads from MCP_SCRYFALL_INTERVAL_MS,
    `csb_card_index_path` reads from MCP_CSB_CARD_INDEX_PATH.
    """

    # --- Server settings ---

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    # "stdio" for desktop clients that spawn the server as a subprocess,
    # "streamable-http" for a long-running network service.
    transport: Literal["stdio", "streamable-http"] = "stdio"

    # --- Outbound HTTP ---

    # Sent on every upstream request. Scryfall rejects requests without one.
    user_agent: str = "scryfall-mcp/0.1 (https://github.com/latte-chan/scryfall-connector)"
    http_timeout_s: float = 30.0

    # --- Scryfall governor ---

    scryfall_base_url: str = "https://api.scryfall.com"
    scryfall_interval_ms: int = 100
    scryfall_max_retries: int = 3
    scryfall_retry_base_ms: int = 250

    # --- Commander Spellbook governor ---

    csb_base_url: str = "https://backend.commanderspellbook.com"
    csb_interval_ms: int = 100
    csb_max_retries: int = 3
    csb_retry_base_ms: int = 250

    # --- Caches ---

    csb_card_index_path: Path = Path("cache") / "csb-card-index.json"
    csb_card_index_ttl_ms: int = DAY_MS

    tagger_url: str = "https://scryfall.com/docs/tagger-tags"
    tagger_cache_path: Path = Path("cache") / "tagger-tags.json"
    tagger_ttl_ms: int = DAY_MS

    model_config = {
        "env_prefix": "MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance: import this from other modules.
settings = Settings()

"""MCP gateway to the Scryfall card database and the Commander Spellbook combo database."""

__version__ = "0.1.0"

"""
Tests for the Spellbook cross-reference index (scryfall_mcp/card_index.py)
and the three-tier cache underneath it (scryfall_mcp/cache.py).

The catalog is served by the make_catalog_handler fixture; the `calls` list
it returns tells us exactly how many pages were fetched, i.e. whether a
network rebuild happened.
"""

import json
import os
import time

import httpx
import pytest

from scryfall_mcp.card_index import CardIndex, CardIndexStore, build_card_index
from scryfall_mcp.errors import UpstreamError
from scryfall_mcp.spellbook import SpellbookClient
from tests.conftest import make_catalog

HOUR_MS = 60 * 60 * 1000


@pytest.fixture
def make_store(make_governor, tmp_path):
    def _make_store(handler, ttl_ms: float = HOUR_MS) -> CardIndexStore:
        spellbook = SpellbookClient(make_governor(handler, name="csb"))
        return CardIndexStore(spellbook, path=tmp_path / "cache" / "csb-card-index.json", ttl_ms=ttl_ms)

    return _make_store


def write_index_file(path, index: CardIndex, age_ms: float = 0) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(index.to_json()), encoding="utf-8")
    mtime = time.time() - age_ms / 1000
    os.utime(path, (mtime, mtime))


class TestBuild:
    async def test_paginates_full_catalog(self, make_governor, make_catalog_handler):
        cards = make_catalog(250)
        handler, calls = make_catalog_handler(cards)
        spellbook = SpellbookClient(make_governor(handler))

        index = await build_card_index(spellbook)

        assert calls == [0, 100, 200]
        assert index.total == 250
        assert len(index.oracle_to_id) == 250
        assert index.oracle_to_id["oracle-1"] == 1
        assert index.oracle_to_id["oracle-250"] == 250

    async def test_skips_entries_without_usable_keys(self, make_governor, make_catalog_handler):
        cards = make_catalog(250)
        cards[10] = {"id": 11, "name": "No oracle id"}
        cards[20] = {"id": "21", "oracleId": "oracle-21"}
        cards[30] = {"id": True, "oracleId": "oracle-31"}
        cards[40] = {"oracleId": 41, "id": 41}
        cards[50] = "not a card"
        handler, _ = make_catalog_handler(cards)
        spellbook = SpellbookClient(make_governor(handler))

        index = await build_card_index(spellbook)

        assert index.total == 250
        assert len(index.oracle_to_id) == 245
        for skipped in ("oracle-11", "oracle-21", "oracle-31", "oracle-41", "oracle-51"):
            assert skipped not in index.oracle_to_id

    async def test_first_entry_wins_on_duplicate_oracle_id(self, make_governor, make_catalog_handler):
        cards = make_catalog(150)
        cards[120] = {"id": 9999, "oracleId": "oracle-5"}
        handler, _ = make_catalog_handler(cards)
        spellbook = SpellbookClient(make_governor(handler))

        index = await build_card_index(spellbook)

        assert index.oracle_to_id["oracle-5"] == 5

    async def test_empty_first_page_stops_immediately(self, make_governor, make_catalog_handler):
        handler, calls = make_catalog_handler([], count=0)
        spellbook = SpellbookClient(make_governor(handler))

        index = await build_card_index(spellbook)

        assert calls == [0]
        assert index.total == 0
        assert index.oracle_to_id == {}

    async def test_malformed_page_results_are_treated_as_empty(self, make_governor):
        """A page with a broken results array is read as empty instead of raising."""
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["offset"])
            calls.append(offset)
            if offset == 0:
                return httpx.Response(
                    200,
                    json={"results": [{"id": 1, "oracleId": "a"}], "count": 3, "next": "https://upstream.test/cards?offset=100"},
                )
            if offset == 100:
                return httpx.Response(
                    200,
                    json={"results": None, "count": 3, "next": "https://upstream.test/cards?offset=200"},
                )
            return httpx.Response(200, json={"results": [{"id": 3, "oracleId": "c"}], "count": 3, "next": None})

        spellbook = SpellbookClient(make_governor(handler))

        index = await build_card_index(spellbook)

        # The malformed middle page reads as zero results, which ends paging
        assert calls == [0, 100]
        assert index.oracle_to_id == {"a": 1}
        assert index.total == 3

    async def test_non_finite_count_is_ignored(self, make_governor):
        body = b'{"results": [{"id": 1, "oracleId": "a"}], "count": 1e999, "next": null}'
        spellbook = SpellbookClient(
            make_governor(
                lambda request: httpx.Response(200, content=body, headers={"Content-Type": "application/json"})
            )
        )

        index = await build_card_index(spellbook)

        assert index.oracle_to_id == {"a": 1}
        assert index.total == 0

    async def test_page_that_is_not_an_object_is_rejected(self, make_governor):
        spellbook = SpellbookClient(make_governor(lambda request: httpx.Response(200, json=[1, 2, 3])))

        with pytest.raises(UpstreamError, match="unexpected response"):
            await build_card_index(spellbook)


class TestLoad:
    async def test_second_load_is_served_from_memory(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(250))
        store = make_store(handler)

        first = await store.load()
        second = await store.load()

        assert calls == [0, 100, 200]
        assert second is first

    async def test_force_always_rebuilds(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(50))
        store = make_store(handler)

        await store.load()
        await store.load(force=True)

        assert calls == [0, 0]

    async def test_rebuild_is_persisted(self, make_store, make_catalog_handler):
        handler, _ = make_catalog_handler(make_catalog(3))
        store = make_store(handler)

        await store.load()

        payload = json.loads(store.path.read_text(encoding="utf-8"))
        assert payload["total"] == 3
        assert payload["oracleToId"] == {"oracle-1": 1, "oracle-2": 2, "oracle-3": 3}
        assert isinstance(payload["builtAtMs"], (int, float))

    async def test_fresh_file_is_adopted_without_network(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(10))
        store = make_store(handler, ttl_ms=HOUR_MS)
        write_index_file(store.path, CardIndex(built_at_ms=1.0, total=1, oracle_to_id={"x": 7}), age_ms=60_000)

        index = await store.load()

        assert calls == []
        assert index.oracle_to_id == {"x": 7}
        # Adopted into memory with the file's mtime as its age
        assert store.cache.memory.data is index
        assert store.cache.memory.observed_at_ms == pytest.approx(store.path.stat().st_mtime * 1000)
        store.path.unlink()
        assert (await store.load()).oracle_to_id == {"x": 7}
        assert calls == []

    async def test_stale_file_triggers_rebuild(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(10))
        store = make_store(handler, ttl_ms=HOUR_MS)
        write_index_file(store.path, CardIndex(built_at_ms=1.0, total=1, oracle_to_id={"x": 7}), age_ms=2 * HOUR_MS)

        index = await store.load()

        assert calls == [0]
        assert "x" not in index.oracle_to_id
        assert len(index.oracle_to_id) == 10

    async def test_unreadable_file_triggers_rebuild(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(5))
        store = make_store(handler)
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{not json", encoding="utf-8")

        index = await store.load()

        assert calls == [0]
        assert len(index.oracle_to_id) == 5

    async def test_file_with_out_of_range_total_triggers_rebuild(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(5))
        store = make_store(handler)
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{"builtAtMs": 1, "total": 1e999, "oracleToId": {"x": 7}}', encoding="utf-8")

        result = await store.lookup(["oracle-1", "x"])

        assert calls == [0]
        assert result.found == {"oracle-1": 1}
        assert result.missing == ["x"]
        assert store.read().data.total == 5

    async def test_clear_drops_memory_but_keeps_file(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(5))
        store = make_store(handler)
        built = await store.load()

        store.cache.clear()

        assert store.cache.memory is None
        reloaded = await store.load()
        assert calls == [0]
        assert reloaded == built
        assert reloaded is not built

    async def test_expired_memory_copy_is_rebuilt(self, make_store, make_catalog_handler):
        handler, calls = make_catalog_handler(make_catalog(5))
        store = make_store(handler)

        await store.load()
        await store.load(ttl_ms=0)

        assert calls == [0, 0]

    async def test_persist_failure_does_not_fail_load(self, make_governor, make_catalog_handler, tmp_path):
        handler, _ = make_catalog_handler(make_catalog(5))
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("", encoding="utf-8")
        spellbook = SpellbookClient(make_governor(handler))
        store = CardIndexStore(spellbook, path=blocker / "csb-card-index.json")

        index = await store.load()

        assert len(index.oracle_to_id) == 5

    async def test_custom_cache_path(self, make_store, make_catalog_handler, tmp_path):
        handler, _ = make_catalog_handler(make_catalog(2))
        store = make_store(handler)
        other = tmp_path / "elsewhere" / "index.json"

        await store.load(cache_path=other)

        assert other.exists()
        assert not store.path.exists()

    async def test_network_failure_propagates(self, make_store):
        store = make_store(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(UpstreamError) as excinfo:
            await store.load()

        assert excinfo.value.status_code == 502
        assert not store.path.exists()


class TestLookup:
    async def test_partitions_found_and_missing(self, make_store, tmp_path):
        store = make_store(lambda request: pytest.fail("unexpected network call"))
        write_index_file(store.path, CardIndex(built_at_ms=1.0, total=2, oracle_to_id={"a": 1, "c": 3}))

        result = await store.lookup(["a", "b", "c"])

        assert result.found == {"a": 1, "c": 3}
        assert result.missing == ["b"]

    async def test_missing_preserves_input_order(self, make_store):
        store = make_store(lambda request: pytest.fail("unexpected network call"))
        write_index_file(store.path, CardIndex(built_at_ms=1.0, total=1, oracle_to_id={"b": 2}))

        result = await store.lookup(["z", "b", "a", "y"])

        assert result.found == {"b": 2}
        assert result.missing == ["z", "a", "y"]


class TestPersistAndRead:
    async def test_round_trip_through_file(self, make_store, tmp_path):
        store = make_store(lambda request: httpx.Response(500))
        index = CardIndex(built_at_ms=1738800000000.0, total=2, oracle_to_id={"a": 1, "b": 2})

        path = store.persist(index)
        entry = store.read(path)

        assert path == store.path
        assert entry is not None
        assert entry.data == index
        assert entry.observed_at_ms == pytest.approx(path.stat().st_mtime * 1000)

    async def test_persist_overwrites(self, make_store):
        store = make_store(lambda request: httpx.Response(500))
        store.persist(CardIndex(built_at_ms=1.0, total=1, oracle_to_id={"old": 1}))
        store.persist(CardIndex(built_at_ms=2.0, total=1, oracle_to_id={"new": 2}))

        assert store.read().data.oracle_to_id == {"new": 2}

    async def test_read_missing_file_is_absent(self, make_store, tmp_path):
        store = make_store(lambda request: httpx.Response(500))

        assert store.read(tmp_path / "nope.json") is None

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "{broken",
            "[]",
            '{"builtAtMs": 1, "total": 1}',
            '{"builtAtMs": 1, "total": 1, "oracleToId": []}',
            '{"builtAtMs": 1, "total": 1e999, "oracleToId": {}}',
            "[" * 100_000 + "]" * 100_000,
        ],
        ids=["empty", "broken", "array", "no-mapping", "mapping-not-object", "infinite-total", "deep-nesting"],
    )
    async def test_read_malformed_file_is_absent(self, make_store, content):
        store = make_store(lambda request: httpx.Response(500))
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text(content, encoding="utf-8")

        assert store.read() is None

"""
Hairfolio Backend: SQL Remote Store Tests
==========================================

What:  SqlRemoteStore against a real SQLite database through aiosqlite.
How:   A fresh database file per test; tables created with create_all().

What we test:
    ✅ get / set upsert with version bumps
    ✅ Targeted field updates
    ✅ Compare-and-set (create-if-absent and version match)
    ✅ Driver failures surface as PersistenceError
    ✅ Disabled store
"""

import pytest
import pytest_asyncio

from hairfolio.database import Database
from hairfolio.exceptions import PersistenceError
from hairfolio.services.remote_store import SqlRemoteStore


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'remote.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def store(database):
    return SqlRemoteStore(database)


class TestReadsAndWrites:

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        assert await store.get("kim") is None
        assert await store.get_versioned("kim") is None

    @pytest.mark.asyncio
    async def test_set_inserts_then_updates(self, store):
        await store.set("kim", {"portfolio": [], "stats": {"visits": 0}})
        assert await store.get_versioned("kim") == ({"portfolio": [], "stats": {"visits": 0}}, 1)

        await store.set("kim", {"portfolio": [], "stats": {"visits": 1}})
        document, version = await store.get_versioned("kim")
        assert document["stats"]["visits"] == 1
        assert version == 2

    @pytest.mark.asyncio
    async def test_key_order_survives_round_trip(self, store):
        views = {"https://s.example/b.jpg": 2, "https://s.example/a.jpg": 2, "https://s.example/c.jpg": 1}
        await store.set("kim", {"stats": {"styleViews": views}})
        document = await store.get("kim")
        assert list(document["stats"]["styleViews"]) == list(views)

    @pytest.mark.asyncio
    async def test_update_fields(self, store):
        await store.set("kim", {"reservationUrl": "old", "settings": {"theme": "light"}})
        assert await store.update_fields("kim", {"reservationUrl": "new", "settings.theme": "dark"}) is True
        document, version = await store.get_versioned("kim")
        assert document == {"reservationUrl": "new", "settings": {"theme": "dark"}}
        assert version == 2

    @pytest.mark.asyncio
    async def test_update_fields_missing_document(self, store):
        assert await store.update_fields("kim", {"reservationUrl": "x"}) is False


class TestCompareAndSet:

    @pytest.mark.asyncio
    async def test_create_when_absent(self, store):
        assert await store.compare_and_set("kim", {"v": 1}, None) is True
        assert await store.get_versioned("kim") == ({"v": 1}, 1)

    @pytest.mark.asyncio
    async def test_create_conflicts_when_present(self, store):
        await store.set("kim", {"v": 1})
        assert await store.compare_and_set("kim", {"v": 2}, None) is False
        assert await store.get("kim") == {"v": 1}

    @pytest.mark.asyncio
    async def test_matching_version_swaps(self, store):
        await store.set("kim", {"v": 1})
        assert await store.compare_and_set("kim", {"v": 2}, 1) is True
        assert await store.get_versioned("kim") == ({"v": 2}, 2)

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, store):
        await store.set("kim", {"v": 1})
        await store.set("kim", {"v": 2})
        assert await store.compare_and_set("kim", {"v": 3}, 1) is False
        assert await store.get("kim") == {"v": 2}


class TestFailures:

    @pytest.mark.asyncio
    async def test_disabled_store_raises(self, database):
        store = SqlRemoteStore(database, enabled=False)
        with pytest.raises(PersistenceError):
            await store.get("kim")
        with pytest.raises(PersistenceError):
            await store.set("kim", {})
        assert await store.health_check() is False

    @pytest.mark.asyncio
    async def test_missing_table_raises_persistence_error(self, tmp_path):
        db = Database(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        store = SqlRemoteStore(db)
        try:
            with pytest.raises(PersistenceError) as exc_info:
                await store.get("kim")
            assert exc_info.value.context["operation"] == "get"
        finally:
            await db.dispose()

    @pytest.mark.asyncio
    async def test_health_check(self, store):
        assert await store.health_check() is True

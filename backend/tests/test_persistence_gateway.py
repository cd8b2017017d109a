"""
Hairfolio Backend: Persistence Gateway Tests
=============================================

What we test:
    ✅ Read fallback order: remote → local → empty default
    ✅ Writes land in the local mirror even when the remote store fails
    ✅ Absent optionals are stripped before the remote write only
    ✅ update() skips unknown designers unless create=True
    ✅ update_atomic() retries version conflicts and degrades when remote is down
    ✅ update_fields() targeted writes and remote seeding
"""

import asyncio

import pytest

from hairfolio.schemas.designer import DesignerRecord
from hairfolio.services.persistence import PersistenceGateway, ReadSource


class TestReads:

    @pytest.mark.asyncio
    async def test_unknown_designer_gets_default_shape(self, gateway):
        result = await gateway.load("nobody")
        assert result.source is ReadSource.DEFAULT
        assert result.exists is False
        assert result.record.portfolio == []
        assert result.record.stats.visits == 0
        assert result.record.stats.style_views == {}

    @pytest.mark.asyncio
    async def test_remote_preferred(self, gateway, remote_store, local_store):
        local_store.set("kim", DesignerRecord(reservation_url="local").to_document())
        await remote_store.set("kim", DesignerRecord(reservation_url="remote").to_document())

        result = await gateway.load("kim")
        assert result.source is ReadSource.REMOTE
        assert result.record.reservation_url == "remote"
        assert result.version == 1

    @pytest.mark.asyncio
    async def test_remote_miss_falls_back_to_local(self, gateway, local_store):
        local_store.set("kim", DesignerRecord(reservation_url="local").to_document())
        result = await gateway.load("kim")
        assert result.source is ReadSource.LOCAL
        assert result.record.reservation_url == "local"

    @pytest.mark.asyncio
    async def test_remote_failure_falls_back_to_local(self, gateway, remote_store, local_store):
        local_store.set("kim", DesignerRecord(reservation_url="local").to_document())
        remote_store.available = False

        result = await gateway.load("kim")
        assert result.source is ReadSource.LOCAL
        assert result.remote_error is not None


class TestWrites:

    @pytest.mark.asyncio
    async def test_write_hits_both_sinks(self, gateway, remote_store, local_store):
        outcome = await gateway.write("kim", DesignerRecord())
        assert outcome.success is True
        assert outcome.local_ok is True
        assert "kim" in remote_store.documents
        assert local_store.get("kim") is not None

    @pytest.mark.asyncio
    async def test_remote_failure_keeps_local(self, gateway, remote_store, local_store):
        remote_store.available = False
        outcome = await gateway.write("kim", DesignerRecord(reservation_url="https://book.example"))

        assert outcome.success is False
        assert outcome.local_ok is True
        assert outcome.remote_error
        assert local_store.get("kim")["reservationUrl"] == "https://book.example"

    @pytest.mark.asyncio
    async def test_absent_fields_stripped_for_remote_only(self, gateway, remote_store, local_store):
        await gateway.write("kim", DesignerRecord())
        remote_doc, _ = remote_store.documents["kim"]
        assert "reservationUrl" not in remote_doc
        assert "profile" not in remote_doc
        assert local_store.get("kim")["reservationUrl"] is None

    @pytest.mark.asyncio
    async def test_update_unknown_designer_is_skipped(self, gateway, remote_store):
        outcome = await gateway.update("nobody", lambda r: None)
        assert outcome is None
        assert remote_store.writes == 0

    @pytest.mark.asyncio
    async def test_update_with_create(self, gateway, remote_store):
        def mutate(record):
            record.stats.visits = 1

        outcome = await gateway.update("new", mutate, create=True)
        assert outcome.success is True
        assert remote_store.documents["new"][0]["stats"]["visits"] == 1

    @pytest.mark.asyncio
    async def test_update_refreshes_updated_at(self, gateway, designer):
        before = (await gateway.read(designer)).updated_at
        await asyncio.sleep(0.001)
        await gateway.update(designer, lambda r: None)
        assert (await gateway.read(designer)).updated_at > before


class TestAtomicUpdate:

    @pytest.mark.asyncio
    async def test_concurrent_increments_all_land(self, gateway, designer):
        def bump(record):
            record.stats.visits += 1

        await asyncio.gather(*(gateway.update_atomic(designer, bump) for _ in range(5)))
        assert (await gateway.read(designer)).stats.visits == 5

    @pytest.mark.asyncio
    async def test_unknown_designer_is_skipped(self, gateway):
        assert await gateway.update_atomic("nobody", lambda r: None) is None

    @pytest.mark.asyncio
    async def test_degrades_to_read_modify_write(self, gateway, remote_store, local_store, designer):
        remote_store.available = False

        def bump(record):
            record.stats.visits += 1

        outcome = await gateway.update_atomic(designer, bump)
        assert outcome.success is False
        assert outcome.local_ok is True
        assert local_store.get(designer)["stats"]["visits"] == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, remote_store, local_store, designer):
        gateway = PersistenceGateway(remote_store, local_store, cas_max_attempts=2)

        async def always_conflict(designer_id, document, expected_version):
            return False

        def bump(record):
            record.stats.visits += 1

        remote_store.compare_and_set = always_conflict
        outcome = await gateway.update_atomic(designer, bump)
        assert outcome.success is False
        assert "concurrent" in outcome.remote_error

        # The event survives in the local mirror.
        assert outcome.local_ok is True
        assert local_store.get(designer)["stats"]["visits"] == 1
        assert remote_store.documents[designer][0]["stats"]["visits"] == 0


class TestUpdateFields:

    @pytest.mark.asyncio
    async def test_targeted_write(self, gateway, remote_store, local_store, designer):
        outcome = await gateway.update_fields(designer, {"reservationUrl": "https://book.example/kim"})
        assert outcome.success is True
        assert remote_store.documents[designer][0]["reservationUrl"] == "https://book.example/kim"
        assert local_store.get(designer)["reservationUrl"] == "https://book.example/kim"

    @pytest.mark.asyncio
    async def test_none_values_dropped(self, gateway, local_store, designer):
        await gateway.update_fields(designer, {"reservationUrl": "x"})
        await gateway.update_fields(designer, {"reservationUrl": None})
        assert local_store.get(designer)["reservationUrl"] == "x"

    @pytest.mark.asyncio
    async def test_unknown_designer(self, gateway):
        assert await gateway.update_fields("nobody", {"reservationUrl": "x"}) is None

    @pytest.mark.asyncio
    async def test_seeds_remote_from_local_mirror(self, gateway, remote_store, local_store):
        local_store.set("kim", DesignerRecord().to_document())
        outcome = await gateway.update_fields("kim", {"reservationUrl": "https://book.example"})
        assert outcome.success is True
        assert remote_store.documents["kim"][0]["reservationUrl"] == "https://book.example"

    @pytest.mark.asyncio
    async def test_remote_down(self, gateway, remote_store, local_store, designer):
        remote_store.available = False
        outcome = await gateway.update_fields(designer, {"reservationUrl": "https://book.example"})
        assert outcome.success is False
        assert local_store.get(designer)["reservationUrl"] == "https://book.example"

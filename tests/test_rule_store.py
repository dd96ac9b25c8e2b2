"""
Tests for the rule stores
"""
import pytest

from benefits_engine.exceptions import DuplicateRuleError, RuleStoreError
from benefits_engine.models.rule import RuleDefinition
from benefits_engine.services.import_export_service import rule_definition_to_record
from benefits_engine.services.rule_store import InMemoryRuleStore, MongoRuleStore

from tests.conftest import make_rule


def record(rule_id="a", **extra):
    return rule_definition_to_record(RuleDefinition.model_validate(make_rule(rule_id, **extra)))


class TestMongoRuleStore:

    def test_collection_requires_connection(self):
        store = MongoRuleStore()
        assert store.client is None
        with pytest.raises(RuleStoreError, match="not connected"):
            store.collection

    @pytest.mark.asyncio
    async def test_queries_before_connect_raise_store_error(self):
        with pytest.raises(RuleStoreError) as exc_info:
            await MongoRuleStore().find_by_id("a")
        assert exc_info.value.rule_id == "a"

    @pytest.mark.asyncio
    async def test_close_without_connect(self):
        store = MongoRuleStore(collection_name="rules_test")
        await store.close()
        assert store.client is None
        assert store.db is None
        assert store.collection_name == "rules_test"


class TestInMemoryRuleStore:

    @pytest.mark.asyncio
    async def test_insert_rejects_duplicate(self, store):
        await store.insert(record("a"))
        with pytest.raises(DuplicateRuleError):
            await store.insert(record("a"))

    @pytest.mark.asyncio
    async def test_upsert_keeps_created_at(self, store):
        await store.insert(record("a").model_copy(update={"created_at": 1}))
        await store.upsert(record("a", name="Renamed").model_copy(update={"created_at": 99}))

        stored = await store.find_by_id("a")
        assert stored.name == "Renamed"
        assert stored.created_at == 1

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, store):
        await store.insert(record("a"))
        (await store.find_by_id("a")).rule_logic["changed"] = True
        assert "changed" not in (await store.find_by_id("a")).rule_logic

    @pytest.mark.asyncio
    async def test_update_and_remove(self, store):
        await store.insert(record("a", program_id="wic-federal"))

        assert await store.update("a", {"active": False})
        assert not (await store.find_by_id("a")).active
        assert not await store.update("ghost", {"active": False})

        assert [r.rule_id for r in await store.find_by_program_id("wic-federal")] == ["a"]
        assert await store.remove("a")
        assert not await store.remove("a")
        assert len(store) == 0

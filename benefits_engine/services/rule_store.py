"""
Rule store: the persisted rule collection used as the source of truth for
existing rules
"""
import copy
import logging
import re
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from ..config import settings
from ..exceptions import DuplicateRuleError, RuleStoreError
from ..models.rule import RuleRecord, get_current_timestamp_ms

logger = logging.getLogger(__name__)


class RuleStore:
    """Awaitable CRUD contract over persisted rules"""

    async def find_by_id(self, rule_id: str) -> Optional[RuleRecord]:
        raise NotImplementedError

    async def find_by_program_id(self, program_id: str) -> List[RuleRecord]:
        raise NotImplementedError

    async def find_by_id_prefix(self, prefix: str) -> List[RuleRecord]:
        raise NotImplementedError

    async def find_all(self) -> List[RuleRecord]:
        raise NotImplementedError

    async def insert(self, record: RuleRecord) -> RuleRecord:
        raise NotImplementedError

    async def upsert(self, record: RuleRecord) -> RuleRecord:
        raise NotImplementedError

    async def update(self, rule_id: str, changes: Dict[str, Any]) -> bool:
        raise NotImplementedError

    async def remove(self, rule_id: str) -> bool:
        raise NotImplementedError


class MongoRuleStore(RuleStore):
    """Rule store backed by a MongoDB collection"""

    def __init__(self, collection_name: Optional[str] = None):
        self.collection_name = collection_name or settings.rules_collection
        self.client: Optional[AsyncIOMotorClient] = None
        self.db = None

    async def connect(self):
        """Connect to MongoDB and ensure the rule_id index"""
        try:
            self.client = AsyncIOMotorClient(settings.mongodb_url)
            self.db = self.client[settings.mongodb_db_name]
            await self.collection.create_index([("rule_id", ASCENDING)], unique=True)
            await self.collection.create_index([("program_id", ASCENDING)])
            logger.info(f"Rule store ready on collection '{self.collection_name}'")
        except Exception as e:
            logger.error(f"Failed to connect rule store: {e}")
            raise

    async def close(self):
        if self.client is not None:
            self.client.close()
        self.client = None
        self.db = None
        logger.info("Rule store connection closed")

    @property
    def collection(self):
        if self.db is None:
            raise RuleStoreError("Rule store is not connected")
        return self.db[self.collection_name]

    async def health_check(self) -> bool:
        """Check MongoDB connection health"""
        try:
            await self.db.command('ping')
            return True
        except Exception:
            return False

    @staticmethod
    def _to_record(doc: Dict[str, Any]) -> RuleRecord:
        doc.pop("_id", None)
        return RuleRecord(**doc)

    async def _find_many(self, query: Dict[str, Any]) -> List[RuleRecord]:
        cursor = self.collection.find(query)
        records = []
        async for doc in cursor:
            records.append(self._to_record(doc))
        return records

    async def find_by_id(self, rule_id: str) -> Optional[RuleRecord]:
        try:
            doc = await self.collection.find_one({"rule_id": rule_id})
            return self._to_record(doc) if doc else None
        except Exception as e:
            logger.error(f"Failed to get rule {rule_id}: {e}")
            raise RuleStoreError(f"Failed to get rule: {e}", rule_id=rule_id) from e

    async def find_by_program_id(self, program_id: str) -> List[RuleRecord]:
        try:
            return await self._find_many({"program_id": program_id})
        except Exception as e:
            logger.error(f"Failed to get rules for program {program_id}: {e}")
            raise RuleStoreError(f"Failed to get program rules: {e}") from e

    async def find_by_id_prefix(self, prefix: str) -> List[RuleRecord]:
        try:
            return await self._find_many({"rule_id": {"$regex": f"^{re.escape(prefix)}"}})
        except Exception as e:
            logger.error(f"Failed to get rule versions for {prefix}: {e}")
            raise RuleStoreError(f"Failed to get rule versions: {e}", rule_id=prefix) from e

    async def find_all(self) -> List[RuleRecord]:
        try:
            return await self._find_many({})
        except Exception as e:
            logger.error(f"Failed to get rules: {e}")
            raise RuleStoreError(f"Failed to get rules: {e}") from e

    async def insert(self, record: RuleRecord) -> RuleRecord:
        try:
            await self.collection.insert_one(record.model_dump())
            logger.info(f"Rule created: {record.rule_id}")
            return record
        except DuplicateKeyError as e:
            raise DuplicateRuleError(f"Rule {record.rule_id} already exists", rule_id=record.rule_id) from e
        except Exception as e:
            logger.error(f"Failed to create rule {record.rule_id}: {e}")
            raise RuleStoreError(f"Failed to create rule: {e}", rule_id=record.rule_id) from e

    async def upsert(self, record: RuleRecord) -> RuleRecord:
        try:
            data = record.model_dump()
            created_at = data.pop("created_at")
            await self.collection.update_one(
                {"rule_id": record.rule_id},
                {"$set": data, "$setOnInsert": {"created_at": created_at}},
                upsert=True
            )
            logger.info(f"Rule created/updated: {record.rule_id}")
            return record
        except Exception as e:
            logger.error(f"Failed to upsert rule {record.rule_id}: {e}")
            raise RuleStoreError(f"Failed to upsert rule: {e}", rule_id=record.rule_id) from e

    async def update(self, rule_id: str, changes: Dict[str, Any]) -> bool:
        try:
            update_data = {**changes, "updated_at": get_current_timestamp_ms()}
            result = await self.collection.update_one({"rule_id": rule_id}, {"$set": update_data})
            return result.matched_count > 0
        except Exception as e:
            logger.error(f"Failed to update rule {rule_id}: {e}")
            raise RuleStoreError(f"Failed to update rule: {e}", rule_id=rule_id) from e

    async def remove(self, rule_id: str) -> bool:
        try:
            result = await self.collection.delete_one({"rule_id": rule_id})
            if result.deleted_count:
                logger.info(f"Rule removed: {rule_id}")
            return result.deleted_count > 0
        except Exception as e:
            logger.error(f"Failed to remove rule {rule_id}: {e}")
            raise RuleStoreError(f"Failed to remove rule: {e}", rule_id=rule_id) from e


class InMemoryRuleStore(RuleStore):
    """Rule store held in process memory, for tests and offline tooling"""

    def __init__(self):
        self._records: Dict[str, RuleRecord] = {}

    def __len__(self):
        return len(self._records)

    async def find_by_id(self, rule_id: str) -> Optional[RuleRecord]:
        record = self._records.get(rule_id)
        return record.model_copy(deep=True) if record else None

    async def find_by_program_id(self, program_id: str) -> List[RuleRecord]:
        return [r.model_copy(deep=True) for r in self._records.values() if r.program_id == program_id]

    async def find_by_id_prefix(self, prefix: str) -> List[RuleRecord]:
        return [r.model_copy(deep=True) for r in self._records.values() if r.rule_id.startswith(prefix)]

    async def find_all(self) -> List[RuleRecord]:
        return [r.model_copy(deep=True) for r in self._records.values()]

    async def insert(self, record: RuleRecord) -> RuleRecord:
        if record.rule_id in self._records:
            raise DuplicateRuleError(f"Rule {record.rule_id} already exists", rule_id=record.rule_id)
        self._records[record.rule_id] = record.model_copy(deep=True)
        return record

    async def upsert(self, record: RuleRecord) -> RuleRecord:
        existing = self._records.get(record.rule_id)
        stored = record.model_copy(deep=True)
        if existing:
            stored.created_at = existing.created_at
        self._records[record.rule_id] = stored
        return record

    async def update(self, rule_id: str, changes: Dict[str, Any]) -> bool:
        existing = self._records.get(rule_id)
        if not existing:
            return False
        data = existing.model_dump()
        data.update(copy.deepcopy(changes))
        data["updated_at"] = get_current_timestamp_ms()
        self._records[rule_id] = RuleRecord(**data)
        return True

    async def remove(self, rule_id: str) -> bool:
        return self._records.pop(rule_id, None) is not None


# Global rule store instance
mongo_rule_store = MongoRuleStore()

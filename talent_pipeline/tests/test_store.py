"""
Store tests
Tests for the Motor-backed store's query translation, timeouts and the retry boundary
"""
import asyncio

import pytest
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import AutoReconnect

from talent_pipeline.errors import CandidateNotFound, StoreUnavailable
from talent_pipeline.store import MotorStore, build_query, retry_once


class FakeCursor:
    def __init__(self, rows):
        self.rows = rows
        self.sort_spec = None

    def sort(self, spec):
        self.sort_spec = spec
        return self

    async def to_list(self, length=None):
        return self.rows


class FakeCollection:
    """Just enough of an AsyncIOMotorCollection to drive MotorStore"""

    def __init__(self, rows=None, delay=0.0, error=None):
        self.rows = rows or []
        self.delay = delay
        self.error = error
        self.calls = []
        self.cursor = None

    async def _respond(self, value):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return value

    async def find_one(self, query, projection=None):
        self.calls.append(("find_one", query, projection))
        return await self._respond(self.rows[0] if self.rows else None)

    def find(self, query, projection=None):
        self.calls.append(("find", query, projection))
        self.cursor = FakeCursor(self.rows)
        return self.cursor

    async def find_one_and_update(self, query, update, **kwargs):
        self.calls.append(("find_one_and_update", query, update, kwargs))
        return await self._respond({**query, **update["$set"]})


class FakeDatabase:
    def __init__(self, collection):
        self.collection = collection

    def __getitem__(self, name):
        return self.collection


class TestQueryTranslation:
    def test_collections_become_membership(self):
        assert build_query({"jd_id": ["jd_1", "jd_2"], "candidate_id": "cand_1"}) == {
            "jd_id": {"$in": ["jd_1", "jd_2"]},
            "candidate_id": "cand_1",
        }
        assert build_query(None) == {}

    async def test_select_many_sorts_and_hides_object_id(self):
        collection = FakeCollection(rows=[{"name": "new"}])
        store = MotorStore(FakeDatabase(collection))

        rows = await store.select_many("data_dictionary", {"dict_type": "candidate_status"}, order_by=[("sort_order", True), ("name", False)])

        assert rows == [{"name": "new"}]
        assert collection.calls[0] == ("find", {"dict_type": "candidate_status"}, {"_id": 0})
        assert collection.cursor.sort_spec == [("sort_order", ASCENDING), ("name", DESCENDING)]

    async def test_upsert_keys_on_conflict_fields(self):
        collection = FakeCollection()
        store = MotorStore(FakeDatabase(collection))

        saved = await store.upsert("offer_records", {"candidate_id": "cand_1", "status": "sent"}, "candidate_id")

        _, query, update, kwargs = collection.calls[0]
        assert query == {"candidate_id": "cand_1"}
        assert update == {"$set": {"candidate_id": "cand_1", "status": "sent"}}
        assert kwargs["upsert"] is True
        assert saved["status"] == "sent"


class TestStoreFailures:
    async def test_timeout_becomes_store_unavailable(self):
        store = MotorStore(FakeDatabase(FakeCollection(delay=1.0)), timeout_seconds=0.01)

        with pytest.raises(StoreUnavailable) as exc_info:
            await store.select_one("candidates", {"candidate_id": "cand_1"})

        assert exc_info.value.status_code == 503
        assert exc_info.value.context == {"table": "candidates", "operation": "select_one"}

    async def test_connection_error_becomes_store_unavailable(self):
        store = MotorStore(FakeDatabase(FakeCollection(error=AutoReconnect("primary stepped down"))))

        with pytest.raises(StoreUnavailable):
            await store.update("candidates", {"candidate_id": "cand_1"}, {"name": "x"})


class TestRetryOnce:
    async def test_retries_once_then_succeeds(self):
        calls = []

        async def flaky(value):
            calls.append(value)
            if len(calls) == 1:
                raise StoreUnavailable("down")
            return value

        assert await retry_once(flaky, "ok", backoff=0) == "ok"
        assert calls == ["ok", "ok"]

    async def test_second_failure_propagates(self):
        calls = []

        async def down():
            calls.append(1)
            raise StoreUnavailable("down")

        with pytest.raises(StoreUnavailable):
            await retry_once(down, backoff=0)
        assert len(calls) == 2

    async def test_other_errors_are_not_retried(self):
        calls = []

        async def missing():
            calls.append(1)
            raise CandidateNotFound("cand_missing")

        with pytest.raises(CandidateNotFound):
            await retry_once(missing, backoff=0)
        assert len(calls) == 1

"""
Tests for the in-memory document store and the shared query / transaction semantics.
"""
import asyncio

import pytest

from gnarhub.core.exceptions import ConflictError, NotFoundError, ValidationError
from gnarhub.db.memory_store import MemoryDocumentStore
from gnarhub.db.store import Op, Order, apply_update, where


@pytest.mark.asyncio
class TestBasicOperations:

    async def test_get_missing_returns_none(self, store):
        assert await store.get("sessions", "nope") is None

    async def test_set_then_get_includes_id(self, store):
        await store.set("sessions", "ses_1", {"status": "open", "rate": 60})

        doc = await store.get("sessions", "ses_1")

        assert doc == {"id": "ses_1", "status": "open", "rate": 60}

    async def test_returned_documents_are_copies(self, store):
        await store.set("sessions", "ses_1", {"terrain_tags": ["park"]})

        doc = await store.get("sessions", "ses_1")
        doc["terrain_tags"].append("groomers")

        assert (await store.get("sessions", "ses_1"))["terrain_tags"] == ["park"]

    async def test_update_merges_dotted_fields(self, store):
        await store.set("requests", "req_1", {"status": "counter_offered", "counter_offer": {"status": "pending", "amount": 75}})

        await store.update("requests", "req_1", {"status": "declined", "counter_offer.status": "expired"})

        doc = await store.get("requests", "req_1")
        assert doc["status"] == "declined"
        assert doc["counter_offer"] == {"status": "expired", "amount": 75}

    async def test_update_missing_document_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.update("sessions", "ghost", {"status": "open"})

    async def test_delete_is_noop_when_missing(self, store):
        await store.delete("sessions", "ghost")
        await store.set("sessions", "ses_1", {"status": "open"})

        await store.delete("sessions", "ses_1")

        assert await store.get("sessions", "ses_1") is None

    async def test_new_id_uses_prefix(self, store):
        new_id = store.new_id("ses")
        assert new_id.startswith("ses_")
        assert len(new_id) == len("ses_") + 12


@pytest.mark.asyncio
class TestQuery:

    @pytest.fixture(autouse=True)
    async def seed(self, store):
        await store.set("sessions", "a", {"status": "open", "date": "2030-01-03", "start_time": "09:00", "terrain_tags": ["park"]})
        await store.set("sessions", "b", {"status": "open", "date": "2030-01-01", "start_time": "13:00", "terrain_tags": ["groomers"]})
        await store.set("sessions", "c", {"status": "booked", "date": "2030-01-01", "start_time": "08:00", "terrain_tags": ["park", "all-mountain"]})

    async def test_equality_filter(self, store):
        docs = await store.query("sessions", [where("status", "==", "open")])
        assert {d["id"] for d in docs} == {"a", "b"}

    async def test_range_filter_and_multi_order(self, store):
        docs = await store.query(
            "sessions",
            [where("date", Op.GTE, "2030-01-01"), where("date", Op.LTE, "2030-01-02")],
            order_by=[Order("date"), Order("start_time")],
        )
        assert [d["id"] for d in docs] == ["c", "b"]

    async def test_descending_order_and_limit(self, store):
        docs = await store.query("sessions", order_by=Order("date", descending=True), limit=1)
        assert [d["id"] for d in docs] == ["a"]

    async def test_array_contains_any(self, store):
        docs = await store.query(
            "sessions", [where("terrain_tags", Op.ARRAY_CONTAINS_ANY, ["all-mountain", "groomers"])]
        )
        assert {d["id"] for d in docs} == {"b", "c"}

    async def test_in_and_array_contains(self, store):
        docs = await store.query(
            "sessions",
            [where("status", Op.IN, ["booked", "completed"]), where("terrain_tags", Op.ARRAY_CONTAINS, "park")],
        )
        assert [d["id"] for d in docs] == ["c"]

    async def test_missing_field_never_matches(self, store):
        docs = await store.query("sessions", [where("rider_id", Op.NE, "someone")])
        assert docs == []

    async def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            where("status", "like", "op%")


@pytest.mark.asyncio
class TestTransactions:

    async def test_commit_applies_all_writes(self, store):
        async def fn(txn):
            txn.set("sessions", "s", {"status": "booked"})
            txn.set("requests", "r", {"status": "accepted"})
            return "done"

        assert await store.run_transaction(fn) == "done"
        assert (await store.get("sessions", "s"))["status"] == "booked"
        assert (await store.get("requests", "r"))["status"] == "accepted"

    async def test_domain_error_aborts_without_retry(self, store):
        calls = 0

        async def fn(txn):
            nonlocal calls
            calls += 1
            txn.set("sessions", "s", {"status": "booked"})
            raise ValidationError("nope")

        with pytest.raises(ValidationError):
            await store.run_transaction(fn)

        assert calls == 1
        assert await store.get("sessions", "s") is None

    async def test_failing_buffered_update_leaves_nothing_applied(self, store):
        async def fn(txn):
            txn.set("sessions", "s", {"status": "booked"})
            txn.update("requests", "missing", {"status": "accepted"})

        with pytest.raises(NotFoundError):
            await store.run_transaction(fn)

        assert await store.get("sessions", "s") is None

    async def test_concurrent_increments_are_not_lost(self):
        store = MemoryDocumentStore(max_attempts=50)
        await store.set("counters", "c", {"n": 0})

        async def increment(txn):
            doc = await txn.get("counters", "c")
            txn.update("counters", "c", {"n": doc["n"] + 1})

        await asyncio.gather(*[store.run_transaction(increment) for _ in range(10)])

        assert (await store.get("counters", "c"))["n"] == 10

    async def test_persistent_conflict_exhausts_attempts(self):
        store = MemoryDocumentStore(max_attempts=3)
        await store.set("counters", "c", {"n": 0})
        attempts = 0

        async def fn(txn):
            nonlocal attempts
            attempts += 1
            doc = await txn.get("counters", "c")
            # Someone else writes between our read and our commit
            await store.update("counters", "c", {"n": doc["n"] + 100})
            txn.update("counters", "c", {"n": doc["n"] + 1})

        with pytest.raises(ConflictError):
            await store.run_transaction(fn)

        assert attempts == 3

    async def test_reading_a_missing_document_detects_concurrent_create(self):
        store = MemoryDocumentStore(max_attempts=1)

        async def fn(txn):
            assert await txn.get("conversations", "cnv_x") is None
            await store.set("conversations", "cnv_x", {"n": 1})
            txn.set("conversations", "cnv_x", {"n": 2})

        with pytest.raises(ConflictError):
            await store.run_transaction(fn)

        assert (await store.get("conversations", "cnv_x"))["n"] == 1


def test_apply_update_creates_intermediate_maps():
    assert apply_update({"counter_offer": None}, {"counter_offer.status": "expired"}) == {
        "counter_offer": {"status": "expired"}
    }

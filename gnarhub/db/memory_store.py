# gnarhub/db/memory_store.py
"""
In-process DocumentStore used by tests and local runs.

Every read yields to the event loop so concurrent coroutines interleave the
way they would against a real database. Commit has no await points, which
makes the validate-and-apply step atomic on a single event loop.
"""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Sequence

from gnarhub.db.store import (
    DocKey,
    DocumentStore,
    OrderSpec,
    Predicate,
    Snapshot,
    Transaction,
    TransactionConflict,
    TransactionFn,
    apply_query,
    next_state,
    to_document,
)

logger = logging.getLogger(__name__)


class _MemoryTransaction(Transaction):
    def __init__(self, store: "MemoryDocumentStore"):
        super().__init__()
        self._store = store

    async def _load(self, collection: str, doc_id: str) -> Snapshot:
        await asyncio.sleep(0)
        version, data = self._store._current((collection, doc_id))
        return version, copy.deepcopy(data)

    def commit(self) -> None:
        store = self._store
        for key, (version, _) in self._snapshots.items():
            if store._current(key)[0] != version:
                raise TransactionConflict(f"{key[0]}/{key[1]} changed since it was read")

        # Stage everything first so a failing write leaves nothing applied
        staged: Dict[DocKey, Snapshot] = {}
        for write in self._writes:
            version, data = staged.get(write.key) or store._current(write.key)
            staged[write.key] = (version + 1, next_state(write, data))

        for key, snapshot in staged.items():
            store._put(key, snapshot)


class MemoryDocumentStore(DocumentStore):
    def __init__(self, max_attempts: Optional[int] = None):
        super().__init__(max_attempts)
        # collection -> doc id -> (version, data); deleted docs keep a tombstone version
        self._collections: Dict[str, Dict[str, Snapshot]] = {}

    def _current(self, key: DocKey) -> Snapshot:
        collection, doc_id = key
        return self._collections.get(collection, {}).get(doc_id, (0, None))

    def _put(self, key: DocKey, snapshot: Snapshot) -> None:
        collection, doc_id = key
        self._collections.setdefault(collection, {})[doc_id] = snapshot

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        await asyncio.sleep(0)
        _, data = self._current((collection, doc_id))
        if data is None:
            return None
        return to_document(doc_id, copy.deepcopy(data))

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: OrderSpec = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        await asyncio.sleep(0)
        docs = [
            to_document(doc_id, copy.deepcopy(data))
            for doc_id, (_, data) in self._collections.get(collection, {}).items()
            if data is not None
        ]
        return apply_query(docs, predicates, order_by, limit)

    async def _run_once(self, fn: TransactionFn) -> Any:
        txn = _MemoryTransaction(self)
        result = await fn(txn)
        txn.commit()
        return result

# gnarhub/db/sql_store.py
"""
DocumentStore backed by a single SQL table through async SQLAlchemy.

Reads inside a transaction lock their rows (FOR UPDATE where the dialect
supports it). Writes are compare-and-set on the version column, so a
concurrent committer turns into a TransactionConflict and a retry rather
than a lost update.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gnarhub.core.exceptions import DependencyError
from gnarhub.db.store import (
    DocKey,
    DocumentStore,
    Op,
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
from gnarhub.models.document import Document

logger = logging.getLogger(__name__)

# Driver messages that mean "somebody else holds the row", not "database down"
_CONTENTION_MARKERS = ("database is locked", "deadlock", "could not serialize", "lock timeout")


def _is_contention(error: OperationalError) -> bool:
    message = str(error.orig if error.orig is not None else error).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


def _pushdown(predicate: Predicate):
    """SQL clause for simple top-level comparisons; None when only checked in memory."""
    if "." in predicate.field or isinstance(predicate.value, bool):
        return None

    if isinstance(predicate.value, str):
        column = Document.data[predicate.field].as_string()
    elif isinstance(predicate.value, (int, float)):
        column = Document.data[predicate.field].as_float()
    else:
        return None

    if predicate.op == Op.EQ:
        return column == predicate.value
    if predicate.op == Op.LT:
        return column < predicate.value
    if predicate.op == Op.LTE:
        return column <= predicate.value
    if predicate.op == Op.GT:
        return column > predicate.value
    if predicate.op == Op.GTE:
        return column >= predicate.value
    return None


class _SqlTransaction(Transaction):
    def __init__(self, db: AsyncSession):
        super().__init__()
        self._db = db

    async def _load(self, collection: str, doc_id: str) -> Snapshot:
        stmt = (
            select(Document.version, Document.data)
            .where(Document.collection == collection, Document.id == doc_id)
            .with_for_update()
        )
        row = (await self._db.execute(stmt)).first()
        if row is None:
            return 0, None
        return row.version, row.data

    async def _write_row(
        self, key: DocKey, expected: int, exists: bool, data: Optional[dict]
    ) -> None:
        collection, doc_id = key
        where = (
            Document.collection == collection,
            Document.id == doc_id,
            Document.version == expected,
        )

        if data is None:
            if not exists:
                return
            result = await self._db.execute(delete(Document).where(*where))
            if result.rowcount != 1:
                raise TransactionConflict(f"{collection}/{doc_id} changed before delete")
        elif not exists:
            try:
                await self._db.execute(
                    insert(Document).values(
                        collection=collection, id=doc_id, data=data, version=1
                    )
                )
            except IntegrityError as e:
                raise TransactionConflict(f"{collection}/{doc_id} created concurrently") from e
        else:
            result = await self._db.execute(
                update(Document).where(*where).values(data=data, version=expected + 1)
            )
            if result.rowcount != 1:
                raise TransactionConflict(f"{collection}/{doc_id} changed before update")

    async def commit_writes(self) -> None:
        staged: Dict[DocKey, Snapshot] = {}
        for write in self._writes:
            key = write.key
            if key in staged:
                version, data = staged[key]
            elif key in self._snapshots:
                version, data = self._snapshots[key]
            else:
                version, data = await self._load(*key)

            new_data = next_state(write, data)
            await self._write_row(key, version, data is not None, new_data)
            staged[key] = (version + 1, new_data) if new_data is not None else (0, None)

        # Documents that were only read must still be at the version we saw.
        # Checked after the writes, once this connection holds the write lock.
        for key, (version, _) in self._snapshots.items():
            if key in staged:
                continue
            current = await self._db.scalar(
                select(Document.version).where(
                    Document.collection == key[0], Document.id == key[1]
                )
            )
            if (current or 0) != version:
                raise TransactionConflict(f"{key[0]}/{key[1]} changed since it was read")


class SqlDocumentStore(DocumentStore):
    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_attempts: Optional[int] = None,
    ):
        super().__init__(max_attempts)
        self._session_factory = session_factory

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            async with self._session_factory() as db:
                row = (
                    await db.execute(
                        select(Document.id, Document.data).where(
                            Document.collection == collection, Document.id == doc_id
                        )
                    )
                ).first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {collection}/{doc_id}: {e}", exc_info=True)
            raise DependencyError("database read failed", dependency="database") from e

        return to_document(row.id, row.data) if row else None

    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: OrderSpec = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        stmt = select(Document.id, Document.data).where(Document.collection == collection)
        for predicate in predicates:
            clause = _pushdown(predicate)
            if clause is not None:
                stmt = stmt.where(clause)

        try:
            async with self._session_factory() as db:
                rows = (await db.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error(f"Query on {collection} failed: {e}", exc_info=True)
            raise DependencyError("database query failed", dependency="database") from e

        # Pushdown is only a prefilter; the full predicate set decides
        docs = [to_document(row.id, row.data) for row in rows]
        return apply_query(docs, predicates, order_by, limit)

    async def _run_once(self, fn: TransactionFn) -> Any:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    txn = _SqlTransaction(db)
                    result = await fn(txn)
                    await txn.commit_writes()
            return result
        except OperationalError as e:
            if _is_contention(e):
                raise TransactionConflict(str(e.orig)) from e
            logger.error(f"Database unavailable during transaction: {e}", exc_info=True)
            raise DependencyError("database unavailable", dependency="database") from e
        except IntegrityError as e:
            raise TransactionConflict(str(e.orig)) from e
        except SQLAlchemyError as e:
            logger.error(f"Transaction failed: {e}", exc_info=True)
            raise DependencyError("database transaction failed", dependency="database") from e

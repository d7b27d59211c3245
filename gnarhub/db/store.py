# gnarhub/db/store.py
"""
Document persistence abstraction.

The booking core only ever talks to a DocumentStore: get a document by id,
query a collection with equality/range predicates, write documents, and run a
read-validate-write transaction that either commits every buffered write or
none of them.

Transactions are optimistic. Every document read inside a transaction is
remembered together with the version it had; at commit time each of those
versions must still be current, otherwise the attempt is thrown away and the
transaction function is run again from scratch. After max_attempts the
caller gets a ConflictError.
"""

import asyncio
import copy
import logging
import random
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from gnarhub.core.config import settings
from gnarhub.core.exceptions import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DocKey = Tuple[str, str]
Snapshot = Tuple[int, Optional[dict]]


class Op(str, Enum):
    """Supported query operators."""
    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    ARRAY_CONTAINS = "array_contains"
    ARRAY_CONTAINS_ANY = "array_contains_any"


RANGE_OPS = {Op.LT, Op.LTE, Op.GT, Op.GTE}

_MISSING = object()


def get_field(doc: dict, path: str) -> Any:
    """Resolve a dotted field path, returning _MISSING when absent."""
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


@dataclass(frozen=True)
class Predicate:
    field: str
    op: Op
    value: Any

    def matches(self, doc: dict) -> bool:
        actual = get_field(doc, self.field)
        # Like Firestore, a document without the field never matches
        if actual is _MISSING:
            return False

        if self.op == Op.EQ:
            return actual == self.value
        if self.op == Op.NE:
            return actual != self.value
        if self.op == Op.IN:
            return actual in self.value
        if self.op == Op.ARRAY_CONTAINS:
            return isinstance(actual, list) and self.value in actual
        if self.op == Op.ARRAY_CONTAINS_ANY:
            return isinstance(actual, list) and any(v in actual for v in self.value)

        if actual is None or self.value is None:
            return False
        try:
            if self.op == Op.LT:
                return actual < self.value
            if self.op == Op.LTE:
                return actual <= self.value
            if self.op == Op.GT:
                return actual > self.value
            if self.op == Op.GTE:
                return actual >= self.value
        except TypeError:
            return False
        return False


def where(field_path: str, op: Union[Op, str], value: Any) -> Predicate:
    """Build a predicate: where("status", "==", "open")."""
    return Predicate(field_path, Op(op), value)


@dataclass(frozen=True)
class Order:
    field: str
    descending: bool = False


OrderSpec = Union[None, Order, Sequence[Order]]


def _normalize_orders(order_by: OrderSpec) -> List[Order]:
    if order_by is None:
        return []
    if isinstance(order_by, Order):
        return [order_by]
    return list(order_by)


def _sort_key(value: Any) -> tuple:
    if value is _MISSING or value is None:
        return (1, "")
    return (0, value)


def apply_query(
    docs: Iterable[dict],
    predicates: Sequence[Predicate] = (),
    order_by: OrderSpec = None,
    limit: Optional[int] = None,
) -> List[dict]:
    """In-memory filter, order and limit over already-fetched documents."""
    result = [d for d in docs if all(p.matches(d) for p in predicates)]
    # Stable sorts applied from the least significant order to the most
    for order in reversed(_normalize_orders(order_by)):
        result.sort(
            key=lambda d, f=order.field: _sort_key(get_field(d, f)),
            reverse=order.descending,
        )
    if limit is not None:
        result = result[:limit]
    return result


def apply_update(data: Optional[dict], fields: Dict[str, Any]) -> dict:
    """Merge top-level or dotted ("counter_offer.status") fields into a copy of data."""
    merged = copy.deepcopy(data) if data else {}
    for path, value in fields.items():
        target = merged
        parts = path.split(".")
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = copy.deepcopy(value)
    return merged


def to_document(doc_id: str, data: dict) -> dict:
    return {**data, "id": doc_id}


def strip_id(data: Dict[str, Any]) -> dict:
    return {k: v for k, v in data.items() if k != "id"}


class TransactionConflict(Exception):
    """Internal signal: a document changed between read and commit. Retried."""


class WriteKind(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class BufferedWrite:
    kind: WriteKind
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> DocKey:
        return (self.collection, self.doc_id)


def next_state(write: BufferedWrite, current: Optional[dict]) -> Optional[dict]:
    """Document data after applying a buffered write; None means deleted."""
    if write.kind == WriteKind.SET:
        return copy.deepcopy(write.data)
    if write.kind == WriteKind.UPDATE:
        if current is None:
            raise NotFoundError(write.collection, write.doc_id)
        return apply_update(current, write.data)
    return None


class Transaction(ABC):
    """
    Handle passed to a transaction function.

    Reads go to the store and are remembered with their version; writes are
    buffered and only applied when the whole function has returned.
    """

    def __init__(self):
        self._snapshots: Dict[DocKey, Snapshot] = {}
        self._writes: List[BufferedWrite] = []

    @abstractmethod
    async def _load(self, collection: str, doc_id: str) -> Snapshot:
        """Return (version, data) for a document; (0, None) when missing."""

    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        key = (collection, doc_id)
        if key not in self._snapshots:
            self._snapshots[key] = await self._load(collection, doc_id)
        _, data = self._snapshots[key]
        if data is None:
            return None
        return to_document(doc_id, copy.deepcopy(data))

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._writes.append(BufferedWrite(WriteKind.SET, collection, doc_id, strip_id(data)))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._writes.append(BufferedWrite(WriteKind.UPDATE, collection, doc_id, strip_id(fields)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(BufferedWrite(WriteKind.DELETE, collection, doc_id))


TransactionFn = Callable[[Transaction], Awaitable[T]]


class DocumentStore(ABC):
    """Abstract document store consumed by crud modules and services."""

    def __init__(self, max_attempts: Optional[int] = None):
        self.max_attempts = max_attempts or settings.TRANSACTION_MAX_ATTEMPTS

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        order_by: OrderSpec = None,
        limit: Optional[int] = None,
    ) -> List[dict]:
        ...

    @abstractmethod
    async def _run_once(self, fn: TransactionFn) -> Any:
        """Run fn against a fresh transaction and commit, or raise TransactionConflict."""

    async def run_transaction(
        self, fn: TransactionFn, *, max_attempts: Optional[int] = None
    ) -> Any:
        """
        Run fn(txn) atomically.

        Domain errors raised by fn abort the transaction and propagate as-is.
        Concurrent modification of anything fn read or wrote triggers a retry;
        after max_attempts a ConflictError is raised.
        """
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return await self._run_once(fn)
            except TransactionConflict as e:
                logger.info(f"Transaction conflict (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    # Small jittered backoff so competing writers do not livelock
                    await asyncio.sleep(random.uniform(0, 0.005 * attempt))

        raise ConflictError(
            "transaction could not be committed because of concurrent updates",
            details={"attempts": attempts},
        )

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        async def _write(txn: Transaction) -> None:
            txn.set(collection, doc_id, data)

        await self.run_transaction(_write)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        async def _write(txn: Transaction) -> None:
            txn.update(collection, doc_id, fields)

        await self.run_transaction(_write)

    async def delete(self, collection: str, doc_id: str) -> None:
        async def _write(txn: Transaction) -> None:
            txn.delete(collection, doc_id)

        await self.run_transaction(_write)

    @staticmethod
    def new_id(prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex[:12]}"

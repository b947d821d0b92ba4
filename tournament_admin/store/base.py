"""Document store interface.

Transactional document database abstraction used by the settlement core:
- get / set / update / delete by id
- query by a single field
- atomic multi-document batch writes with per-document preconditions

Documents are plain dicts keyed by ``(collection, id)``. A batch either
applies every operation or none of them.
"""

from __future__ import annotations

import operator
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Sequence, TypeVar
from uuid import uuid4

T = TypeVar("T")


class StoreError(Exception):
    """Base document store error."""

    pass


class DocumentNotFoundError(StoreError):
    """Update or precondition targeted a document that does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


class PreconditionFailedError(StoreError):
    """A batch precondition did not match the stored document."""

    def __init__(self, collection: str, doc_id: str, field_name: str, expected: Any, actual: Any):
        self.collection = collection
        self.doc_id = doc_id
        self.field_name = field_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Precondition failed on {collection}/{doc_id}: "
            f"{field_name} expected {expected!r}, found {actual!r}"
        )


class BatchTooLargeError(StoreError):
    """Batch exceeds the store's operation limit."""

    pass


class OpKind(str, Enum):
    """Batch write operation kinds."""

    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Document:
    """A stored document."""

    id: str
    data: dict[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass
class WriteOp:
    """One operation inside an atomic batch.

    ``expect`` maps field names to the values the stored document must hold
    when the batch is applied (compare-and-set). A missing field compares as
    ``None``.
    """

    kind: OpKind
    collection: str
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    expect: dict[str, Any] | None = None

    @classmethod
    def set(cls, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteOp":
        return cls(OpKind.SET, collection, doc_id, dict(data))

    @classmethod
    def update(
        cls,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expect: dict[str, Any] | None = None,
    ) -> "WriteOp":
        return cls(OpKind.UPDATE, collection, doc_id, dict(data), expect)

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> "WriteOp":
        return cls(OpKind.DELETE, collection, doc_id)


# Query operators supported by every store
QUERY_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda actual, expected: actual in expected,
}


def matches(data: dict[str, Any], field_name: str, op: str, value: Any) -> bool:
    """Evaluate a single-field query predicate against a document body."""
    try:
        compare = QUERY_OPERATORS[op]
    except KeyError:
        raise StoreError(f"Unsupported query operator: {op}") from None

    actual = data.get(field_name)
    if actual is None and op not in ("==", "!="):
        return False
    try:
        return bool(compare(actual, value))
    except TypeError:
        return False


def sort_documents(
    docs: list[Document], order_by: str, descending: bool = False
) -> list[Document]:
    """Order documents by one field; documents missing it always come last."""
    present = [d for d in docs if d.data.get(order_by) is not None]
    missing = [d for d in docs if d.data.get(order_by) is None]
    present.sort(key=lambda d: d.data[order_by], reverse=descending)
    return present + missing


def check_expect(op: WriteOp, current: dict[str, Any] | None) -> None:
    """Raise if ``op.expect`` does not hold for the current document body."""
    if not op.expect:
        return
    if current is None:
        raise DocumentNotFoundError(op.collection, op.doc_id)
    for field_name, expected in op.expect.items():
        actual = current.get(field_name)
        if actual != expected:
            raise PreconditionFailedError(
                op.collection, op.doc_id, field_name, expected, actual
            )


def apply_update(current: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Merge ``changes`` into a copy of ``current``."""
    merged = dict(current)
    merged.update(changes)
    return merged


def pack_groups(
    groups: Iterable[T],
    max_ops: int,
    size: Callable[[T], int] = len,
) -> list[list[T]]:
    """Pack groups into chunks of at most ``max_ops`` operations.

    A group is never split across chunks; order is preserved.

    Args:
        groups: Op groups (or objects carrying op groups)
        max_ops: Operation limit per chunk
        size: Operation count of one group

    Raises:
        BatchTooLargeError: If a single group is larger than ``max_ops``
    """
    chunks: list[list[T]] = []
    current: list[T] = []
    current_size = 0
    for group in groups:
        group_size = size(group)
        if group_size > max_ops:
            raise BatchTooLargeError(
                f"Operation group of {group_size} exceeds batch limit {max_ops}"
            )
        if current and current_size + group_size > max_ops:
            chunks.append(current)
            current, current_size = [], 0
        current.append(group)
        current_size += group_size
    if current:
        chunks.append(current)
    return chunks


class DocumentStore(ABC):
    """Abstract transactional document store."""

    #: Maximum operations accepted by one ``batch_write`` call
    max_batch_ops: int = 500

    def new_id(self) -> str:
        """Generate a new document id."""
        return uuid4().hex

    @abstractmethod
    async def get_by_id(self, collection: str, doc_id: str) -> Document | None:
        """Fetch a document, or None if it does not exist."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        field_name: str,
        op: str,
        value: Any,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Document]:
        """Return documents in ``collection`` where ``field_name <op> value``."""

    @abstractmethod
    async def count(self, collection: str, field_name: str, op: str, value: Any) -> int:
        """Count documents matching a single-field predicate."""

    @abstractmethod
    async def batch_write(self, ops: Sequence[WriteOp]) -> None:
        """Apply all ops atomically.

        Raises:
            BatchTooLargeError: If ``len(ops)`` exceeds ``max_batch_ops``
            PreconditionFailedError: If an ``expect`` clause does not hold
            DocumentNotFoundError: If an update targets a missing document
        """

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self.batch_write([WriteOp.set(collection, doc_id, data)])

    async def update(self, collection: str, doc_id: str, partial: dict[str, Any]) -> None:
        await self.batch_write([WriteOp.update(collection, doc_id, partial)])

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.batch_write([WriteOp.delete(collection, doc_id)])

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""
        doc_id = self.new_id()
        await self.set(collection, doc_id, data)
        return doc_id

    async def ping(self) -> bool:
        """Health check."""
        return True

    async def close(self) -> None:
        """Release resources held by the store."""
        return None

    def _check_batch_size(self, ops: Sequence[WriteOp]) -> None:
        if len(ops) > self.max_batch_ops:
            raise BatchTooLargeError(
                f"Batch of {len(ops)} operations exceeds limit {self.max_batch_ops}"
            )

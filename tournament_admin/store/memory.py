"""In-process document store.

Used for local development and tests. A single asyncio lock serializes
batches so every batch is applied atomically from the point of view of
other coroutines.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Sequence

from .base import (
    Document,
    DocumentNotFoundError,
    DocumentStore,
    OpKind,
    WriteOp,
    apply_update,
    check_expect,
    matches,
    sort_documents,
)


class MemoryDocumentStore(DocumentStore):
    """Dict-backed document store with atomic batches."""

    def __init__(self, max_batch_ops: int = 500):
        self.max_batch_ops = max_batch_ops
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def get_by_id(self, collection: str, doc_id: str) -> Document | None:
        data = self._collection(collection).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

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
        docs = [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
            if matches(data, field_name, op, value)
        ]
        if order_by:
            docs = sort_documents(docs, order_by, descending)
        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def count(self, collection: str, field_name: str, op: str, value: Any) -> int:
        return sum(
            1
            for data in self._collection(collection).values()
            if matches(data, field_name, op, value)
        )

    async def batch_write(self, ops: Sequence[WriteOp]) -> None:
        self._check_batch_size(ops)

        async with self._lock:
            # Stage every op against a working copy; publish only if all succeed
            staged: dict[tuple[str, str], dict[str, Any] | None] = {}

            def current(op: WriteOp) -> dict[str, Any] | None:
                key = (op.collection, op.doc_id)
                if key in staged:
                    return staged[key]
                return self._collection(op.collection).get(op.doc_id)

            for op in ops:
                existing = current(op)
                check_expect(op, existing)

                if op.kind == OpKind.SET:
                    staged[(op.collection, op.doc_id)] = apply_update({}, op.data)
                elif op.kind == OpKind.UPDATE:
                    if existing is None:
                        raise DocumentNotFoundError(op.collection, op.doc_id)
                    staged[(op.collection, op.doc_id)] = apply_update(existing, op.data)
                else:
                    staged[(op.collection, op.doc_id)] = None

            for (collection, doc_id), data in staged.items():
                if data is None:
                    self._collection(collection).pop(doc_id, None)
                else:
                    self._collection(collection)[doc_id] = copy.deepcopy(data)

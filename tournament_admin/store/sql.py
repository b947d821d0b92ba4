"""SQL-backed document store (SQLAlchemy async).

Every document is one row of the ``documents`` table. A batch runs inside a
single database transaction; rows touched by the batch are read with
``SELECT ... FOR UPDATE`` so preconditions are evaluated against locked rows.

Equality queries on string fields are pushed down to the database through
JSON path extraction. Other predicates, ordering and pagination are applied
in Python after the collection scan.
"""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tournament_admin.logging_config import get_logger
from tournament_admin.models.document import DocumentRow

from .base import (
    Document,
    DocumentNotFoundError,
    DocumentStore,
    OpKind,
    StoreError,
    WriteOp,
    apply_update,
    check_expect,
    matches,
    sort_documents,
)

logger = get_logger(__name__)


class SqlDocumentStore(DocumentStore):
    """Document store on top of a relational database."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_batch_ops: int = 500,
    ):
        self._session_factory = session_factory
        self.max_batch_ops = max_batch_ops

    async def get_by_id(self, collection: str, doc_id: str) -> Document | None:
        async with self._session_factory() as session:
            row = await session.get(DocumentRow, (collection, doc_id))
            if row is None:
                return None
            return Document(id=row.id, data=dict(row.data))

    def _select(self, collection: str, field_name: str, op: str, value: Any):
        stmt = select(DocumentRow).where(DocumentRow.collection == collection)
        if op == "==" and isinstance(value, str):
            stmt = stmt.where(DocumentRow.data[field_name].as_string() == value)
        return stmt

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
        async with self._session_factory() as session:
            result = await session.execute(self._select(collection, field_name, op, value))
            rows = result.scalars().all()

        docs = [
            Document(id=row.id, data=dict(row.data))
            for row in rows
            if matches(row.data, field_name, op, value)
        ]
        docs.sort(key=lambda d: d.id)
        if order_by:
            docs = sort_documents(docs, order_by, descending)
        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    async def count(self, collection: str, field_name: str, op: str, value: Any) -> int:
        if op == "==" and isinstance(value, str):
            stmt = (
                select(func.count())
                .select_from(DocumentRow)
                .where(
                    DocumentRow.collection == collection,
                    DocumentRow.data[field_name].as_string() == value,
                )
            )
            async with self._session_factory() as session:
                return int((await session.execute(stmt)).scalar_one())
        return len(await self.query(collection, field_name, op, value))

    async def batch_write(self, ops: Sequence[WriteOp]) -> None:
        self._check_batch_size(ops)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    rows: dict[tuple[str, str], DocumentRow | None] = {}
                    staged: dict[tuple[str, str], dict[str, Any] | None] = {}

                    for op in ops:
                        key = (op.collection, op.doc_id)
                        if key not in rows:
                            rows[key] = await session.get(
                                DocumentRow, key, with_for_update=True
                            )
                            row = rows[key]
                            staged[key] = dict(row.data) if row is not None else None

                        existing = staged[key]
                        check_expect(op, existing)

                        if op.kind == OpKind.SET:
                            staged[key] = apply_update({}, op.data)
                        elif op.kind == OpKind.UPDATE:
                            if existing is None:
                                raise DocumentNotFoundError(op.collection, op.doc_id)
                            staged[key] = apply_update(existing, op.data)
                        else:
                            staged[key] = None

                    for key, data in staged.items():
                        row = rows[key]
                        if data is None:
                            if row is not None:
                                await session.delete(row)
                        elif row is None:
                            session.add(
                                DocumentRow(collection=key[0], id=key[1], data=data)
                            )
                        else:
                            row.data = data
        except StoreError:
            raise
        except SQLAlchemyError as e:
            logger.error("document_batch_failed", ops=len(ops), error=str(e))
            raise StoreError(f"Batch write failed: {e}") from e

    async def ping(self) -> bool:
        try:
            async with self._session_factory() as session:
                await session.execute(select(1))
            return True
        except SQLAlchemyError:
            return False

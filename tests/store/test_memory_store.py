"""
Memory Document Store Tests.

배치 원자성 / CAS / 쿼리 테스트.
"""

import pytest

from tournament_admin.store.base import (
    BatchTooLargeError,
    DocumentNotFoundError,
    PreconditionFailedError,
    StoreError,
    WriteOp,
    pack_groups,
)
from tournament_admin.store.memory import MemoryDocumentStore


class TestBatchWrite:
    @pytest.mark.asyncio
    async def test_set_get_update_delete(self, store):
        await store.set("users", "u1", {"walletBalance": 10, "name": "a"})
        await store.update("users", "u1", {"walletBalance": 20})

        doc = await store.get_by_id("users", "u1")
        assert doc.data == {"walletBalance": 20, "name": "a"}

        await store.delete("users", "u1")
        assert await store.get_by_id("users", "u1") is None

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store):
        await store.set("users", "u1", {"tags": ["a"]})
        doc = await store.get_by_id("users", "u1")
        doc.data["tags"].append("b")

        assert (await store.get_by_id("users", "u1")).get("tags") == ["a"]

    @pytest.mark.asyncio
    async def test_failed_precondition_applies_nothing(self, store):
        """CAS 실패 시 배치 전체가 적용되지 않음."""
        await store.set("users", "u1", {"walletBalance": 10})
        await store.set("users", "u2", {"walletBalance": 5})

        with pytest.raises(PreconditionFailedError) as exc_info:
            await store.batch_write([
                WriteOp.update("users", "u1", {"walletBalance": 100}),
                WriteOp.set("ledger", "tx1", {"amount": 90}),
                WriteOp.update("users", "u2", {"walletBalance": 50}, expect={"walletBalance": 6}),
            ])

        assert exc_info.value.doc_id == "u2"
        assert exc_info.value.actual == 5
        assert (await store.get_by_id("users", "u1")).get("walletBalance") == 10
        assert await store.get_by_id("ledger", "tx1") is None

    @pytest.mark.asyncio
    async def test_update_missing_document(self, store):
        with pytest.raises(DocumentNotFoundError):
            await store.update("users", "ghost", {"walletBalance": 1})

    @pytest.mark.asyncio
    async def test_ops_in_one_batch_see_each_other(self, store):
        await store.batch_write([
            WriteOp.set("users", "u1", {"walletBalance": 1}),
            WriteOp.update("users", "u1", {"walletBalance": 2}, expect={"walletBalance": 1}),
        ])
        assert (await store.get_by_id("users", "u1")).get("walletBalance") == 2

    @pytest.mark.asyncio
    async def test_batch_limit(self):
        store = MemoryDocumentStore(max_batch_ops=2)
        with pytest.raises(BatchTooLargeError):
            await store.batch_write([WriteOp.set("c", str(i), {}) for i in range(3)])


class TestQuery:
    @pytest.mark.asyncio
    async def test_query_order_and_pagination(self, store):
        for i, amount in enumerate([50, 300, 120, None]):
            await store.set("prizes", f"p{i}", {"tournamentId": "t-1", "prizeAmount": amount})
        await store.set("prizes", "other", {"tournamentId": "t-2", "prizeAmount": 999})

        docs = await store.query(
            "prizes", "tournamentId", "==", "t-1", order_by="prizeAmount", descending=True
        )
        assert [d.get("prizeAmount") for d in docs] == [300, 120, 50, None]

        page = await store.query(
            "prizes", "tournamentId", "==", "t-1",
            order_by="prizeAmount", limit=2, offset=1,
        )
        assert [d.get("prizeAmount") for d in page] == [120, 300]
        assert await store.count("prizes", "tournamentId", "==", "t-1") == 4

    @pytest.mark.asyncio
    async def test_comparison_operators(self, store):
        for i in range(5):
            await store.set("results", f"r{i}", {"kills": i})

        assert await store.count("results", "kills", ">=", 3) == 2
        assert await store.count("results", "kills", "in", [0, 4]) == 2
        assert await store.count("results", "position", "<", 3) == 0

    @pytest.mark.asyncio
    async def test_unknown_operator(self, store):
        await store.set("results", "r1", {"kills": 1})
        with pytest.raises(StoreError):
            await store.query("results", "kills", "~", 1)

    @pytest.mark.asyncio
    async def test_add_generates_id(self, store):
        doc_id = await store.add("notifications", {"userId": "u1"})
        assert (await store.get_by_id("notifications", doc_id)).get("userId") == "u1"


class TestPackGroups:
    def test_groups_never_split(self):
        groups = [[1, 2], [3, 4, 5], [6], [7, 8, 9, 10]]
        assert pack_groups(groups, 5) == [[[1, 2], [3, 4, 5]], [[6], [7, 8, 9, 10]]]

    def test_oversized_group(self):
        with pytest.raises(BatchTooLargeError):
            pack_groups([[1, 2, 3]], 2)

    def test_custom_size(self):
        assert pack_groups(["aa", "b", "cc"], 3, size=len) == [["aa", "b"], ["cc"]]
        assert pack_groups([], 3) == []

"""
Distribution Orchestrator.

토너먼트 상금 정산 (1회 한정, 원자적 처리).

Flow:
    lock → 상태 검증 → 규칙 해석 → 계산 → 지갑 적립 스테이징
    → 단일 배치 커밋 (또는 청크 커밋 + 보상 롤백) → 알림 (fire-and-forget)

Exactly-once is enforced twice: by the per-tournament lock, and by a
compare-and-set on the tournament document inside the commit batch.

Usage:
    orchestrator = SettlementOrchestrator(store, ledger, lock, notifier)
    summary = await orchestrator.distribute_prizes(tournament_id)
"""

import asyncio
import dataclasses
import functools
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from tournament_admin.logging_config import get_logger, settlement_context
from tournament_admin.models.base import utc_now_iso
from tournament_admin.models.tournament import (
    Collections,
    DistributionRecord,
    PrizeDistributionRule,
    Registration,
    Result,
    RewardStatus,
    SettlementState,
    Tournament,
)
from tournament_admin.models.wallet import WalletTransaction
from tournament_admin.services.ledger import LedgerService
from tournament_admin.services.notification import (
    NotificationPayload,
    NotificationService,
    NotificationType,
)
from tournament_admin.settlement.calculator import (
    PlanEntry,
    SettlementPlan,
    compute_settlement,
    override_amounts,
)
from tournament_admin.settlement.locks import LocalSettlementLock, LockInfo, SettlementLock
from tournament_admin.settlement.rules import (
    EffectiveRule,
    SettlementDefaults,
    resolve_rule,
)
from tournament_admin.store.base import (
    BatchTooLargeError,
    DocumentStore,
    PreconditionFailedError,
    StoreError,
    WriteOp,
    pack_groups,
)
from tournament_admin.utils.errors import (
    AlreadyDistributedError,
    InvalidRuleError,
    InvalidStateError,
    NoResultsError,
    NotFoundError,
    SettlementError,
    SettlementFailedError,
    SettlementInProgressError,
    UserNotFoundError,
)

logger = get_logger(__name__)


class SkipReason:
    USER_NOT_FOUND = "USER_NOT_FOUND"  # 지갑 소유자 문서 없음
    USER_UNRESOLVED = "USER_UNRESOLVED"  # 결과/등록 어디에도 userId 없음


@dataclass
class SkippedWinner:
    """A positive reward that was not paid."""

    result_id: str
    user_id: Optional[str]
    position: Optional[int]
    kills: int
    amount: int
    reason: str

    @classmethod
    def from_entry(cls, entry: PlanEntry, reason: str) -> "SkippedWinner":
        return cls(
            result_id=entry.result_id,
            user_id=entry.user_id,
            position=entry.position,
            kills=entry.kills,
            amount=entry.reward,
            reason=reason,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resultId": self.result_id,
            "userId": self.user_id,
            "position": self.position,
            "kills": self.kills,
            "amount": self.amount,
            "reason": self.reason,
        }


@dataclass
class DistributionSummary:
    """정산 요약."""

    settlement_id: str
    tournament_id: str
    distributions: List[DistributionRecord] = field(default_factory=list)
    total_distributed: int = 0
    first_place_winner: Optional[DistributionRecord] = None
    total_kill_rewards: int = 0
    actual_prize_pool: int = 0
    breakage: int = 0
    skipped: List[SkippedWinner] = field(default_factory=list)
    distributed_at: str = ""
    chunked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "settlementId": self.settlement_id,
            "tournamentId": self.tournament_id,
            "distributions": [d.to_dict() for d in self.distributions],
            "totalDistributed": self.total_distributed,
            "firstPlaceWinner": (
                self.first_place_winner.to_dict() if self.first_place_winner else None
            ),
            "totalKillRewards": self.total_kill_rewards,
            "actualPrizePool": self.actual_prize_pool,
            "breakage": self.breakage,
            "skipped": [s.to_dict() for s in self.skipped],
            "distributedAt": self.distributed_at,
            "chunked": self.chunked,
        }


@dataclass
class DistributionPreview:
    """Read-only dry run of a settlement."""

    tournament_id: str
    status: str
    prizes_distributed: bool
    rule: Optional[EffectiveRule]
    plan: Optional[SettlementPlan]
    can_distribute: bool
    blocked_by: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tournamentId": self.tournament_id,
            "status": self.status,
            "prizesDistributed": self.prizes_distributed,
            "canDistribute": self.can_distribute,
            "blockedBy": self.blocked_by,
            "rule": self.rule.to_dict() if self.rule else None,
            "plan": self.plan.to_dict() if self.plan else None,
        }


@dataclass
class _UserPayout:
    """Everything one winner's credit writes, committed together."""

    user_id: str
    transactions: List[WalletTransaction] = field(default_factory=list)
    records: List[DistributionRecord] = field(default_factory=list)
    # result id → fields restored on compensation
    restore: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    ops: List[WriteOp] = field(default_factory=list)


class SettlementOrchestrator:
    """
    토너먼트 상금 정산 오케스트레이터.

    Coordinates rule resolution, calculation, wallet credits and the
    settlement commit for one tournament at a time.
    """

    def __init__(
        self,
        store: DocumentStore,
        ledger: Optional[LedgerService] = None,
        lock: Optional[SettlementLock] = None,
        notifier: Optional[NotificationService] = None,
        *,
        defaults: Optional[SettlementDefaults] = None,
        currency: str = "INR",
        max_batch_ops: Optional[int] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Document store
            ledger: Wallet ledger (built on ``store`` if omitted)
            lock: Per-tournament lock (in-process lock if omitted)
            notifier: Optional in-app notification service
            defaults: Fallback rule percentages
            currency: Currency for tournaments that do not set one
            max_batch_ops: Chunk size limit (capped by the store's limit)
        """
        self.store = store
        self.ledger = ledger or LedgerService(store, currency)
        self.lock = lock or LocalSettlementLock()
        self.notifier = notifier
        self.defaults = defaults or SettlementDefaults()
        self.currency = currency
        self._max_batch_ops = max_batch_ops
        self._pending_notifications: Set[asyncio.Task] = set()

    @property
    def max_batch_ops(self) -> int:
        if self._max_batch_ops is None:
            return self.store.max_batch_ops
        return min(self._max_batch_ops, self.store.max_batch_ops)

    # =========================================================================
    # Loading
    # =========================================================================

    async def _load_tournament(self, tournament_id: str) -> Tournament:
        doc = await self.store.get_by_id(Collections.TOURNAMENTS, tournament_id)
        if doc is None:
            raise NotFoundError(tournament_id)
        # 규칙 필드는 상태 검증 이후에 파싱 (with_rule_fields)
        return Tournament.from_document(doc, rule_fields=False)

    async def _load_results(self, tournament_id: str) -> List[Result]:
        docs = await self.store.query(
            Collections.RESULTS, "tournamentId", "==", tournament_id
        )
        return [Result.from_document(d) for d in docs]

    async def _load_registrations(self, tournament_id: str) -> List[Registration]:
        docs = await self.store.query(
            Collections.REGISTRATIONS, "tournamentId", "==", tournament_id
        )
        return [Registration.from_document(d) for d in docs]

    @staticmethod
    def _check_settleable(tournament: Tournament) -> None:
        """Raise the first failing settlement precondition."""
        if not tournament.is_completed:
            raise InvalidStateError(tournament.id, tournament.status)
        if not tournament.prizes_distributed and tournament.settlement_state in (
            SettlementState.SETTLING.value,
            SettlementState.FAILED.value,
        ):
            raise InvalidStateError(
                tournament.id,
                tournament.status,
                message=(
                    "A previous prize distribution did not finish cleanly; "
                    "manual reconciliation is required"
                ),
            )
        if tournament.prizes_distributed:
            raise AlreadyDistributedError(tournament.id)

    # =========================================================================
    # Read-only operations
    # =========================================================================

    async def preview_distribution(self, tournament_id: str) -> DistributionPreview:
        """
        Compute the settlement without writing anything.

        The first failing precondition is reported in ``blocked_by``; an
        invalid rule is reported there too, with no rule or plan.

        Raises:
            NotFoundError: If the tournament does not exist
        """
        tournament = await self._load_tournament(tournament_id)
        results = await self._load_results(tournament_id)
        registrations = await self._load_registrations(tournament_id)

        blocked_by = None
        try:
            self._check_settleable(tournament)
            if not results:
                raise NoResultsError(tournament_id)
        except SettlementError as e:
            blocked_by = {"code": e.code, "message": e.message}

        rule: Optional[EffectiveRule] = None
        plan: Optional[SettlementPlan] = None
        try:
            tournament = tournament.with_rule_fields()
            rule = resolve_rule(tournament, self.defaults)
            plan = compute_settlement(tournament, registrations, results, rule)
        except InvalidRuleError as e:
            rule = plan = None
            if blocked_by is None:
                blocked_by = {"code": e.code, "message": e.message}

        return DistributionPreview(
            tournament_id=tournament_id,
            status=tournament.status,
            prizes_distributed=tournament.prizes_distributed,
            rule=rule,
            plan=plan,
            can_distribute=blocked_by is None,
            blocked_by=blocked_by,
        )

    async def list_distributions(
        self,
        tournament_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[DistributionRecord], int]:
        """
        Get a tournament's distribution records (largest prize first).

        Returns:
            (records on the page, total record count)
        """
        await self._load_tournament(tournament_id)
        offset = (max(page, 1) - 1) * page_size
        docs = await self.store.query(
            Collections.DISTRIBUTIONS,
            "tournamentId",
            "==",
            tournament_id,
            order_by="prizeAmount",
            descending=True,
            limit=page_size,
            offset=offset,
        )
        total = await self.store.count(
            Collections.DISTRIBUTIONS, "tournamentId", "==", tournament_id
        )
        return [DistributionRecord.from_document(d) for d in docs], total

    # =========================================================================
    # Rule management
    # =========================================================================

    async def save_distribution_rule(
        self,
        tournament_id: str,
        rule: PrizeDistributionRule,
    ) -> EffectiveRule:
        """
        Validate and persist a tournament's distribution rule.

        Raises:
            NotFoundError: If the tournament does not exist
            AlreadyDistributedError: If prizes were already paid
            SettlementInProgressError: If a settlement is running
            InvalidRuleError: If the rule is invalid
        """
        async with self.lock.hold(tournament_id):
            tournament = await self._load_tournament(tournament_id)
            if tournament.prizes_distributed:
                raise AlreadyDistributedError(tournament_id)
            if tournament.settlement_state == SettlementState.SETTLING.value:
                raise SettlementInProgressError(tournament_id)

            # 저장된 (교체될) 규칙은 파싱하지 않음
            candidate = dataclasses.replace(
                tournament.with_rule_fields({**tournament.raw, "prizeDistributionRule": None}),
                prize_distribution_rule=rule,
            )
            effective = resolve_rule(candidate, self.defaults)
            admin_pool = candidate.admin_prize_pool
            if effective.is_override and admin_pool is not None:
                override_amounts(effective, admin_pool, admin_pool)

            try:
                await self.store.batch_write([
                    WriteOp.update(
                        Collections.TOURNAMENTS,
                        tournament_id,
                        {"prizeDistributionRule": rule.to_dict(), "updatedAt": utc_now_iso()},
                        expect={"prizesDistributed": tournament.raw.get("prizesDistributed")},
                    )
                ])
            except PreconditionFailedError:
                raise AlreadyDistributedError(tournament_id) from None

        logger.info(
            "distribution_rule_saved",
            tournament_id=tournament_id,
            kind=effective.kind.value,
        )
        return effective

    # =========================================================================
    # Settlement
    # =========================================================================

    async def distribute_prizes(self, tournament_id: str) -> DistributionSummary:
        """
        토너먼트 상금 지급 (1회 한정).

        The workflow runs shielded from caller cancellation so a dropped
        request never interrupts a commit or its compensation.

        Args:
            tournament_id: Tournament ID

        Returns:
            DistributionSummary

        Raises:
            NotFoundError: Tournament does not exist
            InvalidStateError: Not completed, or an earlier run failed uncleanly
            AlreadyDistributedError: Prizes were already paid
            NoResultsError: No result rows
            SettlementInProgressError: Another run holds the lock
            InvalidRuleError: Invalid distribution rule
            SettlementFailedError: Commit failed and was rolled back
        """
        run = asyncio.ensure_future(self._distribute(tournament_id))
        try:
            return await asyncio.shield(run)
        except asyncio.CancelledError:
            run.add_done_callback(functools.partial(self._log_detached_outcome, tournament_id))
            raise

    @staticmethod
    def _log_detached_outcome(
        tournament_id: str, run: "asyncio.Future[DistributionSummary]"
    ) -> None:
        """Report a settlement that finished after its caller was cancelled."""
        if run.cancelled():
            logger.error("settlement_detached_cancelled", tournament_id=tournament_id)
            return
        error = run.exception()
        if error is None:
            logger.info(
                "settlement_detached_completed",
                tournament_id=tournament_id,
                settlement_id=run.result().settlement_id,
            )
        elif isinstance(error, SettlementError) and error.status_code < 500:
            logger.warning(
                "settlement_detached_rejected", tournament_id=tournament_id, code=error.code
            )
        else:
            logger.error(
                "settlement_detached_failed",
                tournament_id=tournament_id,
                error=str(error),
                exc_info=error,
            )

    async def _distribute(self, tournament_id: str) -> DistributionSummary:
        settlement_id = self.store.new_id()
        with settlement_context(tournament_id, settlement_id):
            async with self.lock.hold(tournament_id) as lease:
                tournament, summary = await self._settle(tournament_id, settlement_id, lease)
        self._dispatch_notifications(tournament, summary)
        return summary

    async def _settle(
        self, tournament_id: str, settlement_id: str, lease: LockInfo
    ) -> Tuple[Tournament, DistributionSummary]:
        tournament = await self._load_tournament(tournament_id)
        self._check_settleable(tournament)

        results = await self._load_results(tournament_id)
        if not results:
            raise NoResultsError(tournament_id)
        registrations = await self._load_registrations(tournament_id)

        tournament = tournament.with_rule_fields()
        rule = resolve_rule(tournament, self.defaults)
        plan = compute_settlement(tournament, registrations, results, rule)

        distributed_at = utc_now_iso()
        logger.info(
            "settlement_started",
            rule=rule.kind.value,
            prize_pool=plan.actual_prize_pool,
            payable=len(plan.payable_entries),
        )

        payouts, records, skipped = await self._stage_payouts(
            tournament, plan, results, settlement_id, distributed_at
        )
        total_distributed = sum(r.prize_amount for r in records)
        paid_results = {r.result_id for r in records}

        final_update = {
            "prizesDistributed": True,
            "prizesDistributedAt": distributed_at,
            "actualPrizePool": plan.actual_prize_pool,
            "totalDistributed": total_distributed,
            "settlementId": settlement_id,
            "settlementState": SettlementState.SETTLED.value,
            "updatedAt": distributed_at,
        }

        total_ops = sum(len(p.ops) for p in payouts) + 1
        chunked = total_ops > self.max_batch_ops
        if chunked:
            await self._commit_chunked(tournament, payouts, final_update, settlement_id, lease)
        else:
            await self._commit_single(tournament, payouts, final_update)

        summary = DistributionSummary(
            settlement_id=settlement_id,
            tournament_id=tournament_id,
            distributions=records,
            total_distributed=total_distributed,
            first_place_winner=next((r for r in records if r.position == 1), None),
            total_kill_rewards=sum(
                e.kill_reward for e in plan.payable_entries if e.result_id in paid_results
            ),
            actual_prize_pool=plan.actual_prize_pool,
            breakage=plan.actual_prize_pool - total_distributed,
            skipped=skipped,
            distributed_at=distributed_at,
            chunked=chunked,
        )
        logger.info(
            "prizes_distributed",
            total_distributed=total_distributed,
            winners=len(records),
            skipped=len(skipped),
            breakage=summary.breakage,
            chunked=chunked,
        )
        return tournament, summary

    async def _stage_payouts(
        self,
        tournament: Tournament,
        plan: SettlementPlan,
        results: Sequence[Result],
        settlement_id: str,
        distributed_at: str,
    ) -> Tuple[List[_UserPayout], List[DistributionRecord], List[SkippedWinner]]:
        """Stage credits, distribution records and result updates per winner."""
        batch = self.ledger.new_batch()
        currency = tournament.currency or self.currency
        results_by_id = {r.id: r for r in results}
        breakdowns = {e.result_id: e.reward_breakdown for e in plan.payable_entries}

        payouts: Dict[str, _UserPayout] = {}
        records: List[DistributionRecord] = []
        skipped = [
            SkippedWinner.from_entry(e, SkipReason.USER_UNRESOLVED) for e in plan.unresolved
        ]
        for entry in plan.unresolved:
            logger.warning(
                "prize_winner_unresolved",
                tournament_id=tournament.id,
                result_id=entry.result_id,
                amount=entry.reward,
            )

        for entry in plan.payable_entries:
            try:
                tx = await self.ledger.stage_credit(
                    batch,
                    entry.user_id,
                    entry.reward,
                    currency,
                    f"Tournament Prize: {tournament.title} - {entry.prize_type}",
                    tournament_id=tournament.id,
                )
            except UserNotFoundError:
                logger.warning(
                    "prize_winner_not_found",
                    tournament_id=tournament.id,
                    user_id=entry.user_id,
                    amount=entry.reward,
                )
                skipped.append(SkippedWinner.from_entry(entry, SkipReason.USER_NOT_FOUND))
                continue

            record = DistributionRecord(
                id=self.store.new_id(),
                tournament_id=tournament.id,
                user_id=entry.user_id,
                registration_id=entry.registration_id,
                result_id=entry.result_id,
                position=entry.position,
                kills=entry.kills,
                prize_amount=entry.reward,
                prize_type=entry.prize_type,
                transaction_id=tx.id,
                settlement_id=settlement_id,
                created_at=distributed_at,
            )
            records.append(record)

            payout = payouts.setdefault(entry.user_id, _UserPayout(entry.user_id))
            payout.transactions.append(tx)
            payout.records.append(record)

            previous = results_by_id[entry.result_id]
            payout.restore[entry.result_id] = {
                "reward": previous.reward,
                "rewardStatus": previous.reward_status,
                "prizeType": None,
                "rewardBreakdown": None,
                "settlementId": None,
                "paidAt": None,
            }

        for payout in payouts.values():
            payout.ops = batch.ops_for(payout.user_id)
            payout.ops.extend(
                WriteOp.set(Collections.DISTRIBUTIONS, r.id, r.to_document())
                for r in payout.records
            )
            for record in payout.records:
                entry_breakdown = breakdowns[record.result_id]
                payout.ops.append(
                    WriteOp.update(
                        Collections.RESULTS,
                        record.result_id,
                        {
                            "reward": record.prize_amount,
                            "rewardStatus": RewardStatus.PAID.value,
                            "prizeType": record.prize_type,
                            "rewardBreakdown": entry_breakdown,
                            "settlementId": settlement_id,
                            "paidAt": distributed_at,
                        },
                    )
                )

        return list(payouts.values()), records, skipped

    async def _raise_conflict(
        self, tournament_id: str, error: PreconditionFailedError
    ) -> None:
        """Translate a failed compare-and-set into the matching settlement error."""
        if error.collection == Collections.TOURNAMENTS:
            current = await self._load_tournament(tournament_id)
            if current.prizes_distributed:
                raise AlreadyDistributedError(tournament_id) from error
            if current.settlement_state == SettlementState.SETTLING.value:
                raise SettlementInProgressError(tournament_id) from error
            raise SettlementFailedError(
                tournament_id, "tournament changed during settlement"
            ) from error
        raise SettlementFailedError(
            tournament_id,
            "wallet balance changed during settlement",
            {"userId": error.doc_id},
        ) from error

    async def _commit_single(
        self,
        tournament: Tournament,
        payouts: Sequence[_UserPayout],
        final_update: Dict[str, Any],
    ) -> None:
        # 토너먼트 CAS 를 먼저 검사해야 경합 시 AlreadyDistributed 로 보고됨
        ops = [
            WriteOp.update(
                Collections.TOURNAMENTS,
                tournament.id,
                final_update,
                expect=tournament.settlement_guard(),
            )
        ]
        ops.extend(op for payout in payouts for op in payout.ops)
        try:
            await self.store.batch_write(ops)
        except PreconditionFailedError as e:
            await self._raise_conflict(tournament.id, e)
        except StoreError as e:
            logger.error("settlement_commit_failed", tournament_id=tournament.id, error=str(e))
            raise SettlementFailedError(tournament.id, str(e)) from e

    async def _commit_chunked(
        self,
        tournament: Tournament,
        payouts: Sequence[_UserPayout],
        final_update: Dict[str, Any],
        settlement_id: str,
        lease: LockInfo,
    ) -> None:
        """
        청크 정산.

        1. claim: settlementState=settling (CAS)
        2. 사용자 그룹 단위 청크 커밋 (청크마다 락 갱신)
        3. 최종 플래그 커밋
        실패 시 커밋된 청크를 역순으로 보상 후 claim 해제.
        """
        try:
            chunks = pack_groups(payouts, self.max_batch_ops, size=lambda p: len(p.ops))
        except BatchTooLargeError as e:
            raise SettlementFailedError(tournament.id, str(e)) from e

        claim = WriteOp.update(
            Collections.TOURNAMENTS,
            tournament.id,
            {
                "settlementState": SettlementState.SETTLING.value,
                "settlementId": settlement_id,
                "updatedAt": utc_now_iso(),
            },
            expect=tournament.settlement_guard(),
        )
        try:
            await self.store.batch_write([claim])
        except PreconditionFailedError as e:
            await self._raise_conflict(tournament.id, e)
        except StoreError as e:
            raise SettlementFailedError(tournament.id, str(e)) from e

        logger.info(
            "settlement_claimed",
            tournament_id=tournament.id,
            settlement_id=settlement_id,
            chunks=len(chunks),
        )

        committed: List[List[_UserPayout]] = []
        try:
            for chunk in chunks:
                # claim(settling) 이 재실행을 막으므로 갱신 실패는 경고만
                if not await self.lock.renew(lease):
                    logger.warning(
                        "settlement_lease_lost",
                        tournament_id=tournament.id,
                        committed_chunks=len(committed),
                    )
                await self.store.batch_write([op for p in chunk for op in p.ops])
                committed.append(chunk)
            await self.store.batch_write([
                WriteOp.update(
                    Collections.TOURNAMENTS,
                    tournament.id,
                    final_update,
                    expect={
                        "settlementState": SettlementState.SETTLING.value,
                        "settlementId": settlement_id,
                    },
                )
            ])
        except Exception as e:
            logger.error(
                "settlement_chunk_failed",
                tournament_id=tournament.id,
                settlement_id=settlement_id,
                committed_chunks=len(committed),
                error=str(e),
            )
            await self._compensate(tournament, committed, settlement_id, e)

    async def _compensate(
        self,
        tournament: Tournament,
        committed: Sequence[Sequence[_UserPayout]],
        settlement_id: str,
        cause: Exception,
    ) -> None:
        """Undo committed chunks in reverse order, then release the claim.

        Always raises ``SettlementFailedError``.
        """
        try:
            for chunk in reversed(committed):
                batch = self.ledger.new_batch()
                for payout in chunk:
                    for tx in payout.transactions:
                        await self.ledger.stage_reversal(batch, tx)

                ops: List[WriteOp] = []
                for payout in chunk:
                    ops.extend(batch.ops_for(payout.user_id))
                    ops.extend(
                        WriteOp.delete(Collections.DISTRIBUTIONS, r.id) for r in payout.records
                    )
                    ops.extend(
                        WriteOp.update(Collections.RESULTS, result_id, restore)
                        for result_id, restore in payout.restore.items()
                    )
                await self.store.batch_write(ops)

            await self.store.batch_write([
                WriteOp.update(
                    Collections.TOURNAMENTS,
                    tournament.id,
                    {"settlementState": None, "settlementId": None, "updatedAt": utc_now_iso()},
                    expect={"settlementId": settlement_id},
                )
            ])
        except Exception as comp_error:
            logger.critical(
                "settlement_compensation_failed",
                tournament_id=tournament.id,
                settlement_id=settlement_id,
                error=str(comp_error),
            )
            await self._mark_failed(tournament.id, settlement_id)
            error = SettlementFailedError(
                tournament.id,
                str(cause),
                {
                    "settlementId": settlement_id,
                    "compensated": False,
                    "committedChunks": len(committed),
                },
            )
            error.recoverable = False
            raise error from comp_error

        logger.warning(
            "settlement_compensated",
            tournament_id=tournament.id,
            settlement_id=settlement_id,
            reverted_chunks=len(committed),
        )
        raise SettlementFailedError(
            tournament.id,
            str(cause),
            {
                "settlementId": settlement_id,
                "compensated": True,
                "committedChunks": len(committed),
            },
        ) from cause

    async def _mark_failed(self, tournament_id: str, settlement_id: str) -> None:
        try:
            await self.store.batch_write([
                WriteOp.update(
                    Collections.TOURNAMENTS,
                    tournament_id,
                    {"settlementState": SettlementState.FAILED.value, "updatedAt": utc_now_iso()},
                    expect={"settlementId": settlement_id},
                )
            ])
        except StoreError as e:
            # 상태 기록도 실패: settling 으로 남아 재실행은 계속 차단됨
            logger.critical(
                "settlement_mark_failed_error",
                tournament_id=tournament_id,
                settlement_id=settlement_id,
                error=str(e),
            )

    # =========================================================================
    # Notifications
    # =========================================================================

    def _dispatch_notifications(
        self, tournament: Tournament, summary: DistributionSummary
    ) -> None:
        """Schedule one prize notification per distribution (after commit)."""
        if self.notifier is None:
            return
        currency = tournament.currency or self.currency
        for record in summary.distributions:
            payload = NotificationPayload(
                user_id=record.user_id,
                title="Tournament prize credited",
                message=(
                    f"You won {record.prize_amount} {currency} in {tournament.title} "
                    f"({record.prize_type})"
                ),
                type=NotificationType.TOURNAMENT,
                data={
                    "tournamentId": tournament.id,
                    "distributionId": record.id,
                    "amount": record.prize_amount,
                },
            )
            task = asyncio.create_task(self._notify(payload))
            self._pending_notifications.add(task)
            task.add_done_callback(self._pending_notifications.discard)

    async def _notify(self, payload: NotificationPayload) -> None:
        try:
            await self.notifier.send_notification(payload)
        except Exception as e:
            logger.warning(
                "prize_notification_failed",
                user_id=payload.user_id,
                error=str(e),
            )

    async def drain_notifications(self) -> None:
        """Wait for scheduled notifications (shutdown, tests)."""
        if self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications), return_exceptions=True)

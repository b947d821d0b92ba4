"""Prize distribution API endpoints.

Endpoints:
- GET /tournaments/{id}/prize-distribution - Rule + settlement preview
- POST /tournaments/{id}/prize-distribution - Save distribution rule
- POST /tournaments/{id}/distribute-prizes - Settle the tournament (once)
- GET /tournaments/{id}/distributions - Paid distribution records
"""

from decimal import Decimal
from typing import Any, Union

from fastapi import APIRouter, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tournament_admin.api.deps import CurrentAdmin, Orchestrator
from tournament_admin.logging_config import get_logger
from tournament_admin.middleware.sentry import set_settlement_context
from tournament_admin.models.tournament import PrizeDistributionRule

logger = get_logger(__name__)

router = APIRouter(prefix="/tournaments", tags=["Prize Distribution"])

# 정수 퍼센트는 숫자, 소수 퍼센트는 문자열
Percentage = Union[int, str]


# ============================================================
# Pydantic Schemas
# ============================================================


class CamelModel(BaseModel):
    """Schema with camelCase wire names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OverrideSlotSchema(CamelModel):
    """Admin override payout slot."""

    position: int = Field(..., ge=1)
    percentage: Decimal | None = Field(None, ge=0, le=100)
    amount: int | None = Field(None, ge=0, description="Amount in minor units")


class PrizeDistributionRuleRequest(CamelModel):
    """Prize distribution rule."""

    first_place_percent: Decimal | None = Field(None, ge=0, le=100)
    squad_split: bool = False
    admin_override: bool = False
    override_distribution: list[OverrideSlotSchema] | None = None

    def to_rule(self) -> PrizeDistributionRule:
        return PrizeDistributionRule.from_dict(self.model_dump(by_alias=True))


class OverrideSlotResponse(CamelModel):
    position: int
    percentage: Percentage | None = None
    amount: int | None = None


class EffectiveRuleResponse(CamelModel):
    """Resolved rule used for settlement."""

    kind: str
    company_commission_percentage: Percentage
    first_prize_percentage: Percentage
    per_kill_reward_percentage: Percentage
    squad_split: bool
    override_distribution: list[OverrideSlotResponse]


class PlanEntryResponse(CamelModel):
    result_id: str
    registration_id: str | None = None
    user_id: str | None = None
    position: int | None = None
    kills: int
    reward: int
    prize_type: str
    reward_breakdown: dict[str, int]


class SettlementPlanResponse(CamelModel):
    """Computed settlement (amounts in minor units)."""

    tournament_id: str
    rule_kind: str
    total_entry_fees: int
    company_commission: int
    actual_prize_pool: int
    first_prize: int
    kill_prize_pool: int
    total_kills: int
    per_kill_reward: int
    total_payable: int
    breakage: int
    entries: list[PlanEntryResponse]
    unresolved: list[PlanEntryResponse]


class BlockedByResponse(CamelModel):
    code: str
    message: str


class DistributionPreviewResponse(CamelModel):
    """Settlement dry run."""

    tournament_id: str
    status: str
    prizes_distributed: bool
    can_distribute: bool
    blocked_by: BlockedByResponse | None = None
    rule: EffectiveRuleResponse | None = None
    plan: SettlementPlanResponse | None = None


class SaveRuleResponse(CamelModel):
    tournament_id: str
    prize_distribution_rule: dict[str, Any]
    effective_rule: EffectiveRuleResponse


class DistributionRecordResponse(CamelModel):
    """Prize distribution audit record."""

    id: str
    tournament_id: str
    user_id: str
    registration_id: str | None = None
    result_id: str
    position: int | None = None
    kills: int
    prize_amount: int
    prize_type: str
    transaction_id: str | None = None
    settlement_id: str | None = None
    status: str
    created_at: str


class SkippedWinnerResponse(CamelModel):
    result_id: str
    user_id: str | None = None
    position: int | None = None
    kills: int
    amount: int
    reason: str


class DistributionSummaryResponse(CamelModel):
    """Settlement result."""

    settlement_id: str
    tournament_id: str
    distributions: list[DistributionRecordResponse]
    total_distributed: int
    first_place_winner: DistributionRecordResponse | None = None
    total_kill_rewards: int
    actual_prize_pool: int
    breakage: int
    skipped: list[SkippedWinnerResponse]
    distributed_at: str
    chunked: bool = False


class DistributionListResponse(CamelModel):
    items: list[DistributionRecordResponse]
    total: int
    page: int
    page_size: int


# ============================================================
# Endpoints
# ============================================================


@router.get(
    "/{tournament_id}/prize-distribution",
    response_model=DistributionPreviewResponse,
    summary="Preview prize distribution",
)
async def get_prize_distribution(
    tournament_id: str,
    admin: CurrentAdmin,
    orchestrator: Orchestrator,
) -> DistributionPreviewResponse:
    """Show the effective rule and the computed payouts without paying."""
    preview = await orchestrator.preview_distribution(tournament_id)
    return DistributionPreviewResponse.model_validate(preview.to_dict())


@router.post(
    "/{tournament_id}/prize-distribution",
    response_model=SaveRuleResponse,
    summary="Save prize distribution rule",
)
async def save_prize_distribution(
    tournament_id: str,
    request: PrizeDistributionRuleRequest,
    admin: CurrentAdmin,
    orchestrator: Orchestrator,
) -> SaveRuleResponse:
    """Persist an admin distribution rule (refused once prizes are paid)."""
    rule = request.to_rule()
    effective = await orchestrator.save_distribution_rule(tournament_id, rule)

    logger.info(
        "distribution_rule_updated",
        tournament_id=tournament_id,
        admin_id=admin.user_id,
        admin_override=rule.admin_override,
    )
    return SaveRuleResponse(
        tournament_id=tournament_id,
        prize_distribution_rule=rule.to_dict(),
        effective_rule=EffectiveRuleResponse.model_validate(effective.to_dict()),
    )


@router.post(
    "/{tournament_id}/distribute-prizes",
    response_model=DistributionSummaryResponse,
    summary="Distribute prizes",
)
async def distribute_prizes(
    tournament_id: str,
    admin: CurrentAdmin,
    orchestrator: Orchestrator,
) -> DistributionSummaryResponse:
    """Settle a completed tournament. A second call returns 409."""
    set_settlement_context(tournament_id)
    logger.info("distribute_prizes_requested", tournament_id=tournament_id, admin_id=admin.user_id)

    summary = await orchestrator.distribute_prizes(tournament_id)
    return DistributionSummaryResponse.model_validate(summary.to_dict())


@router.get(
    "/{tournament_id}/distributions",
    response_model=DistributionListResponse,
    summary="List prize distributions",
)
async def list_distributions(
    tournament_id: str,
    admin: CurrentAdmin,
    orchestrator: Orchestrator,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
) -> DistributionListResponse:
    """Paginated distribution records, largest prize first."""
    records, total = await orchestrator.list_distributions(tournament_id, page, page_size)
    return DistributionListResponse(
        items=[DistributionRecordResponse.model_validate(r.to_dict()) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )

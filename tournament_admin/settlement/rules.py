"""
Prize Rule Resolver.

토너먼트 필드 + prizeDistributionRule → EffectiveRule.

- adminOverride + overrideDistribution: 관리자 지정 슬롯을 그대로 사용
- 그 외: commission / first / per-kill 퍼센트 계산 규칙 (기본값 10 / 40 / 60)
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from tournament_admin.config import Settings
from tournament_admin.models.tournament import (
    OverrideSlot,
    Tournament,
    percentage_to_json,
)
from tournament_admin.utils.errors import InvalidRuleError

HUNDRED = Decimal(100)


class RuleKind(str, Enum):
    COMPUTED = "computed"
    OVERRIDE = "override"


@dataclass(frozen=True)
class SettlementDefaults:
    """Percentages used when a tournament leaves them unset."""

    commission_percentage: Decimal = Decimal(10)
    first_prize_percentage: Decimal = Decimal(40)
    per_kill_percentage: Decimal = Decimal(60)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettlementDefaults":
        return cls(
            commission_percentage=Decimal(str(settings.settlement_default_commission_percentage)),
            first_prize_percentage=Decimal(str(settings.settlement_default_first_prize_percentage)),
            per_kill_percentage=Decimal(str(settings.settlement_default_per_kill_percentage)),
        )


@dataclass(frozen=True)
class EffectiveRule:
    """Resolved distribution rule for one settlement."""

    kind: RuleKind
    commission_percentage: Decimal
    first_prize_percentage: Decimal = Decimal(0)
    per_kill_percentage: Decimal = Decimal(0)
    squad_split: bool = False
    override_slots: Tuple[OverrideSlot, ...] = ()

    @property
    def is_override(self) -> bool:
        return self.kind == RuleKind.OVERRIDE

    @property
    def squad_split_percentage(self) -> Decimal:
        """Share of the pool paid to each of positions 2 and 3 under squadSplit."""
        if not self.squad_split or self.is_override:
            return Decimal(0)
        return (HUNDRED - self.first_prize_percentage - self.per_kill_percentage) / 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "companyCommissionPercentage": percentage_to_json(self.commission_percentage),
            "firstPrizePercentage": percentage_to_json(self.first_prize_percentage),
            "perKillRewardPercentage": percentage_to_json(self.per_kill_percentage),
            "squadSplit": self.squad_split,
            "overrideDistribution": [s.to_dict() for s in self.override_slots],
        }


def _check_range(value: Decimal, field_name: str) -> None:
    if value < 0 or value > HUNDRED:
        raise InvalidRuleError(
            f"{field_name} must be between 0 and 100",
            {"field": field_name, "value": str(value)},
        )


def validate_override_slots(slots: Sequence[OverrideSlot]) -> None:
    """Validate admin override slots.

    Raises:
        InvalidRuleError: On empty, duplicate or non-positive positions,
            negative amounts, slots with neither amount nor percentage, or
            percentages adding up to more than 100
    """
    if not slots:
        raise InvalidRuleError("overrideDistribution must contain at least one slot")

    seen: set[int] = set()
    pct_total = Decimal(0)
    for slot in slots:
        if slot.position < 1:
            raise InvalidRuleError(
                "Override slot position must be positive", {"position": slot.position}
            )
        if slot.position in seen:
            raise InvalidRuleError(
                "Duplicate override slot position", {"position": slot.position}
            )
        seen.add(slot.position)

        if slot.amount is None and slot.percentage is None:
            raise InvalidRuleError(
                "Override slot needs an amount or a percentage", {"position": slot.position}
            )
        if slot.amount is not None and slot.amount < 0:
            raise InvalidRuleError(
                "Override slot amount must not be negative",
                {"position": slot.position, "amount": slot.amount},
            )
        if slot.amount is None and slot.percentage is not None:
            _check_range(slot.percentage, "overrideDistribution.percentage")
            pct_total += slot.percentage

    if pct_total > HUNDRED:
        raise InvalidRuleError(
            "Override percentages add up to more than 100",
            {"total": str(pct_total)},
        )


def resolve_rule(
    tournament: Tournament,
    defaults: Optional[SettlementDefaults] = None,
) -> EffectiveRule:
    """Resolve the effective distribution rule for a tournament.

    Args:
        tournament: Tournament to settle
        defaults: Fallback percentages (canonical 10 / 40 / 60 if omitted)

    Returns:
        EffectiveRule

    Raises:
        InvalidRuleError: If the rule or any percentage is invalid
    """
    defaults = defaults or SettlementDefaults()
    rule = tournament.prize_distribution_rule

    commission = tournament.company_commission_percentage
    if commission is None:
        commission = defaults.commission_percentage
    _check_range(commission, "companyCommissionPercentage")

    if rule is not None and rule.admin_override and rule.override_distribution is not None:
        validate_override_slots(rule.override_distribution)
        return EffectiveRule(
            kind=RuleKind.OVERRIDE,
            commission_percentage=commission,
            override_slots=tuple(rule.override_distribution),
        )

    # 명시적 0 은 기본값으로 대체하지 않음
    first = None
    if rule is not None:
        first = rule.first_place_percent
    if first is None:
        first = tournament.first_prize_percentage
    if first is None:
        first = defaults.first_prize_percentage

    per_kill = tournament.per_kill_reward_percentage
    if per_kill is None:
        per_kill = defaults.per_kill_percentage

    _check_range(first, "firstPrizePercentage")
    _check_range(per_kill, "perKillRewardPercentage")
    if first + per_kill > HUNDRED:
        raise InvalidRuleError(
            "firstPrizePercentage + perKillRewardPercentage must not exceed 100",
            {"firstPrizePercentage": str(first), "perKillRewardPercentage": str(per_kill)},
        )

    return EffectiveRule(
        kind=RuleKind.COMPUTED,
        commission_percentage=commission,
        first_prize_percentage=first,
        per_kill_percentage=per_kill,
        squad_split=bool(rule.squad_split) if rule is not None else False,
    )

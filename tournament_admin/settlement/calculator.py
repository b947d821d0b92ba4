"""
Settlement Calculator.

등록 + 결과 + EffectiveRule → SettlementPlan (순수 함수, I/O 없음).

All amounts are integers in currency minor units and every division
rounds down, so the payable total never exceeds the prize pool. The
leftover is reported as ``breakage``.
"""

from collections import Counter
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, List, Optional, Sequence

from tournament_admin.models.tournament import Registration, Result, Tournament
from tournament_admin.settlement.rules import EffectiveRule, RuleKind
from tournament_admin.utils.errors import InvalidRuleError

FIRST_PLACE = "First Place"
KILL_REWARD = "Kill Reward"


def percent_of(amount: int, percentage: Decimal) -> int:
    """``floor(amount * percentage / 100)``."""
    value = Decimal(amount) * percentage / Decimal(100)
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


@dataclass
class PlanEntry:
    """Computed reward for one result row."""

    result_id: str
    registration_id: Optional[str]
    user_id: Optional[str]
    position: Optional[int]
    kills: int
    position_prize: int = 0
    kill_reward: int = 0

    @property
    def reward(self) -> int:
        return self.position_prize + self.kill_reward

    @property
    def payable(self) -> bool:
        return self.reward > 0 and self.user_id is not None

    @property
    def prize_type(self) -> str:
        parts = []
        if self.position_prize > 0:
            parts.append(FIRST_PLACE if self.position == 1 else f"Position {self.position}")
        if self.kill_reward > 0:
            parts.append(KILL_REWARD)
        return " + ".join(parts)

    @property
    def reward_breakdown(self) -> Dict[str, int]:
        breakdown: Dict[str, int] = {}
        if self.position_prize > 0:
            key = "firstPrize" if self.position == 1 else "positionPrize"
            breakdown[key] = self.position_prize
        if self.kill_reward > 0:
            breakdown["killReward"] = self.kill_reward
        return breakdown

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resultId": self.result_id,
            "registrationId": self.registration_id,
            "userId": self.user_id,
            "position": self.position,
            "kills": self.kills,
            "reward": self.reward,
            "prizeType": self.prize_type,
            "rewardBreakdown": self.reward_breakdown,
        }


@dataclass
class SettlementPlan:
    """Full settlement computation for one tournament."""

    tournament_id: str
    rule_kind: RuleKind
    total_entry_fees: int = 0
    company_commission: int = 0
    actual_prize_pool: int = 0
    first_prize: int = 0
    kill_prize_pool: int = 0
    total_kills: int = 0
    per_kill_reward: int = 0
    entries: List[PlanEntry] = field(default_factory=list)
    unresolved: List[PlanEntry] = field(default_factory=list)

    @property
    def payable_entries(self) -> List[PlanEntry]:
        return [e for e in self.entries if e.payable]

    @property
    def total_payable(self) -> int:
        return sum(e.reward for e in self.payable_entries)

    @property
    def total_kill_rewards(self) -> int:
        return sum(e.kill_reward for e in self.payable_entries)

    @property
    def breakage(self) -> int:
        return self.actual_prize_pool - self.total_payable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tournamentId": self.tournament_id,
            "ruleKind": self.rule_kind.value,
            "totalEntryFees": self.total_entry_fees,
            "companyCommission": self.company_commission,
            "actualPrizePool": self.actual_prize_pool,
            "firstPrize": self.first_prize,
            "killPrizePool": self.kill_prize_pool,
            "totalKills": self.total_kills,
            "perKillReward": self.per_kill_reward,
            "totalPayable": self.total_payable,
            "breakage": self.breakage,
            "entries": [e.to_dict() for e in self.entries],
            "unresolved": [e.to_dict() for e in self.unresolved],
        }


def _split_ties(position_amounts: Dict[int, int], results: Sequence[Result]) -> Dict[int, int]:
    """Per-result share of each position prize, split equally among ties."""
    counts = Counter(r.position for r in results if r.position in position_amounts)
    return {
        position: amount // counts[position]
        for position, amount in position_amounts.items()
        if counts.get(position)
    }


def override_amounts(
    rule: EffectiveRule,
    base_pool: int,
    admin_pool: Optional[int],
) -> Dict[int, int]:
    """Amount per override position.

    Raises:
        InvalidRuleError: If the total exceeds the admin-set pool
    """
    amounts = {
        slot.position: (
            slot.amount if slot.amount is not None else percent_of(base_pool, slot.percentage)
        )
        for slot in rule.override_slots
    }
    total = sum(amounts.values())
    if admin_pool is not None and total > admin_pool:
        raise InvalidRuleError(
            "Override distribution exceeds the prize pool",
            {"overrideTotal": total, "prizePool": admin_pool},
        )
    return amounts


def compute_settlement(
    tournament: Tournament,
    registrations: Sequence[Registration],
    results: Sequence[Result],
    rule: EffectiveRule,
) -> SettlementPlan:
    """Compute every result's reward.

    Args:
        tournament: Tournament being settled
        registrations: Its registrations
        results: Its result rows
        rule: Resolved distribution rule

    Returns:
        SettlementPlan; empty when there are no registrations

    Raises:
        InvalidRuleError: If an override pays more than the admin-set pool
    """
    plan = SettlementPlan(tournament_id=tournament.id, rule_kind=rule.kind)
    if not registrations:
        return plan

    plan.total_entry_fees = len(registrations) * tournament.entry_fee
    plan.company_commission = percent_of(plan.total_entry_fees, rule.commission_percentage)

    admin_pool = tournament.admin_prize_pool
    base_pool = (
        admin_pool if admin_pool is not None
        else plan.total_entry_fees - plan.company_commission
    )
    plan.total_kills = sum(r.kills for r in results)

    if rule.is_override:
        position_amounts = override_amounts(rule, base_pool, admin_pool)
        plan.actual_prize_pool = (
            admin_pool if admin_pool is not None else sum(position_amounts.values())
        )
        plan.first_prize = position_amounts.get(1, 0)
    else:
        plan.actual_prize_pool = base_pool
        plan.first_prize = percent_of(base_pool, rule.first_prize_percentage)
        plan.kill_prize_pool = percent_of(base_pool, rule.per_kill_percentage)
        if plan.total_kills:
            plan.per_kill_reward = plan.kill_prize_pool // plan.total_kills

        position_amounts = {1: plan.first_prize}
        if rule.squad_split:
            # 남은 비율을 2, 3위가 절반씩
            share = percent_of(base_pool, rule.squad_split_percentage)
            position_amounts[2] = share
            position_amounts[3] = share

    per_result = _split_ties(position_amounts, results)
    registration_users = {r.id: r.user_id for r in registrations}

    ordered = sorted(
        results,
        key=lambda r: (r.position is None, r.position or 0, -r.kills, r.id),
    )
    for result in ordered:
        user_id = result.user_id
        if user_id is None and result.registration_id is not None:
            user_id = registration_users.get(result.registration_id)

        entry = PlanEntry(
            result_id=result.id,
            registration_id=result.registration_id,
            user_id=user_id,
            position=result.position,
            kills=result.kills,
            position_prize=per_result.get(result.position, 0) if result.position else 0,
        )
        if not rule.is_override and plan.total_kills and result.kills:
            entry.kill_reward = result.kills * plan.kill_prize_pool // plan.total_kills

        if entry.reward > 0 and entry.user_id is None:
            plan.unresolved.append(entry)
        else:
            plan.entries.append(entry)

    return plan

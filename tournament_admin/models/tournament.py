"""
Tournament Data Models.

Typed views over the stored tournament documents. Money is always an
integer amount in currency minor units; percentages are Decimals.
"""

import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from tournament_admin.store.base import Document
from tournament_admin.utils.errors import InvalidRuleError


class Collections:
    """Collection names."""

    TOURNAMENTS = "tournaments"
    REGISTRATIONS = "tournament_registrations"
    RESULTS = "tournament_results"
    DISTRIBUTIONS = "prize_distributions"
    USERS = "users"
    WALLET_TRANSACTIONS = "wallet_transactions"
    NOTIFICATIONS = "notifications"


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    DRAFT = "draft"
    UPCOMING = "upcoming"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SettlementState(str, Enum):
    """Settlement progress recorded on the tournament document."""

    SETTLING = "settling"  # 청크 정산 진행 중 (claim 획득)
    SETTLED = "settled"
    FAILED = "failed"  # 보상 롤백 실패, 수동 정리 필요


class RewardStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


def parse_percentage(value: Any, field_name: str) -> Optional[Decimal]:
    """Parse a stored percentage; None/empty means "not set"."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidRuleError(f"{field_name} must be a number", {"field": field_name})
    try:
        pct = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRuleError(
            f"{field_name} must be a number", {"field": field_name, "value": value}
        ) from None
    if not pct.is_finite() or pct < 0 or pct > 100:
        raise InvalidRuleError(
            f"{field_name} must be between 0 and 100",
            {"field": field_name, "value": str(pct)},
        )
    return pct


def parse_amount(value: Any, field_name: str) -> Optional[int]:
    """Parse a stored money amount (integer minor units)."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidRuleError(f"{field_name} must be an integer amount", {"field": field_name})
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRuleError(
            f"{field_name} must be an integer amount", {"field": field_name, "value": value}
        ) from None
    if not amount.is_finite() or amount != amount.to_integral_value():
        raise InvalidRuleError(
            f"{field_name} must be an integer amount in minor units",
            {"field": field_name, "value": str(value)},
        )
    return int(amount)


def percentage_to_json(value: Optional[Decimal]) -> Any:
    """Store integral percentages as numbers and fractional ones as strings."""
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return str(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True)
class OverrideSlot:
    """One admin-defined payout slot."""

    position: int
    percentage: Optional[Decimal] = None
    amount: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OverrideSlot":
        if not isinstance(data, dict):
            raise InvalidRuleError("Override slot must be an object", {"slot": data})
        position = data.get("position")
        if isinstance(position, bool) or not isinstance(position, (int, float, str)):
            raise InvalidRuleError("Override slot position must be an integer", {"slot": data})
        try:
            position = int(position)
        except ValueError:
            raise InvalidRuleError(
                "Override slot position must be an integer", {"slot": data}
            ) from None
        return cls(
            position=position,
            percentage=parse_percentage(data.get("percentage"), "overrideDistribution.percentage"),
            amount=parse_amount(data.get("amount"), "overrideDistribution.amount"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": self.position,
            "percentage": percentage_to_json(self.percentage),
            "amount": self.amount,
        }


@dataclass(frozen=True)
class PrizeDistributionRule:
    """Optional per-tournament distribution rule (admin override)."""

    first_place_percent: Optional[Decimal] = None
    squad_split: bool = False
    admin_override: bool = False
    override_distribution: Optional[List[OverrideSlot]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PrizeDistributionRule":
        slots = data.get("overrideDistribution")
        if slots is not None and not isinstance(slots, list):
            raise InvalidRuleError("overrideDistribution must be a list of slots")
        return cls(
            first_place_percent=parse_percentage(
                data.get("firstPlacePercent"), "firstPlacePercent"
            ),
            squad_split=bool(data.get("squadSplit", False)),
            admin_override=bool(data.get("adminOverride", False)),
            override_distribution=(
                [OverrideSlot.from_dict(s) for s in slots] if slots is not None else None
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "firstPlacePercent": percentage_to_json(self.first_place_percent),
            "squadSplit": self.squad_split,
            "adminOverride": self.admin_override,
            "overrideDistribution": (
                [s.to_dict() for s in self.override_distribution]
                if self.override_distribution is not None
                else None
            ),
        }


@dataclass
class Tournament:
    """Tournament document view."""

    id: str
    title: str = ""
    status: str = TournamentStatus.DRAFT.value
    entry_fee: int = 0
    prize_pool: Optional[int] = None
    company_commission_percentage: Optional[Decimal] = None
    first_prize_percentage: Optional[Decimal] = None
    per_kill_reward_percentage: Optional[Decimal] = None
    currency: Optional[str] = None
    prizes_distributed: bool = False
    prize_distribution_rule: Optional[PrizeDistributionRule] = None
    settlement_state: Optional[str] = None
    settlement_id: Optional[str] = None
    # Stored body, kept for compare-and-set expectations
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_document(cls, doc: Document, *, rule_fields: bool = True) -> "Tournament":
        """
        Build the view from a stored document.

        With ``rule_fields=False`` only the lifecycle fields are read, so a
        malformed percentage cannot mask a state error. Call
        ``with_rule_fields()`` once the tournament is known to be settleable.
        """
        data = doc.data
        tournament = cls(
            id=doc.id,
            title=data.get("title") or doc.id,
            status=str(data.get("status") or TournamentStatus.DRAFT.value),
            currency=data.get("currency"),
            prizes_distributed=bool(data.get("prizesDistributed", False)),
            settlement_state=data.get("settlementState"),
            settlement_id=data.get("settlementId"),
            raw=dict(data),
        )
        return tournament.with_rule_fields() if rule_fields else tournament

    def with_rule_fields(self, data: Optional[Dict[str, Any]] = None) -> "Tournament":
        """Parse money and rule fields from ``data`` (the stored body by default).

        Raises:
            InvalidRuleError: On a malformed amount, percentage or rule
        """
        data = self.raw if data is None else data
        rule = data.get("prizeDistributionRule")
        return dataclasses.replace(
            self,
            entry_fee=parse_amount(data.get("entryFee"), "entryFee") or 0,
            prize_pool=parse_amount(data.get("prizePool"), "prizePool"),
            company_commission_percentage=parse_percentage(
                data.get("companyCommissionPercentage"), "companyCommissionPercentage"
            ),
            first_prize_percentage=parse_percentage(
                data.get("firstPrizePercentage"), "firstPrizePercentage"
            ),
            per_kill_reward_percentage=parse_percentage(
                data.get("perKillRewardPercentage"), "perKillRewardPercentage"
            ),
            prize_distribution_rule=(
                PrizeDistributionRule.from_dict(rule) if isinstance(rule, dict) else None
            ),
        )

    @property
    def is_completed(self) -> bool:
        return self.status == TournamentStatus.COMPLETED.value

    @property
    def admin_prize_pool(self) -> Optional[int]:
        """Admin-set prize pool; zero or missing means "derive from entry fees"."""
        return self.prize_pool if self.prize_pool else None

    def settlement_guard(self) -> Dict[str, Any]:
        """Compare-and-set expectation on the fields a settlement run depends on."""
        return {
            "status": self.raw.get("status"),
            "prizesDistributed": self.raw.get("prizesDistributed"),
            "settlementState": self.raw.get("settlementState"),
        }


@dataclass
class Registration:
    """Tournament registration (read-only for settlement)."""

    id: str
    tournament_id: str
    user_id: Optional[str] = None
    payment_status: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Document) -> "Registration":
        return cls(
            id=doc.id,
            tournament_id=str(doc.get("tournamentId")),
            user_id=_optional_str(doc.get("userId")),
            payment_status=doc.get("paymentStatus"),
        )


@dataclass
class Result:
    """Match result row for one registration."""

    id: str
    tournament_id: str
    registration_id: Optional[str] = None
    user_id: Optional[str] = None
    position: Optional[int] = None
    kills: int = 0
    reward: int = 0
    reward_status: str = RewardStatus.UNPAID.value

    @classmethod
    def from_document(cls, doc: Document) -> "Result":
        position = doc.get("position")
        return cls(
            id=doc.id,
            tournament_id=str(doc.get("tournamentId")),
            registration_id=_optional_str(doc.get("registrationId")),
            user_id=_optional_str(doc.get("userId")),
            position=int(position) if position not in (None, "") else None,
            kills=max(0, int(doc.get("kills") or 0)),
            reward=int(doc.get("reward") or 0),
            reward_status=doc.get("rewardStatus") or RewardStatus.UNPAID.value,
        )


@dataclass
class DistributionRecord:
    """Append-only prize distribution audit row."""

    id: str
    tournament_id: str
    user_id: str
    registration_id: Optional[str]
    result_id: str
    position: Optional[int]
    kills: int
    prize_amount: int
    prize_type: str
    transaction_id: Optional[str] = None
    settlement_id: Optional[str] = None
    status: str = "completed"
    created_at: str = ""

    def to_document(self) -> Dict[str, Any]:
        return {
            "tournamentId": self.tournament_id,
            "userId": self.user_id,
            "registrationId": self.registration_id,
            "resultId": self.result_id,
            "position": self.position,
            "kills": self.kills,
            "prizeAmount": self.prize_amount,
            "prizeType": self.prize_type,
            "transactionId": self.transaction_id,
            "settlementId": self.settlement_id,
            "status": self.status,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_document(cls, doc: Document) -> "DistributionRecord":
        data = doc.data
        position = data.get("position")
        return cls(
            id=doc.id,
            tournament_id=str(data.get("tournamentId")),
            user_id=str(data.get("userId")),
            registration_id=_optional_str(data.get("registrationId")),
            result_id=str(data.get("resultId") or ""),
            position=int(position) if position is not None else None,
            kills=int(data.get("kills") or 0),
            prize_amount=int(data.get("prizeAmount") or 0),
            prize_type=data.get("prizeType") or "",
            transaction_id=data.get("transactionId"),
            settlement_id=data.get("settlementId"),
            status=data.get("status") or "completed",
            created_at=data.get("createdAt") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.to_document()}

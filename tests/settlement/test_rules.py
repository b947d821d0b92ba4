"""
Prize Rule Resolver Tests.

분배 규칙 해석 테스트.
"""

from decimal import Decimal

import pytest

from tournament_admin.config import Settings
from tournament_admin.models.tournament import (
    OverrideSlot,
    PrizeDistributionRule,
    Tournament,
)
from tournament_admin.settlement.rules import (
    RuleKind,
    SettlementDefaults,
    resolve_rule,
    validate_override_slots,
)
from tournament_admin.store.base import Document
from tournament_admin.utils.errors import InvalidRuleError


def make_tournament(**kwargs) -> Tournament:
    return Tournament(id="t-1", status="completed", entry_fee=100, **kwargs)


class TestDefaults:
    def test_canonical_defaults(self):
        """미설정 시 10 / 40 / 60."""
        rule = resolve_rule(make_tournament())

        assert rule.kind == RuleKind.COMPUTED
        assert rule.commission_percentage == Decimal(10)
        assert rule.first_prize_percentage == Decimal(40)
        assert rule.per_kill_percentage == Decimal(60)
        assert rule.squad_split is False

    def test_explicit_zero_is_kept(self):
        """명시적 0 은 기본값으로 대체되지 않음."""
        rule = resolve_rule(
            make_tournament(
                company_commission_percentage=Decimal(0),
                first_prize_percentage=Decimal(0),
                per_kill_reward_percentage=Decimal(0),
            )
        )

        assert rule.commission_percentage == 0
        assert rule.first_prize_percentage == 0
        assert rule.per_kill_percentage == 0

    def test_defaults_from_settings(self, test_settings: Settings):
        settings = test_settings.model_copy(
            update={
                "settlement_default_commission_percentage": 5,
                "settlement_default_first_prize_percentage": 60,
                "settlement_default_per_kill_percentage": 10,
            }
        )
        rule = resolve_rule(make_tournament(), SettlementDefaults.from_settings(settings))

        assert rule.commission_percentage == Decimal(5)
        assert rule.first_prize_percentage == Decimal(60)
        assert rule.per_kill_percentage == Decimal(10)


class TestComputedRule:
    def test_rule_first_place_overrides_tournament_field(self):
        rule = resolve_rule(
            make_tournament(
                first_prize_percentage=Decimal(30),
                prize_distribution_rule=PrizeDistributionRule(
                    first_place_percent=Decimal(25), squad_split=True
                ),
            )
        )

        assert rule.first_prize_percentage == Decimal(25)
        assert rule.squad_split is True
        # (100 - 25 - 60) / 2
        assert rule.squad_split_percentage == Decimal("7.5")

    def test_admin_override_without_slots_is_computed(self):
        rule = resolve_rule(
            make_tournament(prize_distribution_rule=PrizeDistributionRule(admin_override=True))
        )
        assert rule.kind == RuleKind.COMPUTED

    def test_shares_over_hundred_rejected(self):
        with pytest.raises(InvalidRuleError):
            resolve_rule(
                make_tournament(
                    first_prize_percentage=Decimal(50),
                    per_kill_reward_percentage=Decimal(60),
                )
            )

    def test_to_dict(self):
        data = resolve_rule(make_tournament(first_prize_percentage=Decimal("32.5"))).to_dict()

        assert data["kind"] == "computed"
        assert data["companyCommissionPercentage"] == 10
        assert data["firstPrizePercentage"] == "32.5"
        assert data["overrideDistribution"] == []


class TestOverrideRule:
    def test_override_slots_used(self):
        slots = [OverrideSlot(position=1, amount=500), OverrideSlot(position=2, amount=200)]
        rule = resolve_rule(
            make_tournament(
                prize_distribution_rule=PrizeDistributionRule(
                    admin_override=True, override_distribution=slots
                )
            )
        )

        assert rule.is_override
        assert rule.override_slots == tuple(slots)
        assert rule.squad_split_percentage == 0

    def test_empty_override_rejected(self):
        """빈 overrideDistribution 은 거부."""
        with pytest.raises(InvalidRuleError):
            resolve_rule(
                make_tournament(
                    prize_distribution_rule=PrizeDistributionRule(
                        admin_override=True, override_distribution=[]
                    )
                )
            )

    @pytest.mark.parametrize(
        "slots",
        [
            [OverrideSlot(position=1, amount=1), OverrideSlot(position=1, amount=2)],
            [OverrideSlot(position=0, amount=1)],
            [OverrideSlot(position=1)],
            [OverrideSlot(position=1, amount=-5)],
            [
                OverrideSlot(position=1, percentage=Decimal(60)),
                OverrideSlot(position=2, percentage=Decimal(50)),
            ],
        ],
        ids=["duplicate", "zero-position", "empty-slot", "negative-amount", "over-100"],
    )
    def test_invalid_slots(self, slots):
        with pytest.raises(InvalidRuleError):
            validate_override_slots(slots)


class TestRuleParsing:
    def test_from_dict(self):
        rule = PrizeDistributionRule.from_dict(
            {
                "firstPlacePercent": "45",
                "squadSplit": True,
                "adminOverride": True,
                "overrideDistribution": [{"position": "1", "amount": 300}],
            }
        )

        assert rule.first_place_percent == Decimal(45)
        assert rule.override_distribution == [OverrideSlot(position=1, amount=300)]
        assert PrizeDistributionRule.from_dict(rule.to_dict()) == rule

    @pytest.mark.parametrize(
        "data",
        [
            {"firstPlacePercent": 120},
            {"firstPlacePercent": -1},
            {"firstPlacePercent": "abc"},
            {"overrideDistribution": [{"position": 1, "amount": 10.5}]},
            {"overrideDistribution": [{"position": "first", "amount": 10}]},
            {"overrideDistribution": "1st:500"},
            {"overrideDistribution": [500]},
        ],
    )
    def test_invalid_values_rejected(self, data):
        with pytest.raises(InvalidRuleError):
            PrizeDistributionRule.from_dict(data)


class TestTournamentDocument:
    def test_state_fields_load_without_rule_fields(self):
        """잘못된 퍼센트가 있어도 상태 필드는 읽을 수 있음."""
        doc = Document(
            "t-1",
            {"status": "live", "prizesDistributed": True, "firstPrizePercentage": "abc"},
        )

        tournament = Tournament.from_document(doc, rule_fields=False)

        assert tournament.status == "live"
        assert tournament.prizes_distributed is True
        assert tournament.first_prize_percentage is None
        with pytest.raises(InvalidRuleError):
            tournament.with_rule_fields()

    def test_full_load_parses_rule_fields(self):
        doc = Document(
            "t-1",
            {"status": "completed", "entryFee": 100, "perKillRewardPercentage": "32.5"},
        )

        tournament = Tournament.from_document(doc)

        assert tournament.entry_fee == 100
        assert tournament.per_kill_reward_percentage == Decimal("32.5")

    def test_full_load_rejects_bad_values(self):
        with pytest.raises(InvalidRuleError):
            Tournament.from_document(Document("t-1", {"prizePool": "lots"}))

    def test_with_rule_fields_from_other_body(self):
        doc = Document("t-1", {"status": "completed", "prizeDistributionRule": "broken"})
        tournament = Tournament.from_document(doc, rule_fields=False)

        parsed = tournament.with_rule_fields({"firstPrizePercentage": 20})

        assert parsed.first_prize_percentage == Decimal(20)
        assert parsed.raw == doc.data

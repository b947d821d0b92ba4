"""Prize settlement engine.

- ``rules``: EffectiveRule resolution and validation
- ``calculator``: pure settlement computation
- ``locks``: per-tournament settlement locks
- ``orchestrator``: the one-shot distribution workflow
"""

from tournament_admin.settlement.calculator import (
    PlanEntry,
    SettlementPlan,
    compute_settlement,
    percent_of,
)
from tournament_admin.settlement.locks import (
    LocalSettlementLock,
    RedisSettlementLock,
    SettlementLock,
)
from tournament_admin.settlement.orchestrator import (
    DistributionPreview,
    DistributionSummary,
    SettlementOrchestrator,
    SkippedWinner,
    SkipReason,
)
from tournament_admin.settlement.rules import (
    EffectiveRule,
    RuleKind,
    SettlementDefaults,
    resolve_rule,
    validate_override_slots,
)

__all__ = [
    "PlanEntry",
    "SettlementPlan",
    "compute_settlement",
    "percent_of",
    "LocalSettlementLock",
    "RedisSettlementLock",
    "SettlementLock",
    "DistributionPreview",
    "DistributionSummary",
    "SettlementOrchestrator",
    "SkippedWinner",
    "SkipReason",
    "EffectiveRule",
    "RuleKind",
    "SettlementDefaults",
    "resolve_rule",
    "validate_override_slots",
]

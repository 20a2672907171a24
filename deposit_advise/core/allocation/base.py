"""
FILE: deposit_advise/core/allocation/base.py
Shared allocation contract: run context, outcome, diagnostics, and the
recommendation builder used by every strategy.
"""

from typing import Dict, List, Mapping, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from deposit_advise.core.config import OptimizationConfig
from deposit_advise.core.ledger import ExposureLedger
from deposit_advise.core.models import (
    Account,
    AvailableProduct,
    BonusType,
    MissingFRNAlert,
    PendingDeposit,
    Priority,
    Recommendation,
    RecommendationBenefits,
    RecommendationCompliance,
    RecommendationSource,
    RecommendationTarget,
)
from deposit_advise.core.money import Money, Percentage
from deposit_advise.core.rules import OptimizationRulesEngine, RuleEvaluationResult

RECOMMENDATION_REASONS: Dict[str, str] = {
    "NONE": "Highest available rate",
    "EXISTING_ACCOUNT": "Topping up existing account - no setup required",
    "PREFERRED_PLATFORM": "Using preferred platform",
}


class AllocationDiagnostics(BaseModel):
    iterations: int = 0
    rule_event_counts: Dict[str, int] = Field(default_factory=dict)
    dropped: Dict[str, int] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)

    def record_events(self, result: RuleEvaluationResult) -> None:
        for event in result.events:
            self.rule_event_counts[event.type] = self.rule_event_counts.get(event.type, 0) + 1

    def record_drop(self, reason: str) -> None:
        self.dropped[reason] = self.dropped.get(reason, 0) + 1


class AllocationContext(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    config: OptimizationConfig
    accounts: List[Account]
    pending_deposits: List[PendingDeposit] = Field(default_factory=list)
    products: List[AvailableProduct]
    rules: OptimizationRulesEngine
    ceilings: Dict[str, Money] = Field(
        default_factory=dict,
        description="Effective protection ceiling per institution; others use the standard limit.",
    )

    @property
    def standard_ceiling(self) -> Money:
        return self.config.compliance.standard_limit

    def new_ledger(self) -> ExposureLedger:
        return ExposureLedger.from_holdings(
            accounts=self.accounts,
            pending_deposits=self.pending_deposits,
            standard_ceiling=self.standard_ceiling,
            ceilings=self.ceilings,
        )


class AllocationOutcome(BaseModel):
    recommendations: List[Recommendation]
    missing_frn_alerts: List[MissingFRNAlert] = Field(default_factory=list)
    diagnostics: AllocationDiagnostics = Field(default_factory=AllocationDiagnostics)


class AllocationStrategy(Protocol):
    name: str

    def allocate(self, context: AllocationContext) -> AllocationOutcome: ...


def build_recommendation(
    *,
    recommendation_id: str,
    strategy: str,
    account: Account,
    product: AvailableProduct,
    amount: Money,
    rate_improvement: Percentage,
    annual_benefit: Money,
    priority: Priority,
    ledger: ExposureLedger,
    ceiling: Money,
    bonus: Optional[Percentage] = None,
    bonus_type: BonusType = "NONE",
    rule_events: Optional[List[str]] = None,
    is_chunk: bool = False,
) -> Recommendation:
    """Build a recommendation after its amount has been reserved on the ledger."""
    identified = product.frn is not None
    compliance = RecommendationCompliance(missing_frn=not identified, resulting_status="UNVERIFIED")
    if identified:
        headroom = ledger.available_headroom(product.institution)
        compliance = RecommendationCompliance(
            resulting_exposure=ledger.current_exposure(product.institution),
            headroom_after=headroom,
            resulting_status="COMPLIANT" if headroom.is_positive() else "AT_LIMIT",
        )

    notes: List[str] = []
    if bonus_type == "EXISTING_ACCOUNT":
        notes.append("Topping up existing account - no new account setup required")
    elif bonus_type == "PREFERRED_PLATFORM":
        notes.append("Using preferred platform")
    if is_chunk:
        notes.append("Part of a diversification split across institutions")

    risks: List[str] = []
    if not identified:
        risks.append("Target institution has no firm reference number; protection is unverified")

    return Recommendation(
        recommendation_id=recommendation_id,
        type="DIVERSIFICATION" if account.balance > ceiling else "RATE_OPTIMIZATION",
        strategy=strategy,
        priority=priority,
        source=RecommendationSource(
            account_id=account.account_id,
            bank_name=account.bank_name,
            frn=account.frn,
            amount=amount,
            original_balance=account.balance,
            current_rate=account.rate,
            liquidity_tier=account.liquidity_tier,
        ),
        target=RecommendationTarget(
            product_id=product.product_id,
            bank_name=product.bank_name,
            frn=product.frn,
            platform=product.platform,
            target_rate=product.rate,
            account_type=product.account_type,
            liquidity_tier=product.liquidity_tier,
        ),
        benefits=RecommendationBenefits(
            rate_improvement=rate_improvement,
            annual_benefit=annual_benefit,
            convenience_bonus=bonus or Percentage.of(0),
            bonus_type=bonus_type,
        ),
        compliance=compliance,
        display_mode="AND" if account.balance > ceiling else "OR",
        recommendation_reason=RECOMMENDATION_REASONS[bonus_type],
        confidence=product.confidence_score,
        implementation_notes=notes,
        risks=risks,
        rule_events=list(rule_events or []),
    )


def ceilings_snapshot(ceilings: Mapping[str, Money]) -> Dict[str, str]:
    return {frn: str(value.amount) for frn, value in sorted(ceilings.items())}

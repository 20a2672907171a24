"""
FILE: deposit_advise/core/packaging.py
Recommendation packaging: per-account grouping, OR/AND display tagging,
rule-driven prioritization, and benefit summaries.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from deposit_advise.core.compliance import ComplianceReport
from deposit_advise.core.models import BenefitAnalysis, Priority, Recommendation
from deposit_advise.core.money import Money, Percentage
from deposit_advise.core.rules import HIGH_PRIORITY_EVENT, OptimizationRulesEngine

PRIORITY_RANK: Dict[str, int] = {"URGENT": 4, "HIGH": 3, "MEDIUM": 2, "LOW": 1}

AND_MODE_NOTE = "Execute ALL these moves to diversify above the protection limit"


def or_mode_note(count: int) -> str:
    return f"Choose ONE of these {count} alternatives"


def group_by_source(
    recommendations: Sequence[Recommendation],
) -> Dict[str, List[Recommendation]]:
    groups: Dict[str, List[Recommendation]] = {}
    for recommendation in recommendations:
        groups.setdefault(recommendation.source_account_id, []).append(recommendation)
    return groups


def apply_display_modes(
    recommendations: Sequence[Recommendation],
    *,
    ceiling: Money,
    max_per_account: Optional[int],
) -> List[Recommendation]:
    """Tag each source-account group OR (pick one) or AND (execute all).

    OR groups are ordered by annual benefit and truncated to ``max_per_account``;
    AND groups keep every move in emission order.
    """
    packaged: List[Recommendation] = []
    for group in group_by_source(recommendations).values():
        if group[0].source.original_balance > ceiling:
            packaged.extend(
                item.model_copy(update={"display_mode": "AND", "display_notes": AND_MODE_NOTE})
                for item in group
            )
            continue
        ordered = sorted(group, key=lambda item: -item.benefits.annual_benefit.amount)
        if max_per_account is not None:
            ordered = ordered[:max_per_account]
        note = or_mode_note(len(ordered))
        packaged.extend(
            item.model_copy(update={"display_mode": "OR", "display_notes": note})
            for item in ordered
        )
    return packaged


def benefit_tier_priority(annual_benefit: Money) -> Priority:
    if annual_benefit.amount > Decimal("200"):
        return "HIGH"
    if annual_benefit.amount > Decimal("50"):
        return "MEDIUM"
    return "LOW"


def prioritize(
    recommendations: Sequence[Recommendation], rules_engine: OptimizationRulesEngine
) -> List[Recommendation]:
    upgraded: List[Recommendation] = []
    for recommendation in recommendations:
        facts = {
            "rateImprovement": recommendation.benefits.rate_improvement.value,
            "transferAmount": recommendation.source.amount.amount,
            "annualBenefit": recommendation.benefits.annual_benefit.amount,
        }
        result = rules_engine.evaluate(facts)
        below_high = PRIORITY_RANK[recommendation.priority] < PRIORITY_RANK["HIGH"]
        if below_high and result.has_event(HIGH_PRIORITY_EVENT):
            recommendation = recommendation.model_copy(update={"priority": "HIGH"})
        upgraded.append(recommendation)
    return sorted(
        upgraded,
        key=lambda item: (-PRIORITY_RANK[item.priority], -item.benefits.annual_benefit.amount),
    )


def _concentration_label(report: Optional[ComplianceReport]) -> Optional[str]:
    if report is None:
        return None
    index = report.risk_metrics.concentration_risk
    if index >= Decimal("2500"):
        return "HIGH"
    if index >= Decimal("1500"):
        return "MEDIUM"
    return "LOW"


def summarize_benefits(
    recommendations: Sequence[Recommendation],
    *,
    compliance_report: Optional[ComplianceReport] = None,
) -> BenefitAnalysis:
    count = len(recommendations)
    total = Money.sum_of(item.benefits.annual_benefit for item in recommendations)
    by_priority: Dict[str, int] = {}
    for item in recommendations:
        by_priority[item.priority] = by_priority.get(item.priority, 0) + 1

    best_id = None
    best_benefit: Optional[Money] = None
    for item in recommendations:
        if best_benefit is None or item.benefits.annual_benefit > best_benefit:
            best_benefit = item.benefits.annual_benefit
            best_id = item.recommendation_id

    average_improvement = Decimal("0")
    if count:
        average_improvement = sum(
            (item.benefits.rate_improvement.value for item in recommendations), Decimal("0")
        ) / count

    risk_level = "LOW"
    if compliance_report is not None and compliance_report.breaches:
        risk_level = "HIGH"
    elif any(item.compliance.missing_frn for item in recommendations):
        risk_level = "MEDIUM"

    return BenefitAnalysis(
        recommendation_count=count,
        total_annual_benefit=total.rounded(),
        average_annual_benefit=(total / count).rounded() if count else Money.zero(),
        average_rate_improvement=Percentage.of(average_improvement.quantize(Decimal("0.0001"))),
        best_opportunity_id=best_id,
        by_priority=by_priority,
        risk_level=risk_level,
        concentration_risk=_concentration_label(compliance_report),
    )

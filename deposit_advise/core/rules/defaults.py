"""
FILE: deposit_advise/core/rules/defaults.py
Built-in rule set used when the store holds no rule rows.
"""

from typing import List

from deposit_advise.core.rules.engine import (
    CHUNK_LARGE_ACCOUNT_EVENT,
    HIGH_PRIORITY_EVENT,
    MISSING_FRN_EVENT,
    RuleDefinition,
)


def default_rule_definitions() -> List[RuleDefinition]:
    return [
        RuleDefinition.from_raw(
            rule_name="rate_improvement_valid",
            conditions={
                "fact": "rateImprovement",
                "operator": "greaterThanInclusive",
                "value": "MEANINGFUL_RATE_THRESHOLD",
            },
            event_type="rateImprovementValid",
            priority=100,
        ),
        RuleDefinition.from_raw(
            rule_name="transfer_amount_valid",
            conditions={
                "fact": "transferAmount",
                "operator": "greaterThanInclusive",
                "value": "MIN_MOVE_AMOUNT",
            },
            event_type="transferAmountValid",
            priority=100,
        ),
        RuleDefinition.from_raw(
            rule_name="transfer_amount_within_limit",
            conditions={
                "all": [
                    {"fact": "transferAmount", "operator": "greaterThan", "value": 0},
                    {"fact": "withinProtectionCeiling", "operator": "equal", "value": True},
                ]
            },
            event_type="transferAmountWithinLimit",
            priority=100,
        ),
        RuleDefinition.from_raw(
            rule_name="annual_benefit_valid",
            conditions={
                "fact": "annualBenefit",
                "operator": "greaterThanInclusive",
                "value": "MIN_REBALANCING_BENEFIT",
            },
            event_type="annualBenefitValid",
            priority=100,
        ),
        RuleDefinition.from_raw(
            rule_name="high_priority_recommendation",
            rule_type="prioritization",
            conditions={
                "any": [
                    {
                        "all": [
                            {
                                "fact": "annualBenefit",
                                "operator": "greaterThan",
                                "value": "MIN_REBALANCING_BENEFIT_3X",
                            },
                            {
                                "fact": "rateImprovement",
                                "operator": "greaterThanInclusive",
                                "value": "1.0",
                            },
                        ]
                    },
                    {"fact": "annualBenefit", "operator": "greaterThanInclusive", "value": 1000},
                ]
            },
            event_type=HIGH_PRIORITY_EVENT,
            event_params={"priority": "HIGH"},
            priority=90,
        ),
        RuleDefinition.from_raw(
            rule_name="chunk_large_account",
            rule_type="allocation",
            conditions={"fact": "exceedsProtectionCeiling", "operator": "equal", "value": True},
            event_type=CHUNK_LARGE_ACCOUNT_EVENT,
            priority=80,
        ),
        RuleDefinition.from_raw(
            rule_name="missing_frn_detected",
            rule_type="data_quality",
            conditions={"fact": "targetFRN", "operator": "isEmpty", "value": True},
            event_type=MISSING_FRN_EVENT,
            priority=50,
        ),
    ]

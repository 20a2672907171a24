from deposit_advise.core.rules.conditions import (
    AllConditions,
    AnyConditions,
    Condition,
    evaluate_condition,
    parse_condition_tree,
)
from deposit_advise.core.rules.defaults import default_rule_definitions
from deposit_advise.core.rules.engine import (
    CHUNK_LARGE_ACCOUNT_EVENT,
    HIGH_PRIORITY_EVENT,
    MISSING_FRN_EVENT,
    REQUIRED_VALIDATION_EVENTS,
    OptimizationRulesEngine,
    PlaceholderResolver,
    RuleDefinition,
    RuleEvaluationResult,
    RuleEvent,
    RuleFacts,
    RuleRow,
)

__all__ = [
    "AllConditions",
    "AnyConditions",
    "CHUNK_LARGE_ACCOUNT_EVENT",
    "Condition",
    "HIGH_PRIORITY_EVENT",
    "MISSING_FRN_EVENT",
    "OptimizationRulesEngine",
    "PlaceholderResolver",
    "REQUIRED_VALIDATION_EVENTS",
    "RuleDefinition",
    "RuleEvaluationResult",
    "RuleEvent",
    "RuleFacts",
    "RuleRow",
    "default_rule_definitions",
    "evaluate_condition",
    "parse_condition_tree",
]

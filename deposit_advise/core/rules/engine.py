"""
FILE: deposit_advise/core/rules/engine.py
Optimization rules engine: loads rule definitions once, resolves configuration
placeholders at load time, and evaluates fact sets into rule events.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field

from deposit_advise.core.config import ConfigurationError, OptimizationConfig
from deposit_advise.core.rules.conditions import (
    AllConditions,
    AnyConditions,
    Condition,
    ConditionNode,
    evaluate_condition,
    parse_condition_tree,
)

logger = logging.getLogger(__name__)

RuleFacts = Dict[str, Union[Decimal, bool, str, None]]

REQUIRED_VALIDATION_EVENTS = (
    "rateImprovementValid",
    "transferAmountValid",
    "transferAmountWithinLimit",
    "annualBenefitValid",
)
HIGH_PRIORITY_EVENT = "highPriorityRecommendation"
CHUNK_LARGE_ACCOUNT_EVENT = "chunkLargeAccount"
MISSING_FRN_EVENT = "missingFrnDetected"


class RuleEvent(BaseModel):
    type: str
    params: Dict[str, Any] = Field(default_factory=dict)


class RuleEvaluationResult(BaseModel):
    events: List[RuleEvent] = Field(default_factory=list)
    successful: bool = False

    def has_event(self, event_type: str) -> bool:
        return any(event.type == event_type for event in self.events)

    def event_types(self) -> List[str]:
        return [event.type for event in self.events]


class RuleRow(BaseModel):
    """Stored rule shape; conditions and params are JSON text."""

    rule_name: str
    rule_type: str = "validation"
    conditions_json: str
    event_type: str
    event_params_json: Optional[str] = None
    priority: int = 100
    enabled: bool = True
    description: Optional[str] = None


class RuleDefinition(BaseModel):
    rule_name: str
    rule_type: str = "validation"
    conditions: Union[AllConditions, AnyConditions]
    event_type: str
    event_params: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 100
    enabled: bool = True
    description: Optional[str] = None

    @classmethod
    def from_raw(
        cls,
        *,
        rule_name: str,
        conditions: Any,
        event_type: str,
        rule_type: str = "validation",
        event_params: Optional[Dict[str, Any]] = None,
        priority: Optional[int] = None,
        enabled: bool = True,
        description: Optional[str] = None,
    ) -> "RuleDefinition":
        return cls(
            rule_name=rule_name,
            rule_type=rule_type,
            conditions=parse_condition_tree(conditions),
            event_type=event_type,
            event_params=dict(event_params or {}),
            priority=100 if priority is None else priority,
            enabled=enabled,
            description=description,
        )

    @classmethod
    def from_row(cls, row: RuleRow) -> "RuleDefinition":
        try:
            conditions = json.loads(row.conditions_json)
            params = json.loads(row.event_params_json) if row.event_params_json else {}
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                f"Rule {row.rule_name} holds malformed JSON", row.rule_name
            ) from exc
        return cls.from_raw(
            rule_name=row.rule_name,
            rule_type=row.rule_type,
            conditions=conditions,
            event_type=row.event_type,
            event_params=params,
            priority=row.priority,
            enabled=row.enabled,
            description=row.description,
        )


class PlaceholderResolver:
    """Maps symbolic threshold tokens to configured values."""

    def __init__(self, values: Mapping[str, Decimal]) -> None:
        self._values = dict(values)

    @classmethod
    def from_config(cls, config: OptimizationConfig) -> "PlaceholderResolver":
        risk = config.risk
        return cls(
            {
                "MEANINGFUL_RATE_THRESHOLD": risk.meaningful_rate_threshold.value,
                "MEANINGFUL_RATE_THRESHOLD_2X": risk.meaningful_rate_threshold.value * 2,
                "MIN_MOVE_AMOUNT": risk.min_move_amount.amount,
                "REBALANCING_MAX_TRANSFER_SIZE": risk.rebalancing_max_transfer_size.amount,
                "MIN_REBALANCING_BENEFIT": risk.min_rebalancing_benefit.amount,
                "MIN_REBALANCING_BENEFIT_3X": risk.min_rebalancing_benefit.amount * 3,
                "FSCS_STANDARD_LIMIT": config.compliance.standard_limit.amount,
            }
        )

    @property
    def tokens(self) -> frozenset[str]:
        return frozenset(self._values)

    def resolve_value(self, value: Any, *, rule_name: str) -> Any:
        if isinstance(value, Mapping) and set(value) == {"placeholder"}:
            token = value["placeholder"]
            if token not in self._values:
                raise ConfigurationError(
                    f"Rule {rule_name} references unknown placeholder {token}", rule_name
                )
            return self._values[token]
        if isinstance(value, str) and value in self._values:
            return self._values[value]
        if isinstance(value, list):
            return [self.resolve_value(item, rule_name=rule_name) for item in value]
        return value

    def resolve_node(self, node: ConditionNode, *, rule_name: str) -> ConditionNode:
        if isinstance(node, Condition):
            return node.model_copy(
                update={"value": self.resolve_value(node.value, rule_name=rule_name)}
            )
        children = [self.resolve_node(child, rule_name=rule_name) for child in node.children]
        return node.model_copy(update={"children": children})

    def resolve(self, rule: RuleDefinition) -> RuleDefinition:
        return rule.model_copy(
            update={
                "conditions": self.resolve_node(rule.conditions, rule_name=rule.rule_name),
                "event_params": {
                    key: self.resolve_value(value, rule_name=rule.rule_name)
                    for key, value in rule.event_params.items()
                },
            }
        )


class OptimizationRulesEngine:
    def __init__(
        self,
        load_rules: Callable[[], Sequence[RuleDefinition]],
        resolver: PlaceholderResolver,
    ) -> None:
        self._load_rules = load_rules
        self._resolver = resolver
        self._rules: Optional[List[RuleDefinition]] = None

    @classmethod
    def from_definitions(
        cls, rules: Sequence[RuleDefinition], config: OptimizationConfig
    ) -> "OptimizationRulesEngine":
        engine = cls(lambda: list(rules), PlaceholderResolver.from_config(config))
        engine.initialize()
        return engine

    def initialize(self) -> None:
        if self._rules is not None:
            return
        self._rules = self._load()

    def reload(self) -> None:
        self._rules = self._load()

    def _load(self) -> List[RuleDefinition]:
        enabled = [rule for rule in self._load_rules() if rule.enabled]
        ordered = sorted(enabled, key=lambda rule: (-rule.priority, rule.rule_name))
        resolved = [self._resolver.resolve(rule) for rule in ordered]
        logger.info("Loaded %d optimization rules", len(resolved))
        return resolved

    @property
    def rules(self) -> List[RuleDefinition]:
        self.initialize()
        return list(self._rules or [])

    @property
    def event_types(self) -> frozenset[str]:
        return frozenset(rule.event_type for rule in self.rules)

    def evaluate(self, facts: Mapping[str, Any]) -> RuleEvaluationResult:
        events = [
            RuleEvent(type=rule.event_type, params=dict(rule.event_params))
            for rule in self.rules
            if evaluate_condition(rule.conditions, facts)
        ]
        return RuleEvaluationResult(events=events, successful=bool(events))

    def has_event(self, facts: Mapping[str, Any], event_type: str) -> bool:
        return self.evaluate(facts).has_event(event_type)

    def missing_validation_events(self, result: RuleEvaluationResult) -> List[str]:
        """Required validation events that are loaded but did not fire."""
        loaded = self.event_types
        return [
            event_type
            for event_type in REQUIRED_VALIDATION_EVENTS
            if event_type in loaded and not result.has_event(event_type)
        ]

"""
FILE: deposit_advise/core/rules/conditions.py
Typed condition trees and operator evaluation for optimization rules.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from deposit_advise.core.config import ConfigurationError
from deposit_advise.core.money import Money, Percentage

Operator = Literal[
    "equal",
    "notEqual",
    "greaterThan",
    "greaterThanInclusive",
    "lessThan",
    "lessThanInclusive",
    "greaterThanPercent",
    "lessThanPercent",
    "betweenPercent",
    "greaterThanPounds",
    "lessThanPounds",
    "isEmpty",
    "in",
    "notIn",
]

_MISSING = object()


class Condition(BaseModel):
    model_config = ConfigDict(frozen=True)

    fact: str = Field(examples=["rateImprovement"])
    operator: Operator = Field(examples=["greaterThanInclusive"])
    value: Any = Field(default=None, examples=["MEANINGFUL_RATE_THRESHOLD"])


class AllConditions(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    children: List["ConditionNode"] = Field(alias="all")


class AnyConditions(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    children: List["ConditionNode"] = Field(alias="any")


ConditionNode = Union[Condition, AllConditions, AnyConditions]

AllConditions.model_rebuild()
AnyConditions.model_rebuild()


def parse_condition_tree(raw: Any) -> Union[AllConditions, AnyConditions]:
    """Parse a raw rule condition payload. A bare leaf is wrapped into ``all``."""
    node = _parse_node(raw)
    if isinstance(node, Condition):
        return AllConditions(children=[node])
    return node


def _parse_node(raw: Any) -> ConditionNode:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Rule condition must be an object, got {type(raw).__name__}")
    if "all" in raw:
        return AllConditions(children=[_parse_node(item) for item in _as_list(raw["all"])])
    if "any" in raw:
        return AnyConditions(children=[_parse_node(item) for item in _as_list(raw["any"])])
    try:
        return Condition(fact=raw["fact"], operator=raw["operator"], value=raw.get("value"))
    except (KeyError, ValueError) as exc:
        raise ConfigurationError(f"Malformed rule condition: {dict(raw)}") from exc


def _as_list(value: Any) -> list:
    if not isinstance(value, list):
        raise ConfigurationError("Composite rule conditions must hold a list")
    return value


def as_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, Percentage):
        return value.value
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


def _compare(fact_value: Any, expected: Any, check: Callable[[Decimal, Decimal], bool]) -> bool:
    left = as_decimal(fact_value)
    right = as_decimal(expected)
    if left is None or right is None:
        return False
    return check(left, right)


def _equal(fact_value: Any, expected: Any) -> bool:
    left = as_decimal(fact_value)
    right = as_decimal(expected)
    if left is not None and right is not None:
        return left == right
    return fact_value == expected


def _between_percent(fact_value: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple)) or len(expected) != 2:
        return False
    low = as_decimal(expected[0])
    high = as_decimal(expected[1])
    value = as_decimal(fact_value)
    if low is None or high is None or value is None:
        return False
    return low / 100 <= value <= high / 100


def _is_empty(fact_value: Any) -> bool:
    return fact_value is None or fact_value is _MISSING or fact_value in ("", [], {})


def _in(fact_value: Any, expected: Any) -> bool:
    if not isinstance(expected, (list, tuple, set, frozenset)):
        return False
    return any(_equal(fact_value, item) for item in expected)


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equal": _equal,
    "notEqual": lambda fact, expected: not _equal(fact, expected),
    "greaterThan": lambda fact, expected: _compare(fact, expected, lambda a, b: a > b),
    "greaterThanInclusive": lambda fact, expected: _compare(fact, expected, lambda a, b: a >= b),
    "lessThan": lambda fact, expected: _compare(fact, expected, lambda a, b: a < b),
    "lessThanInclusive": lambda fact, expected: _compare(fact, expected, lambda a, b: a <= b),
    "greaterThanPercent": lambda fact, expected: _compare(
        fact, expected, lambda a, b: a > b / 100
    ),
    "lessThanPercent": lambda fact, expected: _compare(fact, expected, lambda a, b: a < b / 100),
    "betweenPercent": _between_percent,
    "greaterThanPounds": lambda fact, expected: _compare(fact, expected, lambda a, b: a > b),
    "lessThanPounds": lambda fact, expected: _compare(fact, expected, lambda a, b: a < b),
    "in": _in,
    "notIn": lambda fact, expected: not _in(fact, expected),
}


def evaluate_condition(node: ConditionNode, facts: Mapping[str, Any]) -> bool:
    if isinstance(node, AllConditions):
        return all(evaluate_condition(child, facts) for child in node.children)
    if isinstance(node, AnyConditions):
        return any(evaluate_condition(child, facts) for child in node.children)

    fact_value = facts.get(node.fact, _MISSING)
    if node.operator == "isEmpty":
        expect_empty = node.value is None or bool(node.value)
        return _is_empty(fact_value) == expect_empty
    if fact_value is _MISSING:
        return False
    return OPERATORS[node.operator](fact_value, node.value)

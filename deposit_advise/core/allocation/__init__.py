from typing import Dict

from deposit_advise.core.allocation.base import (
    AllocationContext,
    AllocationDiagnostics,
    AllocationOutcome,
    AllocationStrategy,
    build_recommendation,
    ceilings_snapshot,
)
from deposit_advise.core.allocation.dynamic import (
    DynamicAllocationStrategy,
    annual_benefit_priority,
)
from deposit_advise.core.allocation.tracked import TrackedAllocationStrategy

DEFAULT_STRATEGY = DynamicAllocationStrategy.name

STRATEGIES: Dict[str, AllocationStrategy] = {
    DynamicAllocationStrategy.name: DynamicAllocationStrategy(),
    TrackedAllocationStrategy.name: TrackedAllocationStrategy(),
}


def get_strategy(name: str) -> AllocationStrategy:
    key = (name or "").strip().upper()
    if key not in STRATEGIES:
        raise ValueError(f"Unknown allocation strategy: {name}")
    return STRATEGIES[key]


__all__ = [
    "AllocationContext",
    "AllocationDiagnostics",
    "AllocationOutcome",
    "AllocationStrategy",
    "DEFAULT_STRATEGY",
    "DynamicAllocationStrategy",
    "STRATEGIES",
    "TrackedAllocationStrategy",
    "annual_benefit_priority",
    "build_recommendation",
    "ceilings_snapshot",
    "get_strategy",
]

from decimal import Decimal
from typing import Iterable, Optional

from deposit_advise.core.allocation import AllocationContext
from deposit_advise.core.compliance import ProtectionLimitCalculator
from deposit_advise.core.config import (
    ConfigRow,
    InstitutionPreference,
    OptimizationConfig,
    PreferredPlatform,
    RestrictedInstitution,
    build_optimization_config,
)
from deposit_advise.core.ledger import ExposureLedger
from deposit_advise.core.models import Account, AvailableProduct, PendingDeposit, Recommendation
from deposit_advise.core.money import Money
from deposit_advise.core.repository import PortfolioSnapshot
from deposit_advise.core.rules import (
    OptimizationRulesEngine,
    RuleDefinition,
    default_rule_definitions,
)


def account(
    account_id: str,
    frn: Optional[str],
    balance: str,
    rate: str,
    *,
    bank_name: Optional[str] = None,
    **overrides,
) -> Account:
    return Account(
        account_id=account_id,
        frn=frn,
        bank_name=bank_name or f"Bank {frn or account_id}",
        balance=Decimal(balance),
        rate=Decimal(rate),
        **overrides,
    )


def pending_deposit(
    deposit_id: str,
    frn: Optional[str],
    balance: str,
    *,
    rate: str = "0",
    status: str = "PENDING",
    bank_name: Optional[str] = None,
    **overrides,
) -> PendingDeposit:
    return PendingDeposit(
        deposit_id=deposit_id,
        frn=frn,
        bank_name=bank_name or f"Bank {frn or deposit_id}",
        balance=Decimal(balance),
        rate=Decimal(rate),
        status=status,
        **overrides,
    )


def product(
    product_id: str,
    frn: Optional[str],
    rate: str,
    *,
    bank_name: Optional[str] = None,
    **overrides,
) -> AvailableProduct:
    return AvailableProduct(
        product_id=product_id,
        frn=frn,
        bank_name=bank_name or f"Bank {frn or product_id}",
        rate=Decimal(rate),
        **overrides,
    )


def config_rows(**values: str) -> list[ConfigRow]:
    merged = {"fscs_standard_limit": "85000", **values}
    rows = []
    for key, value in merged.items():
        kind = "boolean" if value in {"true", "false"} else "number"
        if key == "preferred_platform":
            kind = "string"
        rows.append(ConfigRow(config_key=key, config_value=value, config_type=kind))
    return rows


def optimization_config(
    *,
    preferences: Iterable[InstitutionPreference] = (),
    restricted: Iterable[RestrictedInstitution] = (),
    platforms: Iterable[PreferredPlatform] = (),
    **values: str,
) -> OptimizationConfig:
    return build_optimization_config(
        rows=config_rows(**values),
        preferences=list(preferences),
        restricted_institutions=list(restricted),
        preferred_platforms=list(platforms),
    )


def rules_engine(
    config: OptimizationConfig, rules: Optional[Iterable[RuleDefinition]] = None
) -> OptimizationRulesEngine:
    definitions = default_rule_definitions() if rules is None else list(rules)
    return OptimizationRulesEngine.from_definitions(definitions, config)


def allocation_context(
    *,
    accounts: Iterable[Account],
    products: Iterable[AvailableProduct],
    pending: Iterable[PendingDeposit] = (),
    config: Optional[OptimizationConfig] = None,
    rules: Optional[OptimizationRulesEngine] = None,
) -> AllocationContext:
    config = config or optimization_config()
    accounts = list(accounts)
    pending = list(pending)
    return AllocationContext(
        config=config,
        accounts=accounts,
        pending_deposits=pending,
        products=list(products),
        rules=rules or rules_engine(config),
        ceilings=ProtectionLimitCalculator(config).effective_ceilings(
            accounts, pending, include_pending=True
        ),
    )


def snapshot(
    *,
    accounts: Iterable[Account] = (),
    products: Iterable[AvailableProduct] = (),
    pending: Iterable[PendingDeposit] = (),
    **values: str,
) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        accounts=list(accounts),
        pending_deposits=list(pending),
        products=list(products),
        config_rows=config_rows(**values),
    )


def replay_exposure(
    context: AllocationContext, recommendations: Iterable[Recommendation]
) -> list[dict[str, Money]]:
    """Cumulative per-FRN exposure after each identified recommendation."""
    ledger = ExposureLedger.from_holdings(
        accounts=context.accounts,
        pending_deposits=context.pending_deposits,
        standard_ceiling=context.standard_ceiling,
    )
    totals = {record.frn: record.total_exposure for record in ledger.summary()}
    history = []
    for item in recommendations:
        frn = item.target.frn
        if frn is None:
            continue
        totals[frn] = totals.get(frn, Money.zero()) + item.source.amount
        history.append(dict(totals))
    return history

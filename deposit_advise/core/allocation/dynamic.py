"""
FILE: deposit_advise/core/allocation/dynamic.py
Globally greedy allocation: each iteration picks the single best remaining
(account, product) pairing across the portfolio and reserves its headroom.
"""

import logging
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from deposit_advise.core.allocation.base import (
    AllocationContext,
    AllocationDiagnostics,
    AllocationOutcome,
    build_recommendation,
)
from deposit_advise.core.discovery import OpportunityDiscovery
from deposit_advise.core.ledger import ExposureLedger
from deposit_advise.core.models import (
    EASY_ACCESS_TIER,
    Account,
    AvailableProduct,
    BonusType,
    Priority,
    Recommendation,
)
from deposit_advise.core.money import Money, Percentage, annual_interest
from deposit_advise.core.packaging import apply_display_modes
from deposit_advise.core.products import prepare_catalogue
from deposit_advise.core.rules import RuleEvaluationResult
from deposit_advise.core.rules.facts import transfer_facts

logger = logging.getLogger(__name__)


class _Candidate(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    account: Account
    product: AvailableProduct
    transfer_amount: Money
    rate_improvement: Percentage
    effective_improvement: Percentage
    annual_benefit: Money
    bonus: Percentage
    bonus_type: BonusType
    rule_result: RuleEvaluationResult


def annual_benefit_priority(annual_benefit: Money) -> Priority:
    if annual_benefit.amount >= Decimal("10000"):
        return "URGENT"
    if annual_benefit.amount >= Decimal("5000"):
        return "HIGH"
    if annual_benefit.amount >= Decimal("1000"):
        return "MEDIUM"
    return "LOW"


class DynamicAllocationStrategy:
    name = "DYNAMIC"

    def allocate(self, context: AllocationContext) -> AllocationOutcome:
        config = context.config
        discovery = OpportunityDiscovery(config, context.rules)
        min_source = config.allocation.min_source_balance
        accounts = [
            account
            for account in discovery.funding_accounts(context.accounts)
            if account.balance >= min_source
        ]
        products = prepare_catalogue(
            context.products,
            config,
            liquidity_tier=EASY_ACCESS_TIER if config.allocation.easy_access_only else None,
        )
        ledger = context.new_ledger()
        diagnostics = AllocationDiagnostics()
        remaining: Dict[str, Money] = {account.account_id: account.balance for account in accounts}
        held_keys = frozenset(
            account.holding_key for account in context.accounts if account.is_active
        )
        platforms = self._preferred_platforms(context)

        recommendations: List[Recommendation] = []
        max_iterations = len(accounts) * len(products)
        while True:
            best = self._best_candidate(
                context, accounts, products, ledger, remaining, held_keys, platforms
            )
            if best is None:
                break
            if diagnostics.iterations >= max_iterations:
                diagnostics.warnings.append(
                    f"Stopped after the iteration safety limit of {max_iterations}"
                )
                logger.warning("Dynamic allocation hit iteration limit %d", max_iterations)
                break
            diagnostics.iterations += 1
            diagnostics.record_events(best.rule_result)
            if best.product.frn is not None:
                ledger.reserve(
                    best.product.institution,
                    best.transfer_amount,
                    firm_name=best.product.bank_name,
                    source_account_id=best.account.account_id,
                )
            remaining[best.account.account_id] = (
                remaining[best.account.account_id] - best.transfer_amount
            )
            recommendations.append(
                build_recommendation(
                    recommendation_id=f"dyn_{len(recommendations) + 1:04d}",
                    strategy=self.name,
                    account=best.account,
                    product=best.product,
                    amount=best.transfer_amount,
                    rate_improvement=best.rate_improvement,
                    annual_benefit=best.annual_benefit,
                    priority=annual_benefit_priority(best.annual_benefit),
                    ledger=ledger,
                    ceiling=context.standard_ceiling,
                    bonus=best.bonus,
                    bonus_type=best.bonus_type,
                    rule_events=best.rule_result.event_types(),
                )
            )

        logger.info(
            "Dynamic allocation produced %d recommendations in %d iterations",
            len(recommendations),
            diagnostics.iterations,
        )
        packaged = apply_display_modes(
            recommendations, ceiling=context.standard_ceiling, max_per_account=None
        )
        return AllocationOutcome(
            recommendations=packaged,
            missing_frn_alerts=discovery.detect_missing_frn(context.accounts, context.products),
            diagnostics=diagnostics,
        )

    def _preferred_platforms(self, context: AllocationContext) -> FrozenSet[str]:
        names = [platform.platform_name for platform in context.config.preferred_platforms]
        if names:
            return frozenset(names)
        return frozenset({context.config.allocation.preferred_platform})

    def _best_candidate(
        self,
        context: AllocationContext,
        accounts: Sequence[Account],
        products: Sequence[AvailableProduct],
        ledger: ExposureLedger,
        remaining: Dict[str, Money],
        held_keys: FrozenSet[str],
        platforms: FrozenSet[str],
    ) -> Optional[_Candidate]:
        config = context.config
        min_move = config.risk.min_move_amount
        best: Optional[_Candidate] = None
        for account in accounts:
            balance = remaining[account.account_id]
            if balance < min_move:
                continue
            for product in products:
                if product.frn is not None and product.frn == account.frn:
                    continue
                if product.frn is None:
                    if not config.allocation.allow_no_frn_products:
                        continue
                    transfer = balance
                else:
                    headroom = ledger.available_headroom(product.institution)
                    if headroom < min_move:
                        continue
                    transfer = Money.min_of(balance, headroom)
                if product.max_deposit is not None:
                    transfer = Money.min_of(transfer, product.max_deposit)
                if transfer < min_move:
                    continue
                if product.min_deposit is not None and transfer < product.min_deposit:
                    continue
                if not config.compliance.allow_sharia_banks and config.is_restricted(product.frn):
                    continue

                improvement = product.rate - account.rate
                if improvement.value <= 0:
                    continue
                bonus_type: BonusType = "NONE"
                bonus = Percentage.of(0)
                if product.holding_key in held_keys:
                    bonus_type = "EXISTING_ACCOUNT"
                    bonus = config.allocation.existing_account_bonus
                elif product.platform in platforms:
                    bonus_type = "PREFERRED_PLATFORM"
                    bonus = config.allocation.preferred_platform_bonus
                effective = improvement + bonus

                benefit = annual_interest(transfer, improvement)
                if benefit < config.risk.min_rebalancing_benefit:
                    continue

                result = context.rules.evaluate(
                    transfer_facts(
                        account=account,
                        product=product,
                        transfer_amount=transfer,
                        rate_improvement=improvement,
                        annual_benefit=benefit,
                        within_ceiling=product.frn is not None,
                        allow_sharia_banks=config.compliance.allow_sharia_banks,
                        is_existing_account=bonus_type == "EXISTING_ACCOUNT",
                        is_preferred_platform=bonus_type == "PREFERRED_PLATFORM",
                        effective_rate_improvement=effective,
                    )
                )
                if best is None or effective > best.effective_improvement:
                    best = _Candidate(
                        account=account,
                        product=product,
                        transfer_amount=transfer,
                        rate_improvement=improvement,
                        effective_improvement=effective,
                        annual_benefit=benefit.rounded(),
                        bonus=bonus,
                        bonus_type=bonus_type,
                        rule_result=result,
                    )
        return best

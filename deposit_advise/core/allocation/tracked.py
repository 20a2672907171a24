"""
FILE: deposit_advise/core/allocation/tracked.py
Single-pass allocation over the discovery list with a cumulative exposure
ledger. Transfers are shrunk to fit remaining headroom or dropped, and
unidentified targets are reported as missing-FRN alerts instead.
"""

import logging
from typing import Dict, List

from deposit_advise.core.allocation.base import (
    AllocationContext,
    AllocationDiagnostics,
    AllocationOutcome,
    build_recommendation,
)
from deposit_advise.core.discovery import OpportunityDiscovery
from deposit_advise.core.models import Recommendation
from deposit_advise.core.money import annual_interest
from deposit_advise.core.packaging import PRIORITY_RANK, apply_display_modes, benefit_tier_priority
from deposit_advise.core.rules import HIGH_PRIORITY_EVENT
from deposit_advise.core.rules.facts import transfer_facts

logger = logging.getLogger(__name__)


class TrackedAllocationStrategy:
    name = "TRACKED"

    def allocate(self, context: AllocationContext) -> AllocationOutcome:
        config = context.config
        discovery = OpportunityDiscovery(config, context.rules)
        opportunities = discovery.discover(context.accounts, context.products)
        alerts = discovery.detect_missing_frn(context.accounts, context.products)

        ledger = context.new_ledger()
        diagnostics = AllocationDiagnostics()
        cap = config.risk.max_recommendations_per_account
        min_move = config.risk.min_move_amount
        counts: Dict[str, int] = {}
        recommendations: List[Recommendation] = []

        for opportunity in opportunities:
            diagnostics.iterations += 1
            account, product = opportunity.account, opportunity.product
            if product.frn is None:
                diagnostics.record_drop("missing_frn")
                continue
            if not opportunity.is_chunk and counts.get(account.account_id, 0) >= cap:
                diagnostics.record_drop("account_cap")
                continue

            amount = ledger.max_safe_transfer(product.institution, opportunity.transfer_amount)
            if amount < min_move:
                diagnostics.record_drop("insufficient_headroom")
                continue
            benefit = opportunity.annual_benefit
            if amount != opportunity.transfer_amount:
                benefit = annual_interest(amount, opportunity.rate_improvement)
                logger.debug(
                    "Shrunk %s -> %s from %s to %s",
                    account.account_id,
                    product.product_id,
                    opportunity.transfer_amount.amount,
                    amount.amount,
                )

            result = context.rules.evaluate(
                transfer_facts(
                    account=account,
                    product=product,
                    transfer_amount=amount,
                    rate_improvement=opportunity.rate_improvement,
                    annual_benefit=benefit,
                    within_ceiling=True,
                    allow_sharia_banks=config.compliance.allow_sharia_banks,
                )
            )
            diagnostics.record_events(result)
            missing = context.rules.missing_validation_events(result)
            if missing:
                diagnostics.record_drop("rule_validation")
                logger.debug(
                    "Dropped %s -> %s: missing %s",
                    account.account_id,
                    product.product_id,
                    ", ".join(missing),
                )
                continue

            ledger.reserve(
                product.institution,
                amount,
                firm_name=product.bank_name,
                source_account_id=account.account_id,
            )
            counts[account.account_id] = counts.get(account.account_id, 0) + 1

            priority = benefit_tier_priority(benefit)
            below_high = PRIORITY_RANK[priority] < PRIORITY_RANK["HIGH"]
            if below_high and result.has_event(HIGH_PRIORITY_EVENT):
                priority = "HIGH"
            recommendations.append(
                build_recommendation(
                    recommendation_id=f"trk_{len(recommendations) + 1:04d}",
                    strategy=self.name,
                    account=account,
                    product=product,
                    amount=amount,
                    rate_improvement=opportunity.rate_improvement,
                    annual_benefit=benefit.rounded(),
                    priority=priority,
                    ledger=ledger,
                    ceiling=context.standard_ceiling,
                    rule_events=result.event_types(),
                    is_chunk=opportunity.is_chunk,
                )
            )

        logger.info(
            "Tracked allocation kept %d of %d opportunities",
            len(recommendations),
            len(opportunities),
        )
        packaged = apply_display_modes(
            recommendations, ceiling=context.standard_ceiling, max_per_account=cap
        )
        return AllocationOutcome(
            recommendations=packaged, missing_frn_alerts=alerts, diagnostics=diagnostics
        )

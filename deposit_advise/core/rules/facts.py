"""
FILE: deposit_advise/core/rules/facts.py
Fact-set builders shared by discovery, allocation, and packaging.
"""

from typing import Optional

from deposit_advise.core.models import Account, AvailableProduct
from deposit_advise.core.money import Money, Percentage
from deposit_advise.core.rules.engine import RuleFacts


def transfer_facts(
    *,
    account: Account,
    product: AvailableProduct,
    transfer_amount: Money,
    rate_improvement: Percentage,
    annual_benefit: Money,
    within_ceiling: bool,
    allow_sharia_banks: bool = True,
    is_existing_account: bool = False,
    is_preferred_platform: bool = False,
    effective_rate_improvement: Optional[Percentage] = None,
) -> RuleFacts:
    effective = effective_rate_improvement or rate_improvement
    return {
        "rateImprovement": rate_improvement.value,
        "transferAmount": transfer_amount.amount,
        "annualBenefit": annual_benefit.amount,
        "currentRate": account.rate.value,
        "targetRate": product.rate.value,
        "productRate": product.rate.value,
        "sourceInstitutionFRN": account.frn or "",
        "targetInstitutionFRN": product.frn or "",
        "targetFRN": product.frn or "",
        "productFRN": product.frn or "",
        "accountBalance": account.balance.amount,
        "withinProtectionCeiling": within_ceiling,
        "shariaBankAllowed": allow_sharia_banks,
        "isExistingAccount": is_existing_account,
        "isPreferredPlatform": is_preferred_platform,
        "marginalBenefit": rate_improvement.value,
        "effectiveMarginalBenefit": effective.value,
    }


def chunking_facts(*, account: Account, ceiling: Money) -> RuleFacts:
    return {
        "accountBalance": account.balance.amount,
        "currentRate": account.rate.value,
        "sourceInstitutionFRN": account.frn or "",
        "protectionCeiling": ceiling.amount,
        "exceedsProtectionCeiling": account.balance > ceiling,
    }

"""
FILE: deposit_advise/core/discovery.py
Opportunity discovery. Enumerates candidate fund movements without applying
protection ceilings; the allocation strategies apply those afterwards.
"""

import logging
import math
from typing import Dict, List, Sequence

from deposit_advise.core.config import OptimizationConfig
from deposit_advise.core.models import (
    EASY_ACCESS_TIER,
    Account,
    AffectedAccount,
    AvailableProduct,
    MissingFRNAlert,
    Opportunity,
)
from deposit_advise.core.money import Money, annual_interest
from deposit_advise.core.products import prepare_catalogue
from deposit_advise.core.rules import CHUNK_LARGE_ACCOUNT_EVENT, OptimizationRulesEngine
from deposit_advise.core.rules.facts import chunking_facts

logger = logging.getLogger(__name__)

MISSING_FRN_ACTION = "Add FRN to enable protection-compliant recommendations"


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def suggested_override_sql(bank_name: str) -> str:
    return (
        "INSERT INTO frn_manual_overrides (scraped_name, frn, firm_name, notes) VALUES ("
        f"{_sql_literal(bank_name)}, '[LOOKUP_FRN_HERE]', {_sql_literal(bank_name)}, "
        "'Added for recommendation engine - verify FRN is correct');"
    )


class OpportunityDiscovery:
    def __init__(self, config: OptimizationConfig, rules_engine: OptimizationRulesEngine) -> None:
        self._config = config
        self._rules = rules_engine

    @property
    def _ceiling(self) -> Money:
        return self._config.compliance.standard_limit

    def funding_accounts(self, accounts: Sequence[Account]) -> List[Account]:
        easy_only = self._config.allocation.easy_access_only
        return [
            account
            for account in accounts
            if account.is_active and (account.is_easy_access or not easy_only)
        ]

    def candidate_products(
        self, accounts: Sequence[Account], products: Sequence[AvailableProduct]
    ) -> List[AvailableProduct]:
        if not accounts:
            return []
        threshold = self._config.risk.meaningful_rate_threshold
        floor = min(account.rate for account in accounts) + threshold
        return prepare_catalogue(
            products,
            self._config,
            liquidity_tier=EASY_ACCESS_TIER if self._config.allocation.easy_access_only else None,
            minimum_rate=floor,
            apply_platform_preferences=True,
        )

    def discover(
        self, accounts: Sequence[Account], products: Sequence[AvailableProduct]
    ) -> List[Opportunity]:
        funding = self.funding_accounts(accounts)
        catalogue = self.candidate_products(funding, products)
        min_move = self._config.risk.min_move_amount

        ranked: List[tuple[int, int, Opportunity]] = []
        for account_index, account in enumerate(funding):
            if account.balance < min_move:
                continue
            if account.balance > self._ceiling and self._should_chunk(account):
                opportunities = self._chunked_opportunities(account, catalogue)
            else:
                opportunities = self._single_opportunities(account, catalogue)
            for product_index, opportunity in opportunities:
                ranked.append((account_index, product_index, opportunity))

        ranked.sort(
            key=lambda item: (
                -item[2].rate_improvement.value,
                -item[2].annual_benefit.amount,
                item[0],
                item[1],
            )
        )
        logger.info(
            "Discovered %d opportunities across %d funding accounts", len(ranked), len(funding)
        )
        return [opportunity for _, _, opportunity in ranked]

    def _should_chunk(self, account: Account) -> bool:
        if CHUNK_LARGE_ACCOUNT_EVENT not in self._rules.event_types:
            return True
        return self._rules.has_event(
            chunking_facts(account=account, ceiling=self._ceiling), CHUNK_LARGE_ACCOUNT_EVENT
        )

    def _passes_product_checks(
        self, account: Account, product: AvailableProduct, amount: Money
    ) -> bool:
        compliance = self._config.compliance
        if not compliance.allow_sharia_banks and self._config.is_restricted(product.frn):
            return False
        if product.min_deposit is not None and amount < product.min_deposit:
            return False
        return True

    def _single_opportunities(
        self, account: Account, catalogue: Sequence[AvailableProduct]
    ) -> List[tuple[int, Opportunity]]:
        risk = self._config.risk
        found: List[tuple[int, Opportunity]] = []
        for index, product in enumerate(catalogue):
            if product.frn is not None and product.frn == account.frn:
                continue
            if product.rate <= account.rate:
                continue
            if not self._passes_product_checks(account, product, account.balance):
                continue
            amount = Money.min_of(
                account.balance * risk.partial_transfer_fraction,
                risk.rebalancing_max_transfer_size,
            )
            if product.max_deposit is not None:
                amount = Money.min_of(amount, product.max_deposit)
            improvement = product.rate - account.rate
            benefit = annual_interest(amount, improvement)
            if benefit < risk.min_rebalancing_benefit:
                continue
            found.append(
                (
                    index,
                    Opportunity(
                        account=account,
                        product=product,
                        transfer_amount=amount,
                        rate_improvement=improvement,
                        annual_benefit=benefit,
                    ),
                )
            )
        return found

    def _chunked_opportunities(
        self, account: Account, catalogue: Sequence[AvailableProduct]
    ) -> List[tuple[int, Opportunity]]:
        risk = self._config.risk
        targets = [
            (index, product)
            for index, product in enumerate(catalogue)
            if product.frn is not None
            and product.frn != account.frn
            and product.rate > account.rate
        ]
        if not targets:
            return []

        chunk_count = math.ceil(account.balance.amount / self._ceiling.amount)
        processed = Money.zero(account.balance.currency)
        found: List[tuple[int, Opportunity]] = []
        for chunk_index in range(chunk_count):
            index, product = targets[chunk_index % len(targets)]
            chunk = Money.min_of(self._ceiling, account.balance - processed)
            if chunk < risk.min_move_amount:
                break
            if not self._passes_product_checks(account, product, chunk):
                continue
            improvement = product.rate - account.rate
            benefit = annual_interest(chunk, improvement)
            if benefit < risk.min_rebalancing_benefit:
                continue
            found.append(
                (
                    index,
                    Opportunity(
                        account=account,
                        product=product,
                        transfer_amount=chunk,
                        rate_improvement=improvement,
                        annual_benefit=benefit,
                        is_chunk=True,
                        chunk_index=chunk_index,
                        chunk_count=chunk_count,
                    ),
                )
            )
            processed = processed + chunk
            if processed >= account.balance:
                break
        logger.debug(
            "Chunked %s into %d opportunities over %d institutions",
            account.account_id,
            len(found),
            len(targets),
        )
        return found

    def detect_missing_frn(
        self, accounts: Sequence[Account], products: Sequence[AvailableProduct]
    ) -> List[MissingFRNAlert]:
        funding = self.funding_accounts(accounts)
        if not funding:
            return []
        threshold = self._config.risk.meaningful_rate_threshold
        floor = min(account.rate for account in funding) + threshold

        easy_only = self._config.allocation.easy_access_only
        best_by_bank: Dict[str, AvailableProduct] = {}
        for product in products:
            if product.frn is not None or product.rate <= floor:
                continue
            if easy_only and product.liquidity_tier != EASY_ACCESS_TIER:
                continue
            current = best_by_bank.get(product.bank_name)
            if current is None or product.rate > current.rate:
                best_by_bank[product.bank_name] = product

        alerts: List[MissingFRNAlert] = []
        for bank_name, product in best_by_bank.items():
            benefiting = [account for account in funding if product.rate > account.rate + threshold]
            if not benefiting:
                continue
            smallest = min(benefiting, key=lambda account: account.balance.amount)
            amount = Money.min_of(
                smallest.balance * self._config.risk.partial_transfer_fraction, self._ceiling
            )
            alerts.append(
                MissingFRNAlert(
                    bank_name=bank_name,
                    platform=product.platform,
                    product_id=product.product_id,
                    rate=product.rate,
                    potential_benefit=annual_interest(
                        amount, product.rate - smallest.rate
                    ).rounded(),
                    affected_accounts=[
                        AffectedAccount(
                            account_id=account.account_id,
                            bank_name=account.bank_name,
                            balance=account.balance,
                            current_rate=account.rate,
                        )
                        for account in benefiting
                    ],
                    action_required=MISSING_FRN_ACTION,
                    suggested_override_sql=suggested_override_sql(bank_name),
                )
            )
        alerts.sort(key=lambda alert: -alert.potential_benefit.amount)
        return alerts


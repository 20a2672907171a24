"""
FILE: deposit_advise/core/service.py
Run orchestration: loads configuration, rules, and holdings from a portfolio
store in dependency order, runs one allocation strategy against a fresh
ledger, and packages the result with run metadata.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from deposit_advise.core.allocation import (
    DEFAULT_STRATEGY,
    AllocationContext,
    ceilings_snapshot,
    get_strategy,
)
from deposit_advise.core.canonical import hash_canonical_payload
from deposit_advise.core.compliance import ComplianceReport, ProtectionLimitCalculator
from deposit_advise.core.config import (
    CachedConfigLoader,
    ConfigurationError,
    OptimizationConfig,
    build_optimization_config,
)
from deposit_advise.core.models import OptimizationMetadata, OptimizationResult
from deposit_advise.core.packaging import prioritize, summarize_benefits
from deposit_advise.core.repository import PortfolioStore
from deposit_advise.core.rules import (
    OptimizationRulesEngine,
    PlaceholderResolver,
    RuleDefinition,
    default_rule_definitions,
)

logger = logging.getLogger(__name__)


class RecommendationService:
    def __init__(
        self,
        *,
        store: PortfolioStore,
        default_strategy: str = DEFAULT_STRATEGY,
        use_default_rules: bool = True,
        config_ttl_seconds: float = 300.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._default_strategy = default_strategy
        self._use_default_rules = use_default_rules
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._config_loader = CachedConfigLoader(self._build_config, ttl_seconds=config_ttl_seconds)

    def _build_config(self) -> OptimizationConfig:
        return build_optimization_config(
            rows=self._store.load_config_rows(),
            preferences=self._store.load_institution_preferences(),
            restricted_institutions=self._store.load_restricted_institutions(),
            preferred_platforms=self._store.load_preferred_platforms(),
            excluded_products=self._store.load_excluded_products(),
        )

    def load_config(self) -> OptimizationConfig:
        return self._config_loader.load()

    def hot_reload(self) -> OptimizationConfig:
        config = self._config_loader.hot_reload()
        logger.info("Configuration reloaded")
        return config

    def _rule_definitions(self) -> List[RuleDefinition]:
        rows = self._store.load_rule_rows()
        if rows:
            return [RuleDefinition.from_row(row) for row in rows]
        if self._use_default_rules:
            return default_rule_definitions()
        raise ConfigurationError("No optimization rules stored and built-in rules are disabled")

    def build_rules_engine(self, config: OptimizationConfig) -> OptimizationRulesEngine:
        engine = OptimizationRulesEngine(
            self._rule_definitions, PlaceholderResolver.from_config(config)
        )
        engine.initialize()
        return engine

    def load_context(self) -> AllocationContext:
        config = self.load_config()
        rules = self.build_rules_engine(config)
        accounts = self._store.load_accounts()
        pending = self._store.load_pending_deposits()
        products = self._store.load_products()
        ceilings = ProtectionLimitCalculator(config).effective_ceilings(
            accounts, pending, include_pending=True
        )
        return AllocationContext(
            config=config,
            accounts=accounts,
            pending_deposits=pending,
            products=products,
            rules=rules,
            ceilings=ceilings,
        )

    def generate(
        self,
        strategy: Optional[str] = None,
        *,
        persist: bool = False,
        prioritized: bool = False,
    ) -> OptimizationResult:
        """Run one allocation strategy end to end.

        Raises ``ConfigurationError`` for missing or malformed configuration,
        ``DataStoreError`` for store failures, and ``ValueError`` for an
        unknown strategy name. No partial result is returned.
        """
        allocator = get_strategy(strategy or self._default_strategy)
        started = time.perf_counter()
        generated_at = self._clock()
        context = self.load_context()
        outcome = allocator.allocate(context)
        recommendations = outcome.recommendations
        if prioritized:
            recommendations = prioritize(recommendations, context.rules)

        config_snapshot = {
            "strategy": allocator.name,
            "standard_limit": str(context.standard_ceiling.amount),
            "min_move_amount": str(context.config.risk.min_move_amount.amount),
            "min_rebalancing_benefit": str(context.config.risk.min_rebalancing_benefit.amount),
            "max_recommendations_per_account": context.config.risk.max_recommendations_per_account,
            "include_pending_deposits": context.config.compliance.include_pending_deposits,
            "ceilings": ceilings_snapshot(context.ceilings),
        }
        run_hash = hash_canonical_payload(
            {
                "config": config_snapshot,
                "accounts": [item.model_dump(mode="json") for item in context.accounts],
                "pending_deposits": [
                    item.model_dump(mode="json") for item in context.pending_deposits
                ],
                "products": [item.model_dump(mode="json") for item in context.products],
                "rules": [rule.rule_name for rule in context.rules.rules],
            }
        )
        portfolio_report = ProtectionLimitCalculator(context.config).generate_report(
            context.accounts,
            context.pending_deposits,
            include_pending=True,
            generated_at=generated_at,
        )
        elapsed_ms = Decimal(str(round((time.perf_counter() - started) * 1000, 3)))

        result = OptimizationResult(
            recommendations=recommendations,
            missing_frn_alerts=outcome.missing_frn_alerts,
            benefits=summarize_benefits(
                recommendations, compliance_report=portfolio_report
            ),
            metadata=OptimizationMetadata(
                strategy=allocator.name,
                run_id=f"run_{uuid.uuid4().hex[:12]}",
                generated_at=generated_at,
                execution_time_ms=elapsed_ms,
                accounts_processed=len(context.accounts),
                products_evaluated=len(context.products),
                rules_loaded=len(context.rules.rules),
                iterations=outcome.diagnostics.iterations,
                rule_event_counts=dict(sorted(outcome.diagnostics.rule_event_counts.items())),
                config_snapshot=config_snapshot,
                run_hash=run_hash,
            ),
        )
        logger.info(
            "Run %s (%s) produced %d recommendations and %d missing-FRN alerts",
            result.metadata.run_id,
            allocator.name,
            len(result.recommendations),
            len(result.missing_frn_alerts),
        )
        if persist:
            self.save(result)
        return result

    def save(self, result: OptimizationResult) -> int:
        saved = self._store.save_recommendations(
            run_id=result.metadata.run_id,
            generated_at=result.metadata.generated_at,
            recommendations=result.recommendations,
        )
        logger.info("Saved %d recommendations for run %s", saved, result.metadata.run_id)
        return saved

    def compliance_report(self, *, include_pending: Optional[bool] = None) -> ComplianceReport:
        config = self.load_config()
        accounts = self._store.load_accounts()
        if include_pending is None:
            include_pending = config.compliance.include_pending_deposits
        pending = self._store.load_pending_deposits() if include_pending else []
        return ProtectionLimitCalculator(config).generate_report(
            accounts,
            pending,
            include_pending=include_pending,
            generated_at=self._clock(),
        )

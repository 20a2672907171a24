import json
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from threading import Lock
from typing import Any, Iterator, List, Optional, Sequence

from deposit_advise.core.config import (
    ConfigRow,
    ExcludedProduct,
    InstitutionPreference,
    PreferredPlatform,
    RestrictedInstitution,
)
from deposit_advise.core.models import Account, AvailableProduct, PendingDeposit, Recommendation
from deposit_advise.core.money import Money
from deposit_advise.core.repository import (
    DataStoreError,
    PortfolioSnapshot,
    PortfolioStore,
    StoredRecommendation,
)
from deposit_advise.core.rules import RuleRow


class SqlitePortfolioStore(PortfolioStore):
    def __init__(self, *, database_path: str) -> None:
        self._lock = Lock()
        self._database_path = database_path
        self._init_db()

    def load_accounts(self) -> List[Account]:
        query = """
            SELECT
                id, bank, frn, account_type, sub_type, platform, account_name,
                balance, aer, liquidity_tier, is_joint_account, num_account_holders,
                can_withdraw_immediately, is_active, is_isa
            FROM my_deposits
            ORDER BY id
        """
        return [
            Account(
                account_id=row["id"],
                bank_name=row["bank"],
                frn=row["frn"],
                account_type=row["account_type"],
                sub_type=row["sub_type"],
                platform=row["platform"],
                account_name=row["account_name"],
                balance=Decimal(row["balance"]),
                rate=Decimal(row["aer"]),
                liquidity_tier=row["liquidity_tier"],
                is_joint_account=bool(row["is_joint_account"]),
                num_account_holders=row["num_account_holders"],
                can_withdraw_immediately=bool(row["can_withdraw_immediately"]),
                is_active=bool(row["is_active"]),
                is_isa=bool(row["is_isa"]),
            )
            for row in self._fetch(query)
        ]

    def load_pending_deposits(self) -> List[PendingDeposit]:
        query = """
            SELECT
                id, bank, frn, account_type, sub_type, platform, balance, aer,
                liquidity_tier, is_joint_account, status, expected_funding_date,
                source_account_id
            FROM my_pending_deposits
            ORDER BY id
        """
        return [
            PendingDeposit(
                deposit_id=row["id"],
                bank_name=row["bank"],
                frn=row["frn"],
                account_type=row["account_type"],
                sub_type=row["sub_type"],
                platform=row["platform"],
                balance=Decimal(row["balance"]),
                rate=Decimal(row["aer"]),
                liquidity_tier=row["liquidity_tier"],
                is_joint_account=bool(row["is_joint_account"]),
                status=row["status"],
                expected_funding_date=row["expected_funding_date"],
                source_account_id=row["source_account_id"],
            )
            for row in self._fetch(query)
        ]

    def load_products(self) -> List[AvailableProduct]:
        query = """
            SELECT
                product_id, bank_name, frn, platform, account_type, liquidity_tier,
                aer_rate, min_deposit, max_deposit, confidence_score, source
            FROM available_products
            ORDER BY product_id
        """
        return [
            AvailableProduct(
                product_id=row["product_id"],
                bank_name=row["bank_name"],
                frn=row["frn"],
                platform=row["platform"],
                account_type=row["account_type"],
                liquidity_tier=row["liquidity_tier"],
                rate=Decimal(row["aer_rate"]),
                min_deposit=_optional_money(row["min_deposit"]),
                max_deposit=_optional_money(row["max_deposit"]),
                confidence_score=Decimal(row["confidence_score"]),
                source=row["source"],
            )
            for row in self._fetch(query)
        ]

    def load_config_rows(self) -> List[ConfigRow]:
        query = """
            SELECT config_key, config_value, config_type, category
            FROM compliance_config
            ORDER BY config_key
        """
        return [ConfigRow(**dict(row)) for row in self._fetch(query)]

    def load_institution_preferences(self) -> List[InstitutionPreference]:
        query = """
            SELECT
                frn, bank_name, personal_limit, easy_access_required_above_fscs,
                trust_level, risk_notes
            FROM institution_preferences
            ORDER BY frn
        """
        return [
            InstitutionPreference(
                frn=row["frn"],
                bank_name=row["bank_name"],
                personal_limit=Decimal(row["personal_limit"]),
                easy_access_required_above_fscs=bool(row["easy_access_required_above_fscs"]),
                trust_level=row["trust_level"],
                risk_notes=row["risk_notes"],
            )
            for row in self._fetch(query)
        ]

    def load_restricted_institutions(self) -> List[RestrictedInstitution]:
        query = "SELECT frn, bank_name, is_sharia_compliant FROM sharia_banks ORDER BY frn"
        return [
            RestrictedInstitution(
                frn=row["frn"],
                bank_name=row["bank_name"],
                is_sharia_compliant=bool(row["is_sharia_compliant"]),
            )
            for row in self._fetch(query)
        ]

    def load_preferred_platforms(self) -> List[PreferredPlatform]:
        query = """
            SELECT platform_name, priority, rate_tolerance, is_active
            FROM preferred_platforms
            ORDER BY priority, platform_name
        """
        return [
            PreferredPlatform(
                platform_name=row["platform_name"],
                priority=row["priority"],
                rate_tolerance=Decimal(row["rate_tolerance"]),
                is_active=bool(row["is_active"]),
            )
            for row in self._fetch(query)
        ]

    def load_excluded_products(self) -> List[ExcludedProduct]:
        query = "SELECT frn, bank_name, account_type, reason FROM excluded_products ORDER BY id"
        return [ExcludedProduct(**dict(row)) for row in self._fetch(query)]

    def load_rule_rows(self) -> List[RuleRow]:
        query = """
            SELECT
                rule_name, rule_type, conditions, event_type, event_params,
                priority, enabled, description
            FROM optimization_rules
            ORDER BY rule_name
        """
        return [
            RuleRow(
                rule_name=row["rule_name"],
                rule_type=row["rule_type"],
                conditions_json=row["conditions"],
                event_type=row["event_type"],
                event_params_json=row["event_params"],
                priority=row["priority"],
                enabled=bool(row["enabled"]),
                description=row["description"],
            )
            for row in self._fetch(query)
        ]

    def save_recommendations(
        self,
        *,
        run_id: str,
        generated_at: datetime,
        recommendations: Sequence[Recommendation],
    ) -> int:
        query = """
            INSERT INTO optimization_recommendations (
                run_id,
                recommendation_id,
                source_account_id,
                source_bank,
                source_frn,
                source_amount,
                source_rate,
                target_bank,
                target_frn,
                target_product_id,
                target_rate,
                target_platform,
                marginal_benefit,
                annual_benefit,
                convenience_bonus,
                bonus_type,
                recommendation_reason,
                priority,
                confidence_score,
                status,
                created_at,
                metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(run_id, recommendation_id) DO UPDATE SET
                status=excluded.status,
                created_at=excluded.created_at,
                metadata=excluded.metadata
        """
        rows = [
            (
                run_id,
                item.recommendation_id,
                item.source.account_id,
                item.source.bank_name,
                item.source.frn,
                str(item.source.amount.amount),
                str(item.source.current_rate.value),
                item.target.bank_name,
                item.target.frn,
                item.target.product_id,
                str(item.target.target_rate.value),
                item.target.platform,
                str(item.benefits.rate_improvement.value),
                str(item.benefits.annual_benefit.amount),
                str(item.benefits.convenience_bonus.value),
                item.benefits.bonus_type,
                item.recommendation_reason,
                item.priority,
                str(item.confidence),
                "PENDING",
                generated_at.isoformat(),
                item.model_dump_json(),
            )
            for item in recommendations
        ]
        with self._lock, self._guard(), closing(self._connect()) as connection:
            connection.executemany(query, rows)
            connection.commit()
        return len(rows)

    def list_recommendations(self, *, run_id: Optional[str] = None) -> List[StoredRecommendation]:
        query = """
            SELECT run_id, created_at, status, metadata
            FROM optimization_recommendations
        """
        params: tuple[Any, ...] = ()
        if run_id is not None:
            query += " WHERE run_id = ?"
            params = (run_id,)
        query += " ORDER BY created_at, run_id, recommendation_id"
        return [
            StoredRecommendation(
                run_id=row["run_id"],
                generated_at=datetime.fromisoformat(row["created_at"]),
                status=row["status"],
                recommendation=Recommendation.model_validate_json(row["metadata"]),
            )
            for row in self._fetch(query, params)
        ]

    def save_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        """Replace every input table with the contents of ``snapshot``."""
        with self._lock, self._guard(), closing(self._connect()) as connection:
            for table in (
                "my_deposits",
                "my_pending_deposits",
                "available_products",
                "compliance_config",
                "institution_preferences",
                "sharia_banks",
                "preferred_platforms",
                "excluded_products",
                "optimization_rules",
            ):
                connection.execute(f"DELETE FROM {table}")
            connection.executemany(
                """
                INSERT INTO my_deposits (
                    id, bank, frn, account_type, sub_type, platform, account_name,
                    balance, aer, liquidity_tier, is_joint_account, num_account_holders,
                    can_withdraw_immediately, is_active, is_isa
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        item.account_id,
                        item.bank_name,
                        item.frn,
                        item.account_type,
                        item.sub_type,
                        item.platform,
                        item.account_name,
                        str(item.balance.amount),
                        str(item.rate.value),
                        item.liquidity_tier,
                        int(item.is_joint_account),
                        item.num_account_holders,
                        int(item.can_withdraw_immediately),
                        int(item.is_active),
                        int(item.is_isa),
                    )
                    for item in snapshot.accounts
                ],
            )
            connection.executemany(
                """
                INSERT INTO my_pending_deposits (
                    id, bank, frn, account_type, sub_type, platform, balance, aer,
                    liquidity_tier, is_joint_account, status, expected_funding_date,
                    source_account_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        item.deposit_id,
                        item.bank_name,
                        item.frn,
                        item.account_type,
                        item.sub_type,
                        item.platform,
                        str(item.balance.amount),
                        str(item.rate.value),
                        item.liquidity_tier,
                        int(item.is_joint_account),
                        item.status,
                        (
                            item.expected_funding_date.isoformat()
                            if item.expected_funding_date
                            else None
                        ),
                        item.source_account_id,
                    )
                    for item in snapshot.pending_deposits
                ],
            )
            connection.executemany(
                """
                INSERT INTO available_products (
                    product_id, bank_name, frn, platform, account_type, liquidity_tier,
                    aer_rate, min_deposit, max_deposit, confidence_score, source
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        item.product_id,
                        item.bank_name,
                        item.frn,
                        item.platform,
                        item.account_type,
                        item.liquidity_tier,
                        str(item.rate.value),
                        str(item.min_deposit.amount) if item.min_deposit else None,
                        str(item.max_deposit.amount) if item.max_deposit else None,
                        str(item.confidence_score),
                        item.source,
                    )
                    for item in snapshot.products
                ],
            )
            connection.executemany(
                """
                INSERT INTO compliance_config (config_key, config_value, config_type, category)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (item.config_key, item.config_value, item.config_type, item.category)
                    for item in snapshot.config_rows
                ],
            )
            connection.executemany(
                """
                INSERT INTO institution_preferences (
                    frn, bank_name, personal_limit, easy_access_required_above_fscs,
                    trust_level, risk_notes
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        item.frn,
                        item.bank_name,
                        str(item.personal_limit.amount),
                        int(item.easy_access_required_above_fscs),
                        item.trust_level,
                        item.risk_notes,
                    )
                    for item in snapshot.institution_preferences
                ],
            )
            connection.executemany(
                "INSERT INTO sharia_banks (frn, bank_name, is_sharia_compliant) VALUES (?, ?, ?)",
                [
                    (item.frn, item.bank_name, int(item.is_sharia_compliant))
                    for item in snapshot.restricted_institutions
                ],
            )
            connection.executemany(
                """
                INSERT INTO preferred_platforms (platform_name, priority, rate_tolerance, is_active)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (
                        item.platform_name,
                        item.priority,
                        str(item.rate_tolerance.value),
                        int(item.is_active),
                    )
                    for item in snapshot.preferred_platforms
                ],
            )
            connection.executemany(
                """
                INSERT INTO excluded_products (frn, bank_name, account_type, reason)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (item.frn, item.bank_name, item.account_type, item.reason)
                    for item in snapshot.excluded_products
                ],
            )
            connection.executemany(
                """
                INSERT INTO optimization_rules (
                    rule_name, rule_type, conditions, event_type, event_params,
                    priority, enabled, description
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        item.rule_name,
                        item.rule_type,
                        item.conditions_json,
                        item.event_type,
                        item.event_params_json,
                        item.priority,
                        int(item.enabled),
                        item.description,
                    )
                    for item in snapshot.rules
                ],
            )
            connection.commit()

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise DataStoreError(
                f"Portfolio store failure at {self._database_path}: {exc}"
            ) from exc

    def _fetch(self, query: str, params: tuple[Any, ...] = ()) -> List[sqlite3.Row]:
        with self._guard(), closing(self._connect()) as connection:
            return connection.execute(query, params).fetchall()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path)
        connection.row_factory = sqlite3.Row
        return connection

    def _init_db(self) -> None:
        Path(self._database_path).parent.mkdir(parents=True, exist_ok=True)
        with self._guard(), closing(self._connect()) as connection:
            connection.executescript(
                """
                CREATE TABLE IF NOT EXISTS my_deposits (
                    id TEXT PRIMARY KEY,
                    bank TEXT NOT NULL,
                    frn TEXT NULL,
                    account_type TEXT NOT NULL DEFAULT 'Savings',
                    sub_type TEXT NOT NULL DEFAULT 'Easy Access',
                    platform TEXT NULL,
                    account_name TEXT NULL,
                    balance TEXT NOT NULL,
                    aer TEXT NOT NULL,
                    liquidity_tier TEXT NOT NULL DEFAULT 'easy_access',
                    is_joint_account INTEGER NOT NULL DEFAULT 0,
                    num_account_holders INTEGER NOT NULL DEFAULT 1,
                    can_withdraw_immediately INTEGER NOT NULL DEFAULT 1,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    is_isa INTEGER NOT NULL DEFAULT 0
                );

                CREATE TABLE IF NOT EXISTS my_pending_deposits (
                    id TEXT PRIMARY KEY,
                    bank TEXT NOT NULL,
                    frn TEXT NULL,
                    account_type TEXT NOT NULL DEFAULT 'Savings',
                    sub_type TEXT NOT NULL DEFAULT 'Easy Access',
                    platform TEXT NULL,
                    balance TEXT NOT NULL,
                    aer TEXT NOT NULL,
                    liquidity_tier TEXT NOT NULL DEFAULT 'easy_access',
                    is_joint_account INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    expected_funding_date TEXT NULL,
                    source_account_id TEXT NULL
                );

                CREATE TABLE IF NOT EXISTS available_products (
                    product_id TEXT PRIMARY KEY,
                    bank_name TEXT NOT NULL,
                    frn TEXT NULL,
                    platform TEXT NOT NULL DEFAULT 'Direct',
                    account_type TEXT NOT NULL DEFAULT 'Easy Access',
                    liquidity_tier TEXT NOT NULL DEFAULT 'easy_access',
                    aer_rate TEXT NOT NULL,
                    min_deposit TEXT NULL,
                    max_deposit TEXT NULL,
                    confidence_score TEXT NOT NULL DEFAULT '1',
                    source TEXT NULL
                );

                CREATE TABLE IF NOT EXISTS compliance_config (
                    config_key TEXT PRIMARY KEY,
                    config_value TEXT NOT NULL,
                    config_type TEXT NOT NULL DEFAULT 'string',
                    category TEXT NULL
                );

                CREATE TABLE IF NOT EXISTS institution_preferences (
                    frn TEXT PRIMARY KEY,
                    bank_name TEXT NOT NULL,
                    personal_limit TEXT NOT NULL,
                    easy_access_required_above_fscs INTEGER NOT NULL DEFAULT 0,
                    trust_level TEXT NULL,
                    risk_notes TEXT NULL
                );

                CREATE TABLE IF NOT EXISTS sharia_banks (
                    frn TEXT PRIMARY KEY,
                    bank_name TEXT NOT NULL,
                    is_sharia_compliant INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS preferred_platforms (
                    platform_name TEXT PRIMARY KEY,
                    priority INTEGER NOT NULL DEFAULT 1,
                    rate_tolerance TEXT NOT NULL DEFAULT '0',
                    is_active INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS excluded_products (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    frn TEXT NULL,
                    bank_name TEXT NULL,
                    account_type TEXT NULL,
                    reason TEXT NULL
                );

                CREATE TABLE IF NOT EXISTS optimization_rules (
                    rule_name TEXT PRIMARY KEY,
                    rule_type TEXT NOT NULL DEFAULT 'validation',
                    conditions TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    event_params TEXT NULL,
                    priority INTEGER NOT NULL DEFAULT 100,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    description TEXT NULL
                );

                CREATE TABLE IF NOT EXISTS optimization_recommendations (
                    run_id TEXT NOT NULL,
                    recommendation_id TEXT NOT NULL,
                    source_account_id TEXT NOT NULL,
                    source_bank TEXT NOT NULL,
                    source_frn TEXT NULL,
                    source_amount TEXT NOT NULL,
                    source_rate TEXT NOT NULL,
                    target_bank TEXT NOT NULL,
                    target_frn TEXT NULL,
                    target_product_id TEXT NOT NULL,
                    target_rate TEXT NOT NULL,
                    target_platform TEXT NOT NULL,
                    marginal_benefit TEXT NOT NULL,
                    annual_benefit TEXT NOT NULL,
                    convenience_bonus TEXT NOT NULL,
                    bonus_type TEXT NOT NULL,
                    recommendation_reason TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    confidence_score TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    created_at TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    PRIMARY KEY (run_id, recommendation_id)
                );
                """
            )
            connection.commit()


def _optional_money(value: Optional[str]) -> Optional[Money]:
    if value is None:
        return None
    return Money.of(Decimal(value))

"""
FILE: deposit_advise/core/config.py
Typed optimization configuration built from key/value/type rows.
"""

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from deposit_advise.core.money import Money, Percentage

logger = logging.getLogger(__name__)

ConfigType = Literal["number", "boolean", "string"]
TrustLevel = Literal["high", "medium", "low"]

GOVERNMENT_PROTECTION_FLOOR = Money.of("1000000")


class ConfigurationError(Exception):
    def __init__(self, message: str, config_key: Optional[str] = None) -> None:
        super().__init__(message)
        self.config_key = config_key


class ConfigRow(BaseModel):
    config_key: str = Field(examples=["fscs_standard_limit"])
    config_value: str = Field(examples=["85000"])
    config_type: ConfigType = Field(default="string")
    category: Optional[str] = Field(default=None)


class ComplianceConfig(BaseModel):
    standard_limit: Money = Field(
        default_factory=lambda: Money.of("85000"),
        description="Per-institution protection ceiling for a single holder.",
    )
    joint_multiplier: Decimal = Field(default=Decimal("2"))
    tolerance_threshold: Money = Field(default_factory=lambda: Money.of("500"))
    warning_threshold: Decimal = Field(
        default=Decimal("0.9"), description="Share of the ceiling that raises a warning."
    )
    personal_override_enabled: bool = Field(default=True)
    include_pending_deposits: bool = Field(default=True)
    allow_sharia_banks: bool = Field(default=True)


class RiskToleranceConfig(BaseModel):
    meaningful_rate_threshold: Percentage = Field(default_factory=lambda: Percentage.of("0.1"))
    min_move_amount: Money = Field(default_factory=lambda: Money.of("1000"))
    min_rebalancing_benefit: Money = Field(default_factory=lambda: Money.of("50"))
    rebalancing_max_transfer_size: Money = Field(default_factory=lambda: Money.of("100000"))
    max_recommendations_per_account: int = Field(default=3, ge=1)
    partial_transfer_fraction: Decimal = Field(
        default=Decimal("0.8"),
        description="Share of a balance moved by a single non-chunked recommendation.",
    )


class AllocationConfig(BaseModel):
    existing_account_bonus: Percentage = Field(default_factory=lambda: Percentage.of("0.25"))
    preferred_platform_bonus: Percentage = Field(default_factory=lambda: Percentage.of("0.10"))
    preferred_platform: str = Field(default="Direct")
    allow_no_frn_products: bool = Field(default=False)
    min_source_balance: Money = Field(
        default_factory=lambda: Money.of("1000"),
        description="Accounts below this balance are not used as funding sources.",
    )
    easy_access_only: bool = Field(default=True)


class InstitutionPreference(BaseModel):
    frn: str
    bank_name: str
    personal_limit: Money
    easy_access_required_above_fscs: bool = False
    trust_level: Optional[TrustLevel] = None
    risk_notes: Optional[str] = None


class RestrictedInstitution(BaseModel):
    frn: str
    bank_name: str
    is_sharia_compliant: bool = True


class PreferredPlatform(BaseModel):
    platform_name: str
    priority: int = 1
    rate_tolerance: Percentage = Field(default_factory=lambda: Percentage.of("0"))
    is_active: bool = True


class ExcludedProduct(BaseModel):
    """Exclusion entry. Blank fields act as wildcards."""

    frn: Optional[str] = None
    bank_name: Optional[str] = None
    account_type: Optional[str] = None
    reason: Optional[str] = None


class OptimizationConfig(BaseModel):
    compliance: ComplianceConfig = Field(default_factory=ComplianceConfig)
    risk: RiskToleranceConfig = Field(default_factory=RiskToleranceConfig)
    allocation: AllocationConfig = Field(default_factory=AllocationConfig)
    preferences: List[InstitutionPreference] = Field(default_factory=list)
    restricted_institutions: List[RestrictedInstitution] = Field(default_factory=list)
    preferred_platforms: List[PreferredPlatform] = Field(default_factory=list)
    excluded_products: List[ExcludedProduct] = Field(default_factory=list)

    def preference_for(self, frn: Optional[str]) -> Optional[InstitutionPreference]:
        if frn is None:
            return None
        return next((item for item in self.preferences if item.frn == frn), None)

    def is_restricted(self, frn: Optional[str]) -> bool:
        if frn is None:
            return False
        return any(
            item.frn == frn and item.is_sharia_compliant for item in self.restricted_institutions
        )


REQUIRED_CONFIG_KEYS = frozenset({"fscs_standard_limit"})
POSITIVE_CONFIG_KEYS = frozenset({"fscs_standard_limit", "fscs_joint_multiplier"})

# config_key -> (section, field, kind)
_CONFIG_KEY_MAP: Dict[str, tuple[str, str, str]] = {
    "fscs_standard_limit": ("compliance", "standard_limit", "money"),
    "fscs_joint_multiplier": ("compliance", "joint_multiplier", "decimal"),
    "fscs_tolerance_threshold": ("compliance", "tolerance_threshold", "money"),
    "fscs_warning_threshold": ("compliance", "warning_threshold", "decimal"),
    "personal_fscs_override_enabled": ("compliance", "personal_override_enabled", "bool"),
    "include_pending_deposits_in_fscs": ("compliance", "include_pending_deposits", "bool"),
    "allow_sharia_banks": ("compliance", "allow_sharia_banks", "bool"),
    "meaningful_rate_threshold": ("risk", "meaningful_rate_threshold", "percent"),
    "min_move_amount": ("risk", "min_move_amount", "money"),
    "min_rebalancing_benefit": ("risk", "min_rebalancing_benefit", "money"),
    "rebalancing_max_transfer_size": ("risk", "rebalancing_max_transfer_size", "money"),
    "max_recommendations_per_account": ("risk", "max_recommendations_per_account", "int"),
    "partial_transfer_fraction": ("risk", "partial_transfer_fraction", "decimal"),
    "existing_account_bonus": ("allocation", "existing_account_bonus", "percent"),
    "preferred_platform_bonus": ("allocation", "preferred_platform_bonus", "percent"),
    "preferred_platform": ("allocation", "preferred_platform", "str"),
    "allow_no_frn_products": ("allocation", "allow_no_frn_products", "bool"),
    "include_products_without_frn": ("allocation", "allow_no_frn_products", "bool"),
    "min_source_balance": ("allocation", "min_source_balance", "money"),
    "easy_access_only": ("allocation", "easy_access_only", "bool"),
}


def parse_config_value(row: ConfigRow) -> Any:
    if row.config_type == "number":
        try:
            return Decimal(row.config_value.strip())
        except InvalidOperation as exc:
            raise ConfigurationError(
                f"Config value for {row.config_key} is not a number: {row.config_value!r}",
                row.config_key,
            ) from exc
    if row.config_type == "boolean":
        return row.config_value.strip().lower() in {"1", "true", "yes", "on"}
    return row.config_value


def _coerce(kind: str, value: Any, key: str) -> Any:
    if kind == "bool":
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in {"1", "true", "yes", "on"}
    if kind == "str":
        return str(value)
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ConfigurationError(f"Config value for {key} is not a number: {value!r}", key) from exc
    if kind == "money":
        if number < Decimal("0"):
            raise ConfigurationError(f"Config value for {key} must be non-negative", key)
        return Money.of(number)
    if kind == "percent":
        return Percentage.of(number)
    if kind == "int":
        return int(number)
    return number


def _numeric(value: Any) -> Decimal:
    return value.amount if isinstance(value, Money) else value


def build_optimization_config(
    *,
    rows: Sequence[ConfigRow],
    preferences: Sequence[InstitutionPreference] = (),
    restricted_institutions: Sequence[RestrictedInstitution] = (),
    preferred_platforms: Sequence[PreferredPlatform] = (),
    excluded_products: Sequence[ExcludedProduct] = (),
    required_keys: frozenset[str] = REQUIRED_CONFIG_KEYS,
) -> OptimizationConfig:
    values = {row.config_key: parse_config_value(row) for row in rows}
    missing = sorted(key for key in required_keys if key not in values)
    if missing:
        raise ConfigurationError(
            f"Required configuration missing: {', '.join(missing)}", missing[0]
        )

    updates: Dict[str, Dict[str, Any]] = {"compliance": {}, "risk": {}, "allocation": {}}
    for key, value in values.items():
        mapping = _CONFIG_KEY_MAP.get(key)
        if mapping is None:
            logger.debug("Ignoring unknown configuration key %s", key)
            continue
        section, field_name, kind = mapping
        coerced = _coerce(kind, value, key)
        if key in POSITIVE_CONFIG_KEYS and _numeric(coerced) <= Decimal("0"):
            raise ConfigurationError(f"Config value for {key} must be positive", key)
        updates[section][field_name] = coerced

    try:
        return OptimizationConfig(
            compliance=ComplianceConfig(**updates["compliance"]),
            risk=RiskToleranceConfig(**updates["risk"]),
            allocation=AllocationConfig(**updates["allocation"]),
            preferences=list(preferences),
            restricted_institutions=list(restricted_institutions),
            preferred_platforms=sorted(
                (item for item in preferred_platforms if item.is_active),
                key=lambda item: (item.priority, item.platform_name),
            ),
            excluded_products=list(excluded_products),
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


class CachedConfigLoader:
    """Caches a built configuration for a fixed time window; hot_reload clears it."""

    def __init__(
        self,
        build: Callable[[], OptimizationConfig],
        *,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._build = build
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._cached: Optional[OptimizationConfig] = None
        self._loaded_at = 0.0

    def load(self) -> OptimizationConfig:
        now = self._clock()
        if self._cached is not None and now - self._loaded_at < self._ttl_seconds:
            return self._cached
        self._cached = self._build()
        self._loaded_at = now
        return self._cached

    def hot_reload(self) -> OptimizationConfig:
        self._cached = None
        return self.load()

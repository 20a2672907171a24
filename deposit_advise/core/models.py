"""
FILE: deposit_advise/core/models.py
Domain data model for portfolio holdings, product catalogue, and recommendations.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from deposit_advise.core.money import Money, Percentage

Priority = Literal["URGENT", "HIGH", "MEDIUM", "LOW"]
DisplayMode = Literal["OR", "AND"]
BonusType = Literal["NONE", "EXISTING_ACCOUNT", "PREFERRED_PLATFORM"]
PendingStatus = Literal["PENDING", "APPROVED", "FUNDED", "CANCELLED"]

EXPOSURE_PENDING_STATUSES = frozenset({"PENDING", "APPROVED", "FUNDED"})
EASY_ACCESS_TIER = "easy_access"


class Identified(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["IDENTIFIED"] = "IDENTIFIED"
    frn: str = Field(description="Regulatory firm reference number.", examples=["123456"])


class Unidentified(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["UNIDENTIFIED"] = "UNIDENTIFIED"


InstitutionRef = Annotated[Union[Identified, Unidentified], Field(discriminator="kind")]

UNIDENTIFIED = Unidentified()


def institution_ref(frn: Optional[str]) -> Union[Identified, Unidentified]:
    if frn is None:
        return UNIDENTIFIED
    normalized = frn.strip()
    if not normalized:
        return UNIDENTIFIED
    return Identified(frn=normalized)


def _normalize_frn(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


class _InstitutionBound(BaseModel):
    frn: Optional[str] = Field(
        default=None,
        description="Firm reference number. Absent when the institution is unidentified.",
        examples=["123456"],
    )

    @field_validator("frn", mode="before")
    @classmethod
    def _clean_frn(cls, value: Any) -> Optional[str]:
        return _normalize_frn(value)

    @property
    def institution(self) -> Union[Identified, Unidentified]:
        return institution_ref(self.frn)


class DepositHolding(_InstitutionBound):
    bank_name: str = Field(description="Institution display name.", examples=["Atlas Bank"])
    account_type: str = Field(default="Savings", description="Account type.")
    sub_type: str = Field(default="Easy Access", description="Account sub type.")
    platform: Optional[str] = Field(default=None, description="Platform holding the deposit.")
    balance: Money = Field(description="Current balance.")
    rate: Percentage = Field(description="Current annual equivalent rate.")
    liquidity_tier: str = Field(
        default=EASY_ACCESS_TIER,
        description="Liquidity tier (easy_access, notice_1_30, fixed_12m, ...).",
    )
    is_joint_account: bool = Field(default=False, description="Held jointly by two people.")

    @field_validator("balance")
    @classmethod
    def _balance_non_negative(cls, value: Money) -> Money:
        if value.amount < Decimal("0"):
            raise ValueError("balance must be non-negative")
        return value

    @property
    def is_easy_access(self) -> bool:
        return (
            self.liquidity_tier == EASY_ACCESS_TIER
            or self.sub_type.strip().lower() == "easy access"
        )


class Account(DepositHolding):
    model_config = {
        "json_schema_extra": {
            "example": {
                "account_id": "acc_1",
                "frn": "100001",
                "bank_name": "Atlas Bank",
                "balance": "85000",
                "rate": "4.0",
            }
        }
    }

    account_id: str = Field(description="Stable account identifier.", examples=["acc_1"])
    account_name: Optional[str] = Field(default=None, description="Display name.")
    can_withdraw_immediately: bool = Field(default=True)
    num_account_holders: int = Field(default=1, ge=1)
    is_active: bool = Field(default=True)
    is_isa: bool = Field(default=False)

    @property
    def holding_key(self) -> str:
        return f"{self.bank_name}-{self.sub_type}"


class PendingDeposit(DepositHolding):
    """Committed movement not yet settled. Adds exposure, never funds a move."""

    deposit_id: str = Field(description="Pending deposit identifier.", examples=["pd_1"])
    status: PendingStatus = Field(default="PENDING")
    expected_funding_date: Optional[date] = Field(default=None)
    source_account_id: Optional[str] = Field(default=None)

    @property
    def contributes_to_exposure(self) -> bool:
        return self.status in EXPOSURE_PENDING_STATUSES


class AvailableProduct(_InstitutionBound):
    model_config = {
        "json_schema_extra": {
            "example": {
                "product_id": "prd_1",
                "frn": "200002",
                "bank_name": "Beacon Savings",
                "platform": "Direct",
                "rate": "5.0",
            }
        }
    }

    product_id: str = Field(description="Catalogue product identifier.", examples=["prd_1"])
    bank_name: str = Field(description="Institution display name.")
    platform: str = Field(default="Direct", description="Platform offering the product.")
    account_type: str = Field(default="Easy Access")
    liquidity_tier: str = Field(default=EASY_ACCESS_TIER)
    rate: Percentage = Field(description="Advertised annual equivalent rate.")
    min_deposit: Optional[Money] = Field(default=None)
    max_deposit: Optional[Money] = Field(default=None)
    confidence_score: Decimal = Field(default=Decimal("1"), ge=Decimal("0"), le=Decimal("1"))
    source: Optional[str] = Field(default=None, description="Origin of the catalogue row.")

    @property
    def holding_key(self) -> str:
        return f"{self.bank_name}-{self.account_type}"


class Opportunity(BaseModel):
    account: Account
    product: AvailableProduct
    transfer_amount: Money
    rate_improvement: Percentage
    annual_benefit: Money
    is_chunk: bool = False
    chunk_index: Optional[int] = None
    chunk_count: Optional[int] = None
    convenience_bonus: Percentage = Field(default_factory=lambda: Percentage.of(0))
    bonus_type: BonusType = "NONE"


class RecommendationSource(BaseModel):
    account_id: str
    bank_name: str
    frn: Optional[str] = None
    amount: Money
    original_balance: Money
    current_rate: Percentage
    liquidity_tier: str


class RecommendationTarget(BaseModel):
    product_id: str
    bank_name: str
    frn: Optional[str] = None
    platform: str
    target_rate: Percentage
    account_type: str
    liquidity_tier: str


class RecommendationBenefits(BaseModel):
    rate_improvement: Percentage
    annual_benefit: Money
    convenience_bonus: Percentage = Field(default_factory=lambda: Percentage.of(0))
    bonus_type: BonusType = "NONE"


class RecommendationCompliance(BaseModel):
    resulting_exposure: Optional[Money] = Field(
        default=None, description="Target institution exposure after this move."
    )
    headroom_after: Optional[Money] = Field(default=None)
    resulting_status: Literal["COMPLIANT", "AT_LIMIT", "UNVERIFIED"] = "COMPLIANT"
    missing_frn: bool = False


class Recommendation(BaseModel):
    recommendation_id: str
    type: Literal["RATE_OPTIMIZATION", "DIVERSIFICATION"] = "RATE_OPTIMIZATION"
    strategy: str
    priority: Priority
    source: RecommendationSource
    target: RecommendationTarget
    benefits: RecommendationBenefits
    compliance: RecommendationCompliance
    display_mode: DisplayMode = "OR"
    display_notes: Optional[str] = None
    recommendation_reason: str
    confidence: Decimal = Field(default=Decimal("1"))
    implementation_notes: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    rule_events: List[str] = Field(default_factory=list)

    @property
    def source_account_id(self) -> str:
        return self.source.account_id


class AffectedAccount(BaseModel):
    account_id: str
    bank_name: str
    balance: Money
    current_rate: Percentage


class MissingFRNAlert(BaseModel):
    bank_name: str
    platform: str
    product_id: str
    rate: Percentage
    potential_benefit: Money
    affected_accounts: List[AffectedAccount] = Field(default_factory=list)
    action_required: str
    suggested_override_sql: str


class BenefitAnalysis(BaseModel):
    recommendation_count: int
    total_annual_benefit: Money
    average_annual_benefit: Money
    average_rate_improvement: Percentage
    best_opportunity_id: Optional[str] = None
    by_priority: Dict[str, int] = Field(default_factory=dict)
    risk_level: Literal["LOW", "MEDIUM", "HIGH"] = "LOW"
    concentration_risk: Optional[Literal["LOW", "MEDIUM", "HIGH"]] = None


class OptimizationMetadata(BaseModel):
    strategy: str
    run_id: str
    generated_at: datetime
    execution_time_ms: Decimal
    accounts_processed: int
    products_evaluated: int
    rules_loaded: int
    iterations: int
    rule_event_counts: Dict[str, int] = Field(default_factory=dict)
    config_snapshot: Dict[str, Any] = Field(default_factory=dict)
    run_hash: str


class OptimizationResult(BaseModel):
    recommendations: List[Recommendation]
    missing_frn_alerts: List[MissingFRNAlert] = Field(default_factory=list)
    benefits: BenefitAnalysis
    metadata: OptimizationMetadata

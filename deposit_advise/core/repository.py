from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field

from deposit_advise.core.config import (
    ConfigRow,
    ExcludedProduct,
    InstitutionPreference,
    PreferredPlatform,
    RestrictedInstitution,
)
from deposit_advise.core.models import Account, AvailableProduct, PendingDeposit, Recommendation
from deposit_advise.core.rules import RuleRow


class DataStoreError(Exception):
    pass


class PortfolioSnapshot(BaseModel):
    """Everything one optimization run reads from the portfolio store."""

    accounts: List[Account] = Field(default_factory=list)
    pending_deposits: List[PendingDeposit] = Field(default_factory=list)
    products: List[AvailableProduct] = Field(default_factory=list)
    config_rows: List[ConfigRow] = Field(default_factory=list)
    institution_preferences: List[InstitutionPreference] = Field(default_factory=list)
    restricted_institutions: List[RestrictedInstitution] = Field(default_factory=list)
    preferred_platforms: List[PreferredPlatform] = Field(default_factory=list)
    excluded_products: List[ExcludedProduct] = Field(default_factory=list)
    rules: List[RuleRow] = Field(default_factory=list)


class StoredRecommendation(BaseModel):
    run_id: str
    generated_at: datetime
    status: str = "PENDING"
    recommendation: Recommendation


class PortfolioStore(Protocol):
    def load_accounts(self) -> List[Account]: ...

    def load_pending_deposits(self) -> List[PendingDeposit]: ...

    def load_products(self) -> List[AvailableProduct]: ...

    def load_config_rows(self) -> List[ConfigRow]: ...

    def load_institution_preferences(self) -> List[InstitutionPreference]: ...

    def load_restricted_institutions(self) -> List[RestrictedInstitution]: ...

    def load_preferred_platforms(self) -> List[PreferredPlatform]: ...

    def load_excluded_products(self) -> List[ExcludedProduct]: ...

    def load_rule_rows(self) -> List[RuleRow]: ...

    def save_recommendations(
        self,
        *,
        run_id: str,
        generated_at: datetime,
        recommendations: Sequence[Recommendation],
    ) -> int: ...

    def list_recommendations(
        self, *, run_id: Optional[str] = None
    ) -> List[StoredRecommendation]: ...

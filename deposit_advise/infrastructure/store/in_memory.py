from copy import deepcopy
from datetime import datetime
from threading import Lock
from typing import List, Optional, Sequence

from deposit_advise.core.config import (
    ConfigRow,
    ExcludedProduct,
    InstitutionPreference,
    PreferredPlatform,
    RestrictedInstitution,
)
from deposit_advise.core.models import Account, AvailableProduct, PendingDeposit, Recommendation
from deposit_advise.core.repository import PortfolioSnapshot, PortfolioStore, StoredRecommendation
from deposit_advise.core.rules import RuleRow


class InMemoryPortfolioStore(PortfolioStore):
    def __init__(self, snapshot: Optional[PortfolioSnapshot] = None) -> None:
        self._lock = Lock()
        self._snapshot = deepcopy(snapshot) if snapshot is not None else PortfolioSnapshot()
        self._saved: List[StoredRecommendation] = []

    def replace_snapshot(self, snapshot: PortfolioSnapshot) -> None:
        with self._lock:
            self._snapshot = deepcopy(snapshot)

    def load_accounts(self) -> List[Account]:
        with self._lock:
            return deepcopy(self._snapshot.accounts)

    def load_pending_deposits(self) -> List[PendingDeposit]:
        with self._lock:
            return deepcopy(self._snapshot.pending_deposits)

    def load_products(self) -> List[AvailableProduct]:
        with self._lock:
            return deepcopy(self._snapshot.products)

    def load_config_rows(self) -> List[ConfigRow]:
        with self._lock:
            return deepcopy(self._snapshot.config_rows)

    def load_institution_preferences(self) -> List[InstitutionPreference]:
        with self._lock:
            return deepcopy(self._snapshot.institution_preferences)

    def load_restricted_institutions(self) -> List[RestrictedInstitution]:
        with self._lock:
            return deepcopy(self._snapshot.restricted_institutions)

    def load_preferred_platforms(self) -> List[PreferredPlatform]:
        with self._lock:
            return deepcopy(self._snapshot.preferred_platforms)

    def load_excluded_products(self) -> List[ExcludedProduct]:
        with self._lock:
            return deepcopy(self._snapshot.excluded_products)

    def load_rule_rows(self) -> List[RuleRow]:
        with self._lock:
            return deepcopy(self._snapshot.rules)

    def save_recommendations(
        self,
        *,
        run_id: str,
        generated_at: datetime,
        recommendations: Sequence[Recommendation],
    ) -> int:
        with self._lock:
            for recommendation in recommendations:
                self._saved.append(
                    StoredRecommendation(
                        run_id=run_id,
                        generated_at=generated_at,
                        recommendation=deepcopy(recommendation),
                    )
                )
            return len(recommendations)

    def list_recommendations(self, *, run_id: Optional[str] = None) -> List[StoredRecommendation]:
        with self._lock:
            return [
                deepcopy(item) for item in self._saved if run_id is None or item.run_id == run_id
            ]

from typing import List, Optional

from pydantic import BaseModel, Field

from deposit_advise.core.config import ConfigRow, InstitutionPreference
from deposit_advise.core.models import Account, PendingDeposit
from deposit_advise.core.repository import PortfolioSnapshot, StoredRecommendation

_SNAPSHOT_EXAMPLE = {
    "accounts": [
        {
            "account_id": "acc_1",
            "frn": "100001",
            "bank_name": "Atlas Bank",
            "balance": "100000",
            "rate": "4.0",
        }
    ],
    "products": [
        {"product_id": "prd_x", "frn": "200002", "bank_name": "Beacon Savings", "rate": "5.0"},
        {"product_id": "prd_y", "frn": "300003", "bank_name": "Cedar Bank", "rate": "4.8"},
    ],
    "config_rows": [
        {"config_key": "fscs_standard_limit", "config_value": "85000", "config_type": "number"}
    ],
}


class OptimizationSimulateRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {"snapshot": _SNAPSHOT_EXAMPLE, "strategy": "DYNAMIC"}
        }
    }

    snapshot: PortfolioSnapshot = Field(
        description="Holdings, catalogue, configuration rows, and optional rule rows for one run."
    )
    strategy: Optional[str] = Field(
        default=None,
        description="Allocation strategy name. Defaults to the service default.",
        examples=["DYNAMIC", "TRACKED"],
    )
    prioritized: bool = Field(
        default=False,
        description="Order recommendations by priority then annual benefit.",
    )


class OptimizationRunRequest(BaseModel):
    strategy: Optional[str] = Field(default=None, examples=["TRACKED"])
    persist: Optional[bool] = Field(
        default=None,
        description="Save recommendations to the store. Defaults to DEPOSIT_AUTO_SAVE.",
    )
    prioritized: bool = Field(default=False)


class ComplianceReportRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "accounts": _SNAPSHOT_EXAMPLE["accounts"],
                "config_rows": _SNAPSHOT_EXAMPLE["config_rows"],
                "include_pending": True,
            }
        }
    }

    accounts: List[Account] = Field(default_factory=list)
    pending_deposits: List[PendingDeposit] = Field(default_factory=list)
    config_rows: List[ConfigRow] = Field(
        description="Configuration rows; fscs_standard_limit is required."
    )
    institution_preferences: List[InstitutionPreference] = Field(default_factory=list)
    include_pending: Optional[bool] = Field(
        default=None,
        description="Count pending deposits. Defaults to the include_pending_deposits setting.",
    )


class StoredRecommendationsResponse(BaseModel):
    run_id: str
    recommendations: List[StoredRecommendation]

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from deposit_advise.api.http_errors import raise_optimization_http_exception
from deposit_advise.api.request_models import ComplianceReportRequest
from deposit_advise.api.routers.optimization import get_recommendation_service
from deposit_advise.core.compliance import ComplianceReport, ProtectionLimitCalculator
from deposit_advise.core.config import ConfigurationError, build_optimization_config
from deposit_advise.core.repository import DataStoreError
from deposit_advise.core.service import RecommendationService

router = APIRouter(prefix="/compliance", tags=["Compliance"])


@router.post(
    "/report",
    response_model=ComplianceReport,
    summary="Audit an inline set of holdings against protection ceilings",
)
def build_compliance_report(request: ComplianceReportRequest) -> ComplianceReport:
    try:
        config = build_optimization_config(
            rows=request.config_rows, preferences=request.institution_preferences
        )
    except ConfigurationError as exc:
        raise_optimization_http_exception(exc)
    return ProtectionLimitCalculator(config).generate_report(
        request.accounts,
        request.pending_deposits,
        include_pending=request.include_pending,
    )


@router.get(
    "/report",
    response_model=ComplianceReport,
    summary="Audit the stored portfolio against protection ceilings",
)
def get_compliance_report(
    service: Annotated[RecommendationService, Depends(get_recommendation_service)],
    include_pending: Annotated[
        Optional[bool], Query(description="Count pending deposits toward exposure.")
    ] = None,
) -> ComplianceReport:
    try:
        return service.compliance_report(include_pending=include_pending)
    except (ConfigurationError, DataStoreError) as exc:
        raise_optimization_http_exception(exc)

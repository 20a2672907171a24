import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status

from deposit_advise.api.config import (
    auto_save_enabled,
    build_store,
    config_ttl_seconds,
    default_strategy_name,
    use_default_rules,
)
from deposit_advise.api.http_errors import raise_optimization_http_exception
from deposit_advise.api.request_models import (
    OptimizationRunRequest,
    OptimizationSimulateRequest,
    StoredRecommendationsResponse,
)
from deposit_advise.core.config import ConfigurationError, OptimizationConfig
from deposit_advise.core.models import OptimizationResult
from deposit_advise.core.repository import DataStoreError, PortfolioStore
from deposit_advise.core.service import RecommendationService
from deposit_advise.infrastructure.store import InMemoryPortfolioStore

router = APIRouter(prefix="/optimization", tags=["Optimization"])
logger = logging.getLogger(__name__)

_STORE: Optional[PortfolioStore] = None
_SERVICE: Optional[RecommendationService] = None


def get_portfolio_store() -> PortfolioStore:
    global _STORE
    if _STORE is None:
        _STORE = build_store()
    return _STORE


def get_recommendation_service() -> RecommendationService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = RecommendationService(
            store=get_portfolio_store(),
            default_strategy=default_strategy_name(),
            use_default_rules=use_default_rules(),
            config_ttl_seconds=config_ttl_seconds(),
        )
    return _SERVICE


def reset_recommendation_service_for_tests(store: Optional[PortfolioStore] = None) -> None:
    global _STORE
    global _SERVICE
    _STORE = store
    _SERVICE = None


@router.post(
    "/simulate",
    response_model=OptimizationResult,
    status_code=status.HTTP_200_OK,
    summary="Optimize an inline portfolio snapshot",
    description="Runs one allocation strategy against the supplied snapshot. Nothing is persisted.",
)
def simulate_optimization(request: OptimizationSimulateRequest) -> OptimizationResult:
    service = RecommendationService(
        store=InMemoryPortfolioStore(request.snapshot),
        default_strategy=default_strategy_name(),
        use_default_rules=use_default_rules(),
    )
    try:
        return service.generate(request.strategy, prioritized=request.prioritized)
    except (ConfigurationError, DataStoreError, ValueError) as exc:
        raise_optimization_http_exception(exc)


@router.post(
    "/runs",
    response_model=OptimizationResult,
    status_code=status.HTTP_200_OK,
    summary="Optimize the stored portfolio",
)
def run_optimization(
    request: OptimizationRunRequest,
    service: Annotated[RecommendationService, Depends(get_recommendation_service)],
) -> OptimizationResult:
    persist = auto_save_enabled() if request.persist is None else request.persist
    try:
        return service.generate(request.strategy, persist=persist, prioritized=request.prioritized)
    except (ConfigurationError, DataStoreError, ValueError) as exc:
        raise_optimization_http_exception(exc)


@router.get(
    "/runs/{run_id}/recommendations",
    response_model=StoredRecommendationsResponse,
    summary="List saved recommendations for a run",
)
def get_run_recommendations(
    run_id: Annotated[str, Path(description="Run identifier.", examples=["run_0123456789ab"])],
    store: Annotated[PortfolioStore, Depends(get_portfolio_store)],
) -> StoredRecommendationsResponse:
    try:
        saved = store.list_recommendations(run_id=run_id)
    except DataStoreError as exc:
        raise_optimization_http_exception(exc)
    if not saved:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="RUN_NOT_FOUND")
    return StoredRecommendationsResponse(run_id=run_id, recommendations=saved)


@router.post(
    "/config/reload",
    response_model=OptimizationConfig,
    summary="Drop cached configuration and reload it from the store",
)
def reload_configuration(
    service: Annotated[RecommendationService, Depends(get_recommendation_service)],
) -> OptimizationConfig:
    try:
        return service.hot_reload()
    except (ConfigurationError, DataStoreError) as exc:
        raise_optimization_http_exception(exc)

"""
FILE: deposit_advise/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from deposit_advise.api.config import store_backend_name
from deposit_advise.api.observability import setup_observability
from deposit_advise.api.routers.compliance import router as compliance_router
from deposit_advise.api.routers.optimization import router as optimization_router


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    logger.info("Starting deposit-advise with %s portfolio store", store_backend_name())
    yield


app = FastAPI(
    title="Deposit Protection Rate Optimization API",
    version="0.1.0",
    description=(
        "Rate-optimization recommendations for cash deposits that never push an institution "
        "above its deposit-protection ceiling, plus read-only compliance reporting."
    ),
    openapi_tags=[
        {
            "name": "Optimization",
            "description": "Allocation runs over inline snapshots or the stored portfolio.",
        },
        {
            "name": "Compliance",
            "description": "Per-institution exposure, breaches, and concentration risk.",
        },
    ],
    lifespan=_app_lifespan,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

setup_observability(app)
app.include_router(optimization_router)
app.include_router(compliance_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health/live", tags=["Health"])
def health_live() -> dict[str, str]:
    return {"status": "live"}


@app.get("/health/ready", tags=["Health"])
def health_ready() -> dict[str, str]:
    return {"status": "ready"}

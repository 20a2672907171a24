from typing import NoReturn

from fastapi import HTTPException, status

from deposit_advise.core.config import ConfigurationError
from deposit_advise.core.repository import DataStoreError

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_optimization_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, ConfigurationError):
        detail = str(exc)
        if exc.config_key:
            detail = f"{detail} (config_key={exc.config_key})"
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=detail) from exc
    if isinstance(exc, DataStoreError):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        ) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
    raise exc

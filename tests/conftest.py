"""
FILE: tests/conftest.py
Shared fixtures for engine, store, and API tests.
"""

from pathlib import Path

import pytest

from deposit_advise.api.routers.optimization import reset_recommendation_service_for_tests
from deposit_advise.infrastructure.store import InMemoryPortfolioStore


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if _has_marker(item, "unit") or _has_marker(item, "integration"):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def isolated_api_store(monkeypatch: pytest.MonkeyPatch):
    """Give every test a fresh in-memory store behind the API routers."""

    monkeypatch.setenv("DEPOSIT_STORE_BACKEND", "IN_MEMORY")
    monkeypatch.delenv("DEPOSIT_AUTO_SAVE", raising=False)
    monkeypatch.delenv("DEPOSIT_DEFAULT_STRATEGY", raising=False)
    store = InMemoryPortfolioStore()
    reset_recommendation_service_for_tests(store)
    yield store
    reset_recommendation_service_for_tests()

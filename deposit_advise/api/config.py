import os

from deposit_advise.core.allocation import DEFAULT_STRATEGY
from deposit_advise.core.repository import PortfolioStore
from deposit_advise.infrastructure.store import InMemoryPortfolioStore, SqlitePortfolioStore


def env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= 1 else default


def store_backend_name() -> str:
    backend = os.getenv("DEPOSIT_STORE_BACKEND", "IN_MEMORY").strip().upper()
    return "SQLITE" if backend in {"SQL", "SQLITE"} else "IN_MEMORY"


def store_sqlite_path() -> str:
    return os.getenv("DEPOSIT_STORE_SQLITE_PATH", ".data/deposit_advise.db")


def default_strategy_name() -> str:
    value = os.getenv("DEPOSIT_DEFAULT_STRATEGY", DEFAULT_STRATEGY).strip().upper()
    return value or DEFAULT_STRATEGY


def use_default_rules() -> bool:
    return env_flag("DEPOSIT_USE_DEFAULT_RULES", True)


def auto_save_enabled() -> bool:
    return env_flag("DEPOSIT_AUTO_SAVE", False)


def config_ttl_seconds() -> int:
    return env_int("DEPOSIT_CONFIG_TTL_SECONDS", 300)


def build_store() -> PortfolioStore:
    if store_backend_name() == "SQLITE":
        return SqlitePortfolioStore(database_path=store_sqlite_path())
    return InMemoryPortfolioStore()

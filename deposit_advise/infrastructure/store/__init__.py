from deposit_advise.infrastructure.store.in_memory import InMemoryPortfolioStore
from deposit_advise.infrastructure.store.sqlite import SqlitePortfolioStore

__all__ = [
    "InMemoryPortfolioStore",
    "SqlitePortfolioStore",
]

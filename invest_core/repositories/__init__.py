"""
Repositories Package
"""
from invest_core.repositories.portfolio import (
    PortfolioRepository,
    InMemoryPortfolioRepository,
)

__all__ = [
    "PortfolioRepository",
    "InMemoryPortfolioRepository",
]

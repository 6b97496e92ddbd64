"""
Portfolio Repository

Storage operations for portfolios. The service depends on the
PortfolioRepository protocol; InMemoryPortfolioRepository is the default
implementation and stores immutable Portfolio snapshots, so a reader never
sees a half-applied write.
"""
from typing import Optional, Protocol, runtime_checkable, TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from invest_core.core.portfolio.models import Portfolio


@runtime_checkable
class PortfolioRepository(Protocol):
    """Persistence contract, transactional per portfolio."""

    async def get(self, portfolio_id: str) -> Optional["Portfolio"]:
        ...

    async def list_by_user(self, user_id: str) -> list["Portfolio"]:
        ...

    async def count_by_user(self, user_id: str) -> int:
        ...

    async def save(self, portfolio: "Portfolio") -> "Portfolio":
        ...

    async def delete(self, portfolio_id: str) -> bool:
        ...


class InMemoryPortfolioRepository:
    """
    Dict-backed repository.

    Provides low-level storage only.
    For business logic, use PortfolioService instead.
    """

    def __init__(self, portfolios: Optional[list["Portfolio"]] = None):
        self._portfolios: dict[str, "Portfolio"] = {}
        for portfolio in portfolios or []:
            self._portfolios[portfolio.id] = portfolio

    async def get(self, portfolio_id: str) -> Optional["Portfolio"]:
        """Get portfolio by ID."""
        return self._portfolios.get(portfolio_id)

    async def list_by_user(self, user_id: str) -> list["Portfolio"]:
        """Get all portfolios for a user, oldest first."""
        portfolios = [p for p in self._portfolios.values() if p.user_id == user_id]
        return sorted(portfolios, key=lambda p: p.created_at)

    async def count_by_user(self, user_id: str) -> int:
        return sum(1 for p in self._portfolios.values() if p.user_id == user_id)

    async def save(self, portfolio: "Portfolio") -> "Portfolio":
        """Insert or replace a portfolio snapshot."""
        self._portfolios[portfolio.id] = portfolio
        logger.debug(f"Saved portfolio {portfolio.id} ({len(portfolio.assets)} assets)")
        return portfolio

    async def delete(self, portfolio_id: str) -> bool:
        return self._portfolios.pop(portfolio_id, None) is not None

    def clear(self) -> None:
        self._portfolios.clear()

"""
Invest Core - Dependencies
Dependency injection for FastAPI endpoints
"""
from invest_core.core.portfolio.service import PortfolioService, get_portfolio_service


def get_service() -> PortfolioService:
    """
    Portfolio service dependency.

    Returns the process-wide service backed by the in-memory repository.
    Tests swap it through app.dependency_overrides.
    """
    return get_portfolio_service()

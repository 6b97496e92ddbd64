"""
Invest Core - Test Configuration
Shared fixtures and test configuration.
"""
import os
from decimal import Decimal

import pytest

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["DEBUG"] = "false"

from invest_core.core.features import FeatureFlag, FeatureFlags
from invest_core.core.portfolio.models import (
    AddAssetInput,
    Asset,
    Category,
    CreatePortfolioInput,
    TargetAllocation,
)
from invest_core.core.portfolio.service import PortfolioService
from invest_core.repositories.portfolio import InMemoryPortfolioRepository


# =========================
# Input Fixtures
# =========================

@pytest.fixture
def sample_portfolio_data() -> dict:
    """Sample portfolio creation data."""
    return {
        "user_id": "user-1",
        "name": "Retirement",
        "description": "Long term savings",
        "objective": "retirement",
        "risk_profile": {"type": "moderate", "score": 5},
        "target_allocations": [
            {"category": "stocks", "percentage": 60},
            {"category": "bonds", "percentage": 30},
            {"category": "cash", "percentage": 10},
        ],
        "time_horizon": 20,
    }


@pytest.fixture
def create_input(sample_portfolio_data) -> CreatePortfolioInput:
    return CreatePortfolioInput(**sample_portfolio_data)


@pytest.fixture
def target_60_30_10() -> list[TargetAllocation]:
    return [
        TargetAllocation(Category.STOCKS, Decimal("60")),
        TargetAllocation(Category.BONDS, Decimal("30")),
        TargetAllocation(Category.CASH, Decimal("10")),
    ]


@pytest.fixture
def holdings_700_200_100() -> list[Asset]:
    """Drifted 1000.00 portfolio: stocks 70%, bonds 20%, cash 10%."""
    return [
        Asset("a-stocks", "VTI", Category.STOCKS, Decimal("7"), Decimal("100"), Decimal("100")),
        Asset("a-bonds", "BND", Category.BONDS, Decimal("2"), Decimal("100"), Decimal("100")),
        Asset("a-cash", "CASH", Category.CASH, Decimal("100"), Decimal("1"), Decimal("1")),
    ]


# =========================
# Service Fixtures
# =========================

@pytest.fixture
def repository() -> InMemoryPortfolioRepository:
    return InMemoryPortfolioRepository()


@pytest.fixture
def features() -> FeatureFlags:
    """Phase 0 capabilities: manual portfolios and rebalancing, capped at 3."""
    return FeatureFlags(
        [FeatureFlag.MANUAL_PORTFOLIO, FeatureFlag.REBALANCING_CALCULATOR],
        max_portfolios=3,
    )


@pytest.fixture
def service(repository, features) -> PortfolioService:
    return PortfolioService(repository, features, price_timeout=0.2)


@pytest.fixture
def add_holdings():
    """Add the drifted 700/200/100 holdings to a portfolio."""
    async def _add(service: PortfolioService, portfolio_id: str) -> None:
        for symbol, category, quantity, price in (
            ("VTI", "stocks", 7, 100),
            ("BND", "bonds", 2, 100),
            ("CASH", "cash", 100, 1),
        ):
            await service.add_asset(AddAssetInput(
                portfolio_id=portfolio_id,
                symbol=symbol,
                category=category,
                quantity=quantity,
                average_price=price,
                current_price=price,
            ))
    return _add

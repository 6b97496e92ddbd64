"""
Invest Core - Portfolio Schemas

Request bodies accept loosely typed values (raw form strings included) so
the domain validator, not pydantic, reports field errors.
"""
from typing import Any, Optional

from pydantic import BaseModel, Field

from invest_core.core.portfolio.models import (
    DEFAULT_TARGET_ALLOCATIONS,
    AddAssetInput,
    CreatePortfolioInput,
    Objective,
    UpdateAssetInput,
    UpdatePortfolioInput,
)


def _default_allocations() -> list[dict]:
    return [
        {"category": t.category.value, "percentage": str(t.percentage)}
        for t in DEFAULT_TARGET_ALLOCATIONS
    ]


# ==================== Requests ====================

class PortfolioCreate(BaseModel):
    """Schema for creating a portfolio."""
    user_id: str = Field(..., min_length=1)
    name: Any = None
    description: Any = ""
    objective: Any = Objective.INVESTMENT.value
    risk_profile: Any = None
    target_allocations: Any = Field(default_factory=_default_allocations)
    time_horizon: Any = 10
    target_amount: Any = None
    monthly_contribution: Any = None

    def to_input(self) -> CreatePortfolioInput:
        return CreatePortfolioInput(**self.model_dump())


class PortfolioUpdate(BaseModel):
    """Schema for updating a portfolio. Omitted fields are left unchanged."""
    name: Any = None
    description: Any = None
    objective: Any = None
    risk_profile: Any = None
    target_allocations: Any = None
    time_horizon: Any = None
    target_amount: Any = None
    monthly_contribution: Any = None
    clear: list[str] = Field(default_factory=list, description="Optional amounts to remove")

    def to_input(self) -> UpdatePortfolioInput:
        return UpdatePortfolioInput(**self.model_dump())


class AssetCreate(BaseModel):
    """Schema for adding an asset."""
    symbol: Any = None
    name: Any = ""
    category: Any = None
    quantity: Any = None
    average_price: Any = None
    current_price: Any = None

    def to_input(self, portfolio_id: str) -> AddAssetInput:
        return AddAssetInput(portfolio_id=portfolio_id, **self.model_dump())


class AssetUpdate(BaseModel):
    """Schema for updating an asset."""
    name: Any = None
    category: Any = None
    quantity: Any = None
    average_price: Any = None
    current_price: Any = None

    def to_input(self, portfolio_id: str, asset_id: str) -> UpdateAssetInput:
        return UpdateAssetInput(portfolio_id=portfolio_id, asset_id=asset_id, **self.model_dump())


class RebalanceRequest(BaseModel):
    """Schema for a rebalancing calculation."""
    contribution: Any = None
    prices: Optional[dict[str, Any]] = None  # keyed by asset id or symbol


# ==================== Responses ====================

class CapabilitiesResponse(BaseModel):
    """Enabled capabilities of this deployment."""
    can_create_manual: bool
    can_create_multiple: bool
    can_rebalance: bool
    max_portfolios: Optional[int]
    enabled: list[str]


class RiskProfileSummaryResponse(BaseModel):
    """Risk profile type with its score band."""
    type: str
    min_score: int
    max_score: int
    default_score: int
    description: str


class RiskProfilesResponse(BaseModel):
    profiles: list[RiskProfileSummaryResponse]


class PortfolioStatsResponse(BaseModel):
    """Aggregates across a user's portfolios."""
    total_portfolios: int
    total_value: float
    total_invested: float
    total_return: float
    total_return_percent: float
    portfolios_by_objective: dict[str, int]

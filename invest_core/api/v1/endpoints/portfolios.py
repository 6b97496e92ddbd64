"""
Invest Core - Portfolio Endpoints

API endpoints for portfolio management: CRUD operations, asset
management, user statistics and rebalancing. Domain errors propagate to
the application's exception handler, which maps them to status codes.
"""
from fastapi import APIRouter, Depends, status

from invest_core.core.portfolio.models import RiskProfileType, get_risk_profile_summary
from invest_core.core.portfolio.service import PortfolioService
from invest_core.dependencies import get_service
from invest_core.schemas.portfolio import (
    AssetCreate,
    AssetUpdate,
    CapabilitiesResponse,
    PortfolioCreate,
    PortfolioStatsResponse,
    PortfolioUpdate,
    RebalanceRequest,
    RiskProfilesResponse,
)


router = APIRouter()


# ==================== Reference Data ====================

@router.get("/features", response_model=CapabilitiesResponse)
async def get_features(service: PortfolioService = Depends(get_service)):
    """Capabilities enabled in this deployment."""
    return service.features.capabilities()


@router.get("/risk-profiles", response_model=RiskProfilesResponse)
async def list_risk_profiles():
    """
    Get available risk profile types with their score bands.

    Returns summary of each profile suitable for selection UI.
    """
    return {
        "profiles": [get_risk_profile_summary(profile_type) for profile_type in RiskProfileType]
    }


# ==================== Portfolios ====================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    data: PortfolioCreate,
    service: PortfolioService = Depends(get_service),
):
    """
    Create a new portfolio.

    Every field is validated before anything is stored; all field errors
    are reported together.
    """
    portfolio = await service.create_portfolio(data.to_input())
    return portfolio.to_dict()


@router.get("/users/{user_id}")
async def list_user_portfolios(
    user_id: str,
    service: PortfolioService = Depends(get_service),
):
    """List a user's portfolios, oldest first, as lightweight summaries."""
    portfolios = await service.get_user_portfolios(user_id)
    return {
        "portfolios": [p.summary() for p in portfolios],
        "count": len(portfolios),
    }


@router.get("/users/{user_id}/stats", response_model=PortfolioStatsResponse)
async def get_user_stats(
    user_id: str,
    service: PortfolioService = Depends(get_service),
):
    """Aggregate value and return across a user's portfolios."""
    stats = await service.get_user_portfolio_stats(user_id)
    return stats.to_dict()


@router.get("/{portfolio_id}")
async def get_portfolio(
    portfolio_id: str,
    service: PortfolioService = Depends(get_service),
):
    """Get portfolio details including assets and current allocation."""
    portfolio = await service.get_portfolio(portfolio_id)
    data = portfolio.to_dict()
    data["summary"] = portfolio.summary()
    return data


@router.patch("/{portfolio_id}")
async def update_portfolio(
    portfolio_id: str,
    data: PortfolioUpdate,
    service: PortfolioService = Depends(get_service),
):
    """Update portfolio settings."""
    portfolio = await service.update_portfolio(portfolio_id, data.to_input())
    return portfolio.to_dict()


@router.delete("/{portfolio_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_portfolio(
    portfolio_id: str,
    service: PortfolioService = Depends(get_service),
):
    """Delete a portfolio and all of its assets."""
    await service.delete_portfolio(portfolio_id)


# ==================== Assets ====================

@router.post("/{portfolio_id}/assets", status_code=status.HTTP_201_CREATED)
async def add_asset(
    portfolio_id: str,
    data: AssetCreate,
    service: PortfolioService = Depends(get_service),
):
    """Add an asset; an already held symbol is merged into the existing position."""
    portfolio = await service.add_asset(data.to_input(portfolio_id))
    return portfolio.to_dict()


@router.patch("/{portfolio_id}/assets/{asset_id}")
async def update_asset(
    portfolio_id: str,
    asset_id: str,
    data: AssetUpdate,
    service: PortfolioService = Depends(get_service),
):
    portfolio = await service.update_asset(data.to_input(portfolio_id, asset_id))
    return portfolio.to_dict()


@router.delete("/{portfolio_id}/assets/{asset_id}")
async def remove_asset(
    portfolio_id: str,
    asset_id: str,
    service: PortfolioService = Depends(get_service),
):
    portfolio = await service.remove_asset(portfolio_id, asset_id)
    return portfolio.to_dict()


# ==================== Rebalancing ====================

@router.post("/{portfolio_id}/rebalance")
async def calculate_rebalancing(
    portfolio_id: str,
    data: RebalanceRequest,
    service: PortfolioService = Depends(get_service),
):
    """
    Calculate the trades that bring the portfolio back to its targets.

    Prices supplied in the body take precedence over stored asset prices.
    Nothing is executed; the plan is returned for review.
    """
    result = await service.calculate_rebalancing(
        portfolio_id,
        contribution=data.contribution,
        prices=data.prices,
    )
    return result.to_dict()

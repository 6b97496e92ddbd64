"""
Portfolio Management Module

Core business logic for portfolio management including:
- Portfolio, asset and allocation value types
- Input validation
- Manual rebalancing calculation
- Portfolio CRUD service
"""
from invest_core.core.portfolio.models import (
    Category,
    Objective,
    RiskProfileType,
    RiskProfile,
    TargetAllocation,
    Asset,
    Portfolio,
    CreatePortfolioInput,
    UpdatePortfolioInput,
    AddAssetInput,
    UpdateAssetInput,
    RISK_SCORE_BANDS,
    DEFAULT_TARGET_ALLOCATIONS,
    default_score,
    get_risk_profile_summary,
)
from invest_core.core.portfolio.validator import (
    ValidationCode,
    FieldError,
    ValidationResult,
    validate_portfolio_name,
    validate_risk_profile,
    validate_target_allocations,
    validate_time_horizon,
    validate_currency,
    validate_objective,
    validate_portfolio_input,
    validate_asset_input,
)
from invest_core.core.portfolio.rebalancing import (
    TradeAction,
    RebalanceAction,
    ProjectedAllocation,
    RebalancingResult,
    RebalancingCalculator,
    calculate_rebalancing,
)
from invest_core.core.portfolio.service import (
    PortfolioService,
    PortfolioStats,
    get_portfolio_service,
)

__all__ = [
    # Models
    "Category",
    "Objective",
    "RiskProfileType",
    "RiskProfile",
    "TargetAllocation",
    "Asset",
    "Portfolio",
    "CreatePortfolioInput",
    "UpdatePortfolioInput",
    "AddAssetInput",
    "UpdateAssetInput",
    "RISK_SCORE_BANDS",
    "DEFAULT_TARGET_ALLOCATIONS",
    "default_score",
    "get_risk_profile_summary",
    # Validation
    "ValidationCode",
    "FieldError",
    "ValidationResult",
    "validate_portfolio_name",
    "validate_risk_profile",
    "validate_target_allocations",
    "validate_time_horizon",
    "validate_currency",
    "validate_objective",
    "validate_portfolio_input",
    "validate_asset_input",
    # Rebalancing
    "TradeAction",
    "RebalanceAction",
    "ProjectedAllocation",
    "RebalancingResult",
    "RebalancingCalculator",
    "calculate_rebalancing",
    # Service
    "PortfolioService",
    "PortfolioStats",
    "get_portfolio_service",
]

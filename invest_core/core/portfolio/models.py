"""
Portfolio Domain Models

Immutable value types for portfolios, their target allocations,
risk profiles and assets. Collections are tuples and every change
produces a new instance via dataclasses.replace.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Any, Optional


MONEY_PRECISION = Decimal("0.01")
PERCENT_PRECISION = Decimal("0.0001")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric value to Decimal.

    Goes through str() so floats keep their shortest repr instead of
    their full binary expansion. Raises InvalidOperation for non-numbers.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise InvalidOperation(f"Not a number: {value!r}")
    if isinstance(value, str):
        value = value.strip()
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def quantize_percent(value: Decimal) -> Decimal:
    return value.quantize(PERCENT_PRECISION, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(str, Enum):
    """
    Asset allocation buckets.

    The set is closed: a new bucket is added by declaring a member here.
    Unknown tags are rejected by Category.parse and reported by the
    validator as INVALID_CATEGORY.
    """
    STOCKS = "stocks"
    BONDS = "bonds"
    REITS = "reits"
    CRYPTO = "crypto"
    CASH = "cash"
    ALTERNATIVES = "alternatives"

    @classmethod
    def parse(cls, value: "Category | str") -> "Category":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid category: {value!r}")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid category: {value!r}") from None


class Objective(str, Enum):
    """Portfolio objective tags."""
    RETIREMENT = "retirement"
    EDUCATION = "education"
    EMERGENCY = "emergency"
    INVESTMENT = "investment"
    CUSTOM = "custom"


class RiskProfileType(str, Enum):
    """Investor risk profile types."""
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"
    CUSTOM = "custom"


MIN_RISK_SCORE = 1
MAX_RISK_SCORE = 10

# Inclusive score band per profile type; custom accepts the full range
RISK_SCORE_BANDS: dict[RiskProfileType, tuple[int, int]] = {
    RiskProfileType.CONSERVATIVE: (1, 3),
    RiskProfileType.MODERATE: (4, 7),
    RiskProfileType.AGGRESSIVE: (8, 10),
    RiskProfileType.CUSTOM: (MIN_RISK_SCORE, MAX_RISK_SCORE),
}

RISK_PROFILE_DESCRIPTIONS: dict[RiskProfileType, str] = {
    RiskProfileType.CONSERVATIVE: "Capital preservation first, low volatility tolerance.",
    RiskProfileType.MODERATE: "Balance between growth and stability.",
    RiskProfileType.AGGRESSIVE: "Growth focus with high volatility tolerance.",
    RiskProfileType.CUSTOM: "User-defined risk preferences.",
}


def default_score(profile_type: RiskProfileType | str) -> int:
    """Midpoint of the profile type's band (rounded down)."""
    low, high = RISK_SCORE_BANDS[RiskProfileType(profile_type)]
    return (low + high) // 2


def get_risk_profile_summary(profile_type: RiskProfileType | str) -> dict:
    """Summary of a risk profile type suitable for selection UIs."""
    profile_type = RiskProfileType(profile_type)
    low, high = RISK_SCORE_BANDS[profile_type]
    return {
        "type": profile_type.value,
        "min_score": low,
        "max_score": high,
        "default_score": default_score(profile_type),
        "description": RISK_PROFILE_DESCRIPTIONS[profile_type],
    }


@dataclass(frozen=True)
class RiskProfile:
    """Investor risk profile (type + 1..10 score)."""
    type: RiskProfileType
    score: int
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "score": self.score,
            "description": self.description,
        }


@dataclass(frozen=True)
class TargetAllocation:
    """Target percentage for one category."""
    category: Category
    percentage: Decimal

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "percentage": float(self.percentage),
        }


DEFAULT_TARGET_ALLOCATIONS: tuple[TargetAllocation, ...] = (
    TargetAllocation(Category.STOCKS, Decimal("60")),
    TargetAllocation(Category.BONDS, Decimal("30")),
    TargetAllocation(Category.CASH, Decimal("10")),
)


@dataclass(frozen=True)
class Asset:
    """
    A holding inside a portfolio.

    current_price is optional: a manually tracked asset may only know
    its cost basis until a price is supplied.
    """
    asset_id: str
    symbol: str
    category: Category
    quantity: Decimal
    average_price: Decimal
    current_price: Optional[Decimal] = None
    name: str = ""
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def invested_value(self) -> Decimal:
        return self.quantity * self.average_price

    @property
    def current_value(self) -> Decimal:
        """Market value, falling back to cost basis when no price is known."""
        price = self.current_price if self.current_price is not None else self.average_price
        return self.quantity * price

    @property
    def profit_loss(self) -> Decimal:
        return self.current_value - self.invested_value

    @property
    def profit_loss_percent(self) -> Decimal:
        if self.invested_value == 0:
            return ZERO
        return quantize_percent(self.profit_loss / self.invested_value * HUNDRED)

    def to_dict(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "symbol": self.symbol,
            "name": self.name,
            "category": self.category.value,
            "quantity": float(self.quantity),
            "average_price": float(self.average_price),
            "current_price": float(self.current_price) if self.current_price is not None else None,
            "invested_value": float(quantize_money(self.invested_value)),
            "current_value": float(quantize_money(self.current_value)),
            "profit_loss": float(quantize_money(self.profit_loss)),
            "profit_loss_percent": float(self.profit_loss_percent),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class Portfolio:
    """
    Portfolio aggregate root.

    Owns its assets and target allocations; both are replaced as whole
    tuples, never mutated in place.
    """
    id: str
    user_id: str
    name: str
    objective: Objective
    risk_profile: RiskProfile
    target_allocations: tuple[TargetAllocation, ...]
    time_horizon: int
    description: str = ""
    target_amount: Optional[Decimal] = None
    monthly_contribution: Optional[Decimal] = None
    assets: tuple[Asset, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    # ==================== Derived Values ====================

    @property
    def total_value(self) -> Decimal:
        return sum((a.current_value for a in self.assets), ZERO)

    @property
    def total_invested(self) -> Decimal:
        return sum((a.invested_value for a in self.assets), ZERO)

    @property
    def total_return(self) -> Decimal:
        return self.total_value - self.total_invested

    @property
    def total_return_percent(self) -> Decimal:
        invested = self.total_invested
        if invested == 0:
            return ZERO
        return quantize_percent(self.total_return / invested * HUNDRED)

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        for asset in self.assets:
            if asset.asset_id == asset_id:
                return asset
        return None

    def value_by_category(self) -> dict[Category, Decimal]:
        values: dict[Category, Decimal] = {}
        for asset in self.assets:
            values[asset.category] = values.get(asset.category, ZERO) + asset.current_value
        return values

    # ==================== Copy-on-write Helpers ====================

    def with_assets(self, assets: tuple[Asset, ...]) -> "Portfolio":
        return replace(self, assets=tuple(assets), updated_at=utcnow())

    def with_changes(self, **changes: Any) -> "Portfolio":
        return replace(self, updated_at=utcnow(), **changes)

    # ==================== Serialization ====================

    def summary(self) -> dict:
        """Value, return and current-vs-target allocation."""
        total = self.total_value
        current = self.value_by_category()
        allocation = []
        for target in self.target_allocations:
            value = current.get(target.category, ZERO)
            weight = quantize_percent(value / total * HUNDRED) if total > 0 else ZERO
            allocation.append({
                "category": target.category.value,
                "current_value": float(quantize_money(value)),
                "current_percentage": float(weight),
                "target_percentage": float(target.percentage),
                "drift": float(weight - target.percentage),
            })
        return {
            "portfolio_id": self.id,
            "name": self.name,
            "objective": self.objective.value,
            "total_value": float(quantize_money(total)),
            "total_invested": float(quantize_money(self.total_invested)),
            "total_return": float(quantize_money(self.total_return)),
            "total_return_percent": float(self.total_return_percent),
            "asset_count": len(self.assets),
            "allocation": allocation,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "objective": self.objective.value,
            "risk_profile": self.risk_profile.to_dict(),
            "target_allocations": [t.to_dict() for t in self.target_allocations],
            "time_horizon": self.time_horizon,
            "target_amount": float(self.target_amount) if self.target_amount is not None else None,
            "monthly_contribution": (
                float(self.monthly_contribution) if self.monthly_contribution is not None else None
            ),
            "assets": [a.to_dict() for a in self.assets],
            "total_value": float(quantize_money(self.total_value)),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


# ==================== Service Inputs ====================
# Raw caller records: fields are not trimmed or type-checked yet,
# the validator inspects them before anything is built.

@dataclass
class CreatePortfolioInput:
    """Input for PortfolioService.create_portfolio."""
    user_id: str
    name: Any
    risk_profile: Any
    target_allocations: Any = field(default_factory=lambda: [
        {"category": t.category.value, "percentage": t.percentage}
        for t in DEFAULT_TARGET_ALLOCATIONS
    ])
    time_horizon: Any = 10
    objective: Any = Objective.INVESTMENT.value
    description: Any = ""
    target_amount: Any = None
    monthly_contribution: Any = None


CLEARABLE_FIELDS = ("target_amount", "monthly_contribution")


@dataclass
class UpdatePortfolioInput:
    """
    Partial update; None fields are left unchanged.

    Optional amounts are removed by naming them in clear, since None
    already means "unchanged".
    """
    name: Any = None
    description: Any = None
    objective: Any = None
    risk_profile: Any = None
    target_allocations: Any = None
    time_horizon: Any = None
    target_amount: Any = None
    monthly_contribution: Any = None
    clear: Any = ()

    def provided_fields(self) -> dict[str, Any]:
        return {
            k: v for k, v in self.__dict__.items()
            if v is not None and k != "clear"
        }


@dataclass
class AddAssetInput:
    """Input for PortfolioService.add_asset."""
    portfolio_id: str
    symbol: Any
    category: Any
    quantity: Any
    average_price: Any
    current_price: Any = None
    name: Any = ""


@dataclass
class UpdateAssetInput:
    """Input for PortfolioService.update_asset; None fields are left unchanged."""
    portfolio_id: str
    asset_id: str
    quantity: Any = None
    average_price: Any = None
    current_price: Any = None
    category: Any = None
    name: Any = None

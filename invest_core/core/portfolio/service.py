"""
Portfolio Service

Core business logic for portfolio management: CRUD operations, asset
management, user statistics and rebalancing calculations. Every mutation
is validated before anything is written and is serialized per portfolio.
"""
import asyncio
import inspect
import uuid
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, AsyncIterator, Callable, Iterator, Mapping, Optional

from loguru import logger

from invest_core.config import settings
from invest_core.core.features import FeatureFlag, FeatureFlags
from invest_core.core.portfolio.models import (
    CLEARABLE_FIELDS,
    AddAssetInput,
    Asset,
    Category,
    CreatePortfolioInput,
    Objective,
    Portfolio,
    RiskProfile,
    RiskProfileType,
    TargetAllocation,
    UpdateAssetInput,
    UpdatePortfolioInput,
    HUNDRED,
    ZERO,
    quantize_money,
    quantize_percent,
    to_decimal,
    utcnow,
)
from invest_core.core.portfolio.rebalancing import RebalancingCalculator, RebalancingResult
from invest_core.core.portfolio.validator import (
    ValidationCode,
    ValidationResult,
    read_field,
    validate_asset_input,
    validate_portfolio_input,
)
from invest_core.repositories.portfolio import InMemoryPortfolioRepository, PortfolioRepository
from invest_core.utils.exceptions import (
    AssetNotFoundError,
    InvalidInputError,
    InvestCoreException,
    LimitExceededError,
    MissingPriceError,
    PortfolioNotFoundError,
    ValidationFailedError,
)


PriceResolver = Callable[[str], Any]  # sync or async, returns None when unresolved


@dataclass
class PortfolioStats:
    """Aggregate figures across all of a user's portfolios."""
    total_portfolios: int = 0
    total_value: Decimal = ZERO
    total_invested: Decimal = ZERO
    total_return: Decimal = ZERO
    total_return_percent: Decimal = ZERO
    portfolios_by_objective: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_portfolios": self.total_portfolios,
            "total_value": float(self.total_value),
            "total_invested": float(self.total_invested),
            "total_return": float(self.total_return),
            "total_return_percent": float(self.total_return_percent),
            "portfolios_by_objective": dict(self.portfolios_by_objective),
        }


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


@contextmanager
def operation_context(operation: str, **ids: Any) -> Iterator[None]:
    """Tag domain errors escaping the block with the operation and ids."""
    try:
        yield
    except InvestCoreException as e:
        e.with_context(operation=operation, **ids)
        raise


class PortfolioService:
    """
    Service for portfolio management operations.

    Handles portfolio CRUD, asset management, user statistics and
    rebalancing, checking feature flags and validating input first.

    Usage:
        service = PortfolioService(repository, FeatureFlags.from_settings())

        # Create portfolio
        portfolio = await service.create_portfolio(CreatePortfolioInput(
            user_id="user-1",
            name="Retirement",
            risk_profile={"type": "moderate", "score": 5},
        ))

        # Rebalance with a new contribution
        result = await service.calculate_rebalancing(portfolio.id, contribution=Decimal("1000"))
    """

    def __init__(
        self,
        repository: Optional[PortfolioRepository] = None,
        features: Optional[FeatureFlags] = None,
        calculator: Optional[RebalancingCalculator] = None,
        price_timeout: Optional[float] = None,
    ):
        self.repository = repository if repository is not None else InMemoryPortfolioRepository()
        self.features = features if features is not None else FeatureFlags.from_settings()
        self.calculator = calculator if calculator is not None else RebalancingCalculator()
        self.price_timeout = price_timeout if price_timeout is not None else settings.PRICE_LOOKUP_TIMEOUT
        self._locks: dict[str, _KeyLock] = {}

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        """Serialize work on key; the entry is dropped once nobody holds or awaits it."""
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    # ==================== CRUD Operations ====================

    async def create_portfolio(self, data: CreatePortfolioInput) -> Portfolio:
        """
        Create a new portfolio.

        Raises:
            FeatureDisabledError: manual portfolios are not enabled
            ValidationFailedError: one or more fields are invalid
            LimitExceededError: the user already owns the maximum number of
                portfolios and multiple portfolios are not enabled
        """
        operation = "create_portfolio"
        with operation_context(operation, user_id=getattr(data, "user_id", None)):
            self.features.require(FeatureFlag.MANUAL_PORTFOLIO, operation)
            user_id = self._require_id(getattr(data, "user_id", None), "user_id")
            self._raise_if_invalid(validate_portfolio_input(data), operation)

            async with self._locked(f"user:{user_id}"):
                if not self.features.is_enabled(FeatureFlag.MULTI_PORTFOLIO):
                    owned = await self.repository.count_by_user(user_id)
                    if owned >= self.features.max_portfolios:
                        logger.warning(
                            f"User {user_id} reached portfolio limit ({self.features.max_portfolios})"
                        )
                        raise LimitExceededError(self.features.max_portfolios)

                now = utcnow()
                portfolio = Portfolio(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    name=data.name.strip(),
                    description=(data.description or "").strip(),
                    objective=_parse_objective(data.objective),
                    risk_profile=_build_risk_profile(data.risk_profile),
                    target_allocations=_build_allocations(data.target_allocations),
                    time_horizon=int(to_decimal(data.time_horizon)),
                    target_amount=_optional_amount(data.target_amount),
                    monthly_contribution=_optional_amount(data.monthly_contribution),
                    created_at=now,
                    updated_at=now,
                )
                await self.repository.save(portfolio)

        logger.info(f"Created portfolio {portfolio.id} for user {user_id}")
        return portfolio

    async def get_portfolio(self, portfolio_id: str) -> Portfolio:
        """Get portfolio by ID."""
        portfolio = await self.repository.get(portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)
        return portfolio

    async def get_user_portfolios(self, user_id: str) -> list[Portfolio]:
        """Get all portfolios for a user, oldest first."""
        return await self.repository.list_by_user(user_id)

    async def update_portfolio(
        self,
        portfolio_id: str,
        updates: UpdatePortfolioInput | Mapping[str, Any],
    ) -> Portfolio:
        """
        Update portfolio fields.

        Only fields that are provided change; target allocations are
        replaced as a whole set. None means "unchanged", so target_amount and
        monthly_contribution are removed by listing them in updates.clear.

        Raises:
            InvalidInputError: unknown field, or clear names a field that is
                not clearable or is also being set
        """
        operation = "update_portfolio"
        with operation_context(operation, portfolio_id=portfolio_id):
            if isinstance(updates, Mapping):
                try:
                    updates = UpdatePortfolioInput(**updates)
                except TypeError as e:
                    raise InvalidInputError(f"Unknown portfolio field: {e}") from None
            cleared = self._fields_to_clear(updates)
            self._raise_if_invalid(validate_portfolio_input(updates, partial=True), operation)

            async with self._locked(portfolio_id):
                portfolio = await self.get_portfolio(portfolio_id)
                changes: dict[str, Any] = {}
                provided = updates.provided_fields()

                if "name" in provided:
                    changes["name"] = updates.name.strip()
                if "description" in provided:
                    changes["description"] = updates.description.strip()
                if "objective" in provided:
                    changes["objective"] = _parse_objective(updates.objective)
                if "risk_profile" in provided:
                    changes["risk_profile"] = _build_risk_profile(updates.risk_profile)
                if "target_allocations" in provided:
                    changes["target_allocations"] = _build_allocations(updates.target_allocations)
                if "time_horizon" in provided:
                    changes["time_horizon"] = int(to_decimal(updates.time_horizon))
                if "target_amount" in provided:
                    changes["target_amount"] = _optional_amount(updates.target_amount)
                if "monthly_contribution" in provided:
                    changes["monthly_contribution"] = _optional_amount(updates.monthly_contribution)
                for name in cleared:
                    changes[name] = None

                if not changes:
                    return portfolio
                updated = await self.repository.save(portfolio.with_changes(**changes))

        logger.info(f"Updated portfolio {portfolio_id}: {', '.join(sorted(changes))}")
        return updated

    async def delete_portfolio(self, portfolio_id: str) -> None:
        """Delete a portfolio and all of its assets."""
        with operation_context("delete_portfolio", portfolio_id=portfolio_id):
            async with self._locked(portfolio_id):
                deleted = await self.repository.delete(portfolio_id)
                if not deleted:
                    raise PortfolioNotFoundError(portfolio_id)

        logger.info(f"Deleted portfolio {portfolio_id}")

    # ==================== Asset Management ====================

    async def add_asset(self, data: AddAssetInput) -> Portfolio:
        """
        Add an asset to a portfolio.

        Adding a symbol the portfolio already holds merges into that asset:
        quantities add up and the average price becomes the weighted average.
        """
        operation = "add_asset"
        portfolio_id = getattr(data, "portfolio_id", None)
        with operation_context(operation, portfolio_id=portfolio_id):
            portfolio_id = self._require_id(portfolio_id, "portfolio_id")
            self._raise_if_invalid(validate_asset_input(data), operation)

            symbol = data.symbol.strip().upper()
            category = Category.parse(data.category)
            quantity = to_decimal(data.quantity)
            average_price = to_decimal(data.average_price)
            current_price = _optional_amount(data.current_price)

            async with self._locked(portfolio_id):
                portfolio = await self.get_portfolio(portfolio_id)
                existing = next((a for a in portfolio.assets if a.symbol == symbol), None)

                if existing is None:
                    asset = Asset(
                        asset_id=str(uuid.uuid4()),
                        symbol=symbol,
                        name=data.name.strip() if isinstance(data.name, str) else "",
                        category=category,
                        quantity=quantity,
                        average_price=average_price,
                        current_price=current_price,
                    )
                    assets = portfolio.assets + (asset,)
                else:
                    if existing.category != category:
                        result = ValidationResult()
                        result.add_error(
                            "category",
                            ValidationCode.CATEGORY_CONFLICT,
                            f"{symbol} is already held as {existing.category.value}",
                        )
                        self._raise_if_invalid(result, operation)
                    total_quantity = existing.quantity + quantity
                    weighted_price = (
                        existing.invested_value + quantity * average_price
                    ) / total_quantity
                    asset = Asset(
                        asset_id=existing.asset_id,
                        symbol=symbol,
                        name=existing.name,
                        category=category,
                        quantity=total_quantity,
                        average_price=weighted_price,
                        current_price=current_price if current_price is not None else existing.current_price,
                    )
                    assets = tuple(asset if a.asset_id == existing.asset_id else a for a in portfolio.assets)

                updated = await self.repository.save(portfolio.with_assets(assets))

        logger.info(f"Added {quantity} {symbol} to portfolio {portfolio_id}")
        return updated

    async def update_asset(self, data: UpdateAssetInput) -> Portfolio:
        """Update an asset's quantity, prices, category or name."""
        operation = "update_asset"
        portfolio_id = getattr(data, "portfolio_id", None)
        asset_id = getattr(data, "asset_id", None)
        with operation_context(operation, portfolio_id=portfolio_id, asset_id=asset_id):
            portfolio_id = self._require_id(portfolio_id, "portfolio_id")
            asset_id = self._require_id(asset_id, "asset_id")
            self._raise_if_invalid(validate_asset_input(data, partial=True), operation)

            async with self._locked(portfolio_id):
                portfolio = await self.get_portfolio(portfolio_id)
                asset = portfolio.get_asset(asset_id)
                if asset is None:
                    raise AssetNotFoundError(asset_id, portfolio_id)

                changes: dict[str, Any] = {}
                if data.quantity is not None:
                    changes["quantity"] = to_decimal(data.quantity)
                if data.average_price is not None:
                    changes["average_price"] = to_decimal(data.average_price)
                if data.current_price is not None:
                    changes["current_price"] = to_decimal(data.current_price)
                if data.category is not None:
                    changes["category"] = Category.parse(data.category)
                if isinstance(data.name, str):
                    changes["name"] = data.name.strip()

                replacement = replace(asset, updated_at=utcnow(), **changes)
                assets = tuple(replacement if a.asset_id == asset_id else a for a in portfolio.assets)
                updated = await self.repository.save(portfolio.with_assets(assets))

        logger.info(f"Updated asset {asset_id} in portfolio {portfolio_id}")
        return updated

    async def remove_asset(self, portfolio_id: str, asset_id: str) -> Portfolio:
        """Remove an asset from a portfolio."""
        with operation_context("remove_asset", portfolio_id=portfolio_id, asset_id=asset_id):
            async with self._locked(portfolio_id):
                portfolio = await self.get_portfolio(portfolio_id)
                if portfolio.get_asset(asset_id) is None:
                    raise AssetNotFoundError(asset_id, portfolio_id)
                assets = tuple(a for a in portfolio.assets if a.asset_id != asset_id)
                updated = await self.repository.save(portfolio.with_assets(assets))

        logger.info(f"Removed asset {asset_id} from portfolio {portfolio_id}")
        return updated

    # ==================== Statistics ====================

    async def get_user_portfolio_stats(self, user_id: str) -> PortfolioStats:
        """
        Aggregate value and return across all of a user's portfolios.

        The return percentage is weighted by invested amount, i.e.
        total return over total invested.
        """
        portfolios = await self.repository.list_by_user(user_id)

        stats = PortfolioStats(total_portfolios=len(portfolios))
        total_value = ZERO
        total_invested = ZERO
        for portfolio in portfolios:
            total_value += portfolio.total_value
            total_invested += portfolio.total_invested
            objective = portfolio.objective.value
            stats.portfolios_by_objective[objective] = stats.portfolios_by_objective.get(objective, 0) + 1

        total_return = total_value - total_invested
        stats.total_value = quantize_money(total_value)
        stats.total_invested = quantize_money(total_invested)
        stats.total_return = quantize_money(total_return)
        stats.total_return_percent = (
            quantize_percent(total_return / total_invested * HUNDRED) if total_invested > 0 else ZERO
        )
        return stats

    # ==================== Rebalancing ====================

    async def calculate_rebalancing(
        self,
        portfolio_id: str,
        contribution: Optional[Any] = None,
        prices: Optional[Mapping[str, Any]] = None,
        price_resolver: Optional[PriceResolver] = None,
        timeout: Optional[float] = None,
    ) -> RebalancingResult:
        """
        Calculate a rebalancing plan for a portfolio.

        Args:
            portfolio_id: Portfolio to rebalance
            contribution: New cash to invest alongside the rebalance
            prices: Current prices keyed by asset id or symbol
            price_resolver: Callable (sync or async) returning the price for an
                asset id, or None when it cannot resolve it. Only consulted for
                assets missing from prices. Each lookup is bounded by timeout.
            timeout: Seconds per lookup, default settings.PRICE_LOOKUP_TIMEOUT

        Raises:
            FeatureDisabledError: the rebalancing calculator is not enabled
            PortfolioNotFoundError: unknown portfolio
            MissingPriceError: a price is unavailable or its lookup timed out
            InvalidInputError: malformed contribution, prices or targets
        """
        operation = "calculate_rebalancing"
        with operation_context(operation, portfolio_id=portfolio_id):
            self.features.require(FeatureFlag.REBALANCING_CALCULATOR, operation)
            portfolio = await self.get_portfolio(portfolio_id)

            resolved: dict[str, Any] = dict(prices or {})
            if price_resolver is not None:
                pending = [
                    a for a in portfolio.assets
                    if a.asset_id not in resolved and a.symbol not in resolved
                ]
                looked_up = await self._resolve_prices(pending, price_resolver, timeout)
                resolved.update(looked_up)

            result = self.calculator.calculate(
                portfolio.assets,
                portfolio.target_allocations,
                contribution=contribution,
                prices=resolved,
            )

        logger.debug(
            f"Rebalancing for portfolio {portfolio_id}: {len(result.trades)} trades, "
            f"buy={result.total_buy} sell={result.total_sell}"
        )
        return result

    async def _resolve_prices(
        self,
        assets: list[Asset],
        resolver: PriceResolver,
        timeout: Optional[float],
    ) -> dict[str, Any]:
        """Look up prices concurrently; a timed-out lookup raises MissingPriceError."""
        timeout = timeout if timeout is not None else self.price_timeout

        async def lookup(asset: Asset) -> tuple[str, Any]:
            if inspect.iscoroutinefunction(resolver):
                call = resolver(asset.asset_id)
            else:
                call = asyncio.to_thread(resolver, asset.asset_id)
            try:
                price = await asyncio.wait_for(call, timeout=timeout)
                if inspect.isawaitable(price):
                    price = await asyncio.wait_for(price, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Price lookup for {asset.symbol} ({asset.asset_id}) timed out after {timeout}s")
                raise MissingPriceError(
                    asset.asset_id,
                    message=f"Price lookup for '{asset.symbol}' timed out",
                ) from None
            return asset.asset_id, price

        tasks = [asyncio.ensure_future(lookup(a)) for a in assets]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # First failure wins; the other lookups are cancelled and reaped
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return {asset_id: price for asset_id, price in results if price is not None}

    # ==================== Helpers ====================

    @staticmethod
    def _raise_if_invalid(result: ValidationResult, operation: str) -> None:
        if not result.is_valid:
            fields = ", ".join(sorted(result.errors_by_field()))
            logger.warning(f"Rejected {operation}: invalid {fields}")
            raise ValidationFailedError(result.errors)

    @staticmethod
    def _fields_to_clear(updates: UpdatePortfolioInput) -> list[str]:
        raw = updates.clear or ()
        if isinstance(raw, str):
            raw = (raw,)
        cleared = []
        for name in raw:
            if name not in CLEARABLE_FIELDS:
                raise InvalidInputError(
                    f"Cannot clear '{name}'",
                    details={"clearable": list(CLEARABLE_FIELDS)},
                )
            if getattr(updates, name) is not None:
                raise InvalidInputError(f"'{name}' cannot be both set and cleared")
            if name not in cleared:
                cleared.append(name)
        return cleared

    @staticmethod
    def _require_id(value: Any, name: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError(f"{name} is required")
        return value.strip()


# ==================== Input Builders ====================
# Only called after validation succeeded.

def _parse_objective(raw: Any) -> Objective:
    return Objective(raw.strip().lower() if isinstance(raw, str) else raw)


def _build_risk_profile(raw: Any) -> RiskProfile:
    # RiskProfile records are rebuilt too; their fields may still be raw
    raw_type = read_field(raw, "type")
    description = read_field(raw, "description") or ""
    return RiskProfile(
        type=RiskProfileType(raw_type.strip().lower() if isinstance(raw_type, str) else raw_type),
        score=int(to_decimal(read_field(raw, "score"))),
        description=description.strip() if isinstance(description, str) else "",
    )


def _build_allocations(raw: Any) -> tuple[TargetAllocation, ...]:
    return tuple(
        TargetAllocation(
            category=Category.parse(read_field(item, "category")),
            percentage=to_decimal(read_field(item, "percentage")),
        )
        for item in raw
    )


def _optional_amount(raw: Any) -> Optional[Decimal]:
    if raw is None:
        return None
    return to_decimal(raw)


# Default service instance
_portfolio_service: Optional[PortfolioService] = None


def get_portfolio_service() -> PortfolioService:
    """Get the process-wide service instance, creating it on first use."""
    global _portfolio_service
    if _portfolio_service is None:
        _portfolio_service = PortfolioService()
    return _portfolio_service

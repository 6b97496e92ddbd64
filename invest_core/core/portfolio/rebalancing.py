"""
Manual Rebalancing Calculator

Turns current holdings, target allocation percentages, an optional cash
contribution and optional live prices into buy/sell/hold instructions per
category. Pure and deterministic: same inputs, same result.

Policy:
- The contribution is added to the total before target values are computed,
  so new money fills underweight categories first.
- A category whose delta is below the drift tolerance is held, as long as
  the net delta of all held categories also stays below it; past that,
  held categories are released last-declared first. The net
  delta of held categories is absorbed by the trading side (buys shrink, or
  sells shrink and any leftover cash goes to held underweight categories) so
  that total_buy - total_sell == contribution exactly.
- Each buy is funded by the contribution in proportion to its size; the rest
  comes from sales.
- Amounts are rounded to cents; the rounding remainder goes to the largest
  trade. Ties are broken by the order categories are declared in the targets.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from loguru import logger

from invest_core.config import settings
from invest_core.core.portfolio.models import (
    Asset,
    Category,
    HUNDRED,
    ZERO,
    quantize_money,
    quantize_percent,
    to_decimal,
)
from invest_core.core.portfolio.validator import validate_target_allocations
from invest_core.utils.exceptions import InvalidInputError, MissingPriceError


PriceMap = Mapping[str, Any]


class TradeAction(str, Enum):
    """Instruction for one category."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass(frozen=True)
class RebalanceAction:
    """Instruction for one category, with the values it was derived from."""
    category: Category
    action: TradeAction
    amount: Decimal
    current_value: Decimal
    target_value: Decimal
    current_percentage: Decimal
    target_percentage: Decimal
    from_contribution: Decimal = ZERO
    from_sales: Decimal = ZERO

    @property
    def signed_amount(self) -> Decimal:
        if self.action == TradeAction.SELL:
            return -self.amount
        return self.amount

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "action": self.action.value,
            "amount": float(self.amount),
            "current_value": float(self.current_value),
            "target_value": float(self.target_value),
            "current_percentage": float(self.current_percentage),
            "target_percentage": float(self.target_percentage),
            "from_contribution": float(self.from_contribution),
            "from_sales": float(self.from_sales),
        }


@dataclass(frozen=True)
class ProjectedAllocation:
    """Post-trade allocation of one category, assuming every trade fills exactly."""
    category: Category
    value: Decimal
    percentage: Decimal
    target_percentage: Decimal
    drift: Decimal  # percentage - target_percentage

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "value": float(self.value),
            "percentage": float(self.percentage),
            "target_percentage": float(self.target_percentage),
            "drift": float(self.drift),
        }


@dataclass(frozen=True)
class RebalancingResult:
    """Complete rebalancing plan."""
    actions: tuple[RebalanceAction, ...]
    projected_allocation: tuple[ProjectedAllocation, ...]
    total_value: Decimal  # holdings + contribution
    contribution: Decimal
    total_buy: Decimal
    total_sell: Decimal
    drift_tolerance: Decimal  # percent of total value
    max_current_drift: Decimal  # percentage points, before trades
    residual_drift: Decimal  # percentage points, after trades

    @property
    def trades(self) -> list[RebalanceAction]:
        return [a for a in self.actions if a.action != TradeAction.HOLD]

    @property
    def needs_rebalancing(self) -> bool:
        return bool(self.trades)

    @property
    def net_cash_flow(self) -> Decimal:
        return self.total_buy - self.total_sell

    def get_action(self, category: Category | str) -> Optional[RebalanceAction]:
        category = Category.parse(category)
        for action in self.actions:
            if action.category == category:
                return action
        return None

    def to_dict(self) -> dict:
        return {
            "actions": [a.to_dict() for a in self.actions],
            "projected_allocation": [p.to_dict() for p in self.projected_allocation],
            "total_value": float(self.total_value),
            "contribution": float(self.contribution),
            "total_buy": float(self.total_buy),
            "total_sell": float(self.total_sell),
            "net_cash_flow": float(self.net_cash_flow),
            "drift_tolerance": float(self.drift_tolerance),
            "max_current_drift": float(self.max_current_drift),
            "residual_drift": float(self.residual_drift),
            "needs_rebalancing": self.needs_rebalancing,
        }


class RebalancingCalculator:
    """
    Category-level rebalancing engine.

    Usage:
        calculator = RebalancingCalculator(drift_tolerance_percent=Decimal("0.5"))

        result = calculator.calculate(
            holdings=portfolio.assets,
            targets=portfolio.target_allocations,
            contribution=Decimal("1000"),
            prices={"PETR4": Decimal("38.50")},
        )

        for trade in result.trades:
            print(f"{trade.action.value.upper()} {trade.category.value}: {trade.amount}")
    """

    def __init__(self, drift_tolerance_percent: Optional[Decimal | float | str] = None):
        tolerance = (
            settings.DRIFT_TOLERANCE_PERCENT
            if drift_tolerance_percent is None
            else to_decimal(drift_tolerance_percent)
        )
        if not tolerance.is_finite() or tolerance < 0:
            raise InvalidInputError("Drift tolerance must be a finite, non-negative percentage")
        self.drift_tolerance_percent = tolerance

    def calculate(
        self,
        holdings: Iterable[Asset] | Mapping[Category | str, Any],
        targets: Iterable[Any],
        contribution: Optional[Any] = None,
        prices: Optional[PriceMap] = None,
    ) -> RebalancingResult:
        """
        Compute the rebalancing plan.

        Args:
            holdings: Portfolio assets, or a category -> current value mapping
            targets: TargetAllocation records (or category/percentage mappings)
            contribution: New cash to invest, default 0
            prices: Live prices keyed by asset id or symbol

        Raises:
            InvalidInputError: targets fail validation, or contribution/prices are malformed
            MissingPriceError: an asset has neither a supplied nor a stored price
        """
        targets = list(targets)
        validation = validate_target_allocations(targets)
        if not validation.is_valid:
            raise InvalidInputError(
                "Target allocations are invalid",
                details={"errors": [e.to_dict() for e in validation.errors]},
            )

        contribution = self._parse_contribution(contribution)
        target_pct = {
            Category.parse(_read(t, "category")): to_decimal(_read(t, "percentage"))
            for t in targets
        }
        current = self._current_values(holdings, prices)

        # Declared categories first, then held-but-untargeted ones (0% target)
        order = list(target_pct)
        for category in current:
            if category not in target_pct:
                order.append(category)
                target_pct[category] = ZERO
        for category in order:
            current.setdefault(category, ZERO)

        holdings_value = sum(current.values(), ZERO)
        total = holdings_value + contribution
        pct_sum = sum(target_pct.values(), ZERO)
        normalized_pct = {c: target_pct[c] / pct_sum * HUNDRED for c in order}

        if total == 0:
            return self._all_hold(order, normalized_pct)

        target_value = {c: total * normalized_pct[c] / HUNDRED for c in order}
        delta = {c: target_value[c] - current[c] for c in order}
        tolerance_value = total * self.drift_tolerance_percent / HUNDRED

        trade = self._size_trades(order, delta, tolerance_value)
        amounts = self._round_trades(order, trade, contribution)

        actions = self._build_actions(
            order, amounts, current, target_value, holdings_value, normalized_pct, contribution,
        )
        projected = self._project(order, amounts, current, total, normalized_pct)

        max_current_drift = max(
            (abs(a.current_percentage - a.target_percentage) for a in actions),
            default=ZERO,
        )
        residual_drift = max((abs(p.drift) for p in projected), default=ZERO)
        total_buy = sum((a.amount for a in actions if a.action == TradeAction.BUY), ZERO)
        total_sell = sum((a.amount for a in actions if a.action == TradeAction.SELL), ZERO)

        logger.debug(
            f"Rebalancing plan: total={total} contribution={contribution} "
            f"buy={total_buy} sell={total_sell} residual_drift={residual_drift}"
        )

        return RebalancingResult(
            actions=tuple(actions),
            projected_allocation=tuple(projected),
            total_value=quantize_money(total),
            contribution=contribution,
            total_buy=total_buy,
            total_sell=total_sell,
            drift_tolerance=self.drift_tolerance_percent,
            max_current_drift=max_current_drift,
            residual_drift=residual_drift,
        )

    # ==================== Inputs ====================

    def _parse_contribution(self, contribution: Optional[Any]) -> Decimal:
        if contribution is None:
            return ZERO
        try:
            value = to_decimal(contribution)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidInputError("Contribution must be a number") from None
        if not value.is_finite() or value < 0:
            raise InvalidInputError("Contribution must be a finite, non-negative amount")
        return quantize_money(value)

    def _current_values(
        self,
        holdings: Iterable[Asset] | Mapping[Category | str, Any],
        prices: Optional[PriceMap],
    ) -> dict[Category, Decimal]:
        """Current value per category, in first-seen order."""
        values: dict[Category, Decimal] = {}

        if isinstance(holdings, Mapping):
            for raw_category, raw_value in holdings.items():
                category = self._parse_category(raw_category)
                value = self._parse_amount(raw_value, f"Holding value for {category.value}")
                values[category] = values.get(category, ZERO) + value
            return values

        for asset in holdings:
            price = self._resolve_price(asset, prices)
            values[asset.category] = values.get(asset.category, ZERO) + asset.quantity * price
        return values

    def _resolve_price(self, asset: Asset, prices: Optional[PriceMap]) -> Decimal:
        """Supplied price by asset id, then by symbol, then the stored price."""
        raw = None
        if prices:
            raw = prices.get(asset.asset_id)
            if raw is None:
                raw = prices.get(asset.symbol)
        if raw is not None:
            return self._parse_amount(raw, f"Price for {asset.symbol or asset.asset_id}")
        if asset.current_price is not None:
            return asset.current_price
        raise MissingPriceError(asset.asset_id)

    @staticmethod
    def _parse_category(raw: Any) -> Category:
        try:
            return Category.parse(raw)
        except ValueError as e:
            raise InvalidInputError(str(e)) from None

    @staticmethod
    def _parse_amount(raw: Any, label: str) -> Decimal:
        try:
            value = to_decimal(raw)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidInputError(f"{label} must be a number") from None
        if not value.is_finite() or value < 0:
            raise InvalidInputError(f"{label} must be a finite, non-negative amount")
        return value

    # ==================== Sizing ====================

    def _size_trades(
        self,
        order: list[Category],
        delta: dict[Category, Decimal],
        tolerance_value: Decimal,
    ) -> dict[Category, Decimal]:
        """Signed trade per category (positive buy, negative sell) before rounding."""
        held = [c for c in order if abs(delta[c]) < tolerance_value]

        # Net delta left behind by held categories must itself stay under the
        # tolerance, otherwise absorbing it pushes traded categories off target.
        # Release held categories from the last declared until it does.
        slack = sum((delta[c] for c in held), ZERO)
        while held and abs(slack) >= tolerance_value:
            slack -= delta[held.pop()]

        trade = {c: (ZERO if c in held else delta[c]) for c in order}

        if slack < 0:
            # Held categories are net overweight: less cash for buys
            buys = sum((t for t in trade.values() if t > 0), ZERO)
            if buys > 0:
                factor = (buys + slack) / buys
                for c in order:
                    if trade[c] > 0:
                        trade[c] *= factor
        elif slack > 0:
            # Held categories are net underweight: sell less, then invest the rest
            sells = -sum((t for t in trade.values() if t < 0), ZERO)
            if sells >= slack:
                factor = (sells - slack) / sells
                for c in order:
                    if trade[c] < 0:
                        trade[c] *= factor
            else:
                for c in order:
                    if trade[c] < 0:
                        trade[c] = ZERO
                leftover = slack - sells
                underweight = [c for c in held if delta[c] > 0]
                room = sum((delta[c] for c in underweight), ZERO)
                for c in underweight:
                    trade[c] = leftover * delta[c] / room
        return trade

    def _round_trades(
        self,
        order: list[Category],
        trade: dict[Category, Decimal],
        contribution: Decimal,
    ) -> dict[Category, Decimal]:
        """Round to cents keeping buys - sells == contribution."""
        amounts = {c: quantize_money(trade[c]) for c in order}
        remainder = contribution - sum(amounts.values(), ZERO)
        if remainder == 0:
            return amounts

        traded = [c for c in order if amounts[c] != 0]
        if not traded:
            return amounts
        # max() keeps the first of equal keys, i.e. declaration order
        largest = max(traded, key=lambda c: abs(amounts[c]))
        adjusted = amounts[largest] + remainder
        if adjusted == 0 or (adjusted > 0) == (amounts[largest] > 0):
            amounts[largest] = adjusted
        return amounts

    # ==================== Output ====================

    def _build_actions(
        self,
        order: list[Category],
        amounts: dict[Category, Decimal],
        current: dict[Category, Decimal],
        target_value: dict[Category, Decimal],
        holdings_value: Decimal,
        normalized_pct: dict[Category, Decimal],
        contribution: Decimal,
    ) -> list[RebalanceAction]:
        total_buy = sum((a for a in amounts.values() if a > 0), ZERO)
        funding = self._contribution_shares(order, amounts, contribution, total_buy)

        actions = []
        for index, category in enumerate(order):
            amount = amounts[category]
            if amount > 0:
                action = TradeAction.BUY
            elif amount < 0:
                action = TradeAction.SELL
            else:
                action = TradeAction.HOLD
            from_contribution = funding.get(category, ZERO)
            current_pct = (
                current[category] / holdings_value * HUNDRED if holdings_value > 0 else ZERO
            )
            actions.append(RebalanceAction(
                category=category,
                action=action,
                amount=abs(amount),
                current_value=quantize_money(current[category]),
                target_value=quantize_money(target_value[category]),
                current_percentage=quantize_percent(current_pct),
                target_percentage=quantize_percent(normalized_pct[category]),
                from_contribution=from_contribution,
                from_sales=(amount - from_contribution) if action == TradeAction.BUY else ZERO,
            ))

        group = {TradeAction.BUY: 0, TradeAction.SELL: 1, TradeAction.HOLD: 2}
        position = {c: i for i, c in enumerate(order)}
        actions.sort(key=lambda a: (group[a.action], -a.amount, position[a.category]))
        return actions

    @staticmethod
    def _contribution_shares(
        order: list[Category],
        amounts: dict[Category, Decimal],
        contribution: Decimal,
        total_buy: Decimal,
    ) -> dict[Category, Decimal]:
        """Split the contribution across buys in proportion to their size."""
        if contribution == 0 or total_buy == 0:
            return {}
        buys = [c for c in order if amounts[c] > 0]
        funded = min(contribution, total_buy)
        shares = {c: quantize_money(funded * amounts[c] / total_buy) for c in buys}
        remainder = funded - sum(shares.values(), ZERO)
        if remainder != 0:
            largest = max(buys, key=lambda c: amounts[c])
            shares[largest] += remainder
        return shares

    @staticmethod
    def _project(
        order: list[Category],
        amounts: dict[Category, Decimal],
        current: dict[Category, Decimal],
        total: Decimal,
        normalized_pct: dict[Category, Decimal],
    ) -> list[ProjectedAllocation]:
        projected = []
        for category in order:
            value = current[category] + amounts[category]
            percentage = quantize_percent(value / total * HUNDRED)
            target = quantize_percent(normalized_pct[category])
            projected.append(ProjectedAllocation(
                category=category,
                value=quantize_money(value),
                percentage=percentage,
                target_percentage=target,
                drift=percentage - target,
            ))
        return projected

    def _all_hold(
        self,
        order: list[Category],
        normalized_pct: dict[Category, Decimal],
    ) -> RebalancingResult:
        """Plan for an empty portfolio with no contribution."""
        actions = tuple(
            RebalanceAction(
                category=c,
                action=TradeAction.HOLD,
                amount=ZERO,
                current_value=ZERO,
                target_value=ZERO,
                current_percentage=ZERO,
                target_percentage=quantize_percent(normalized_pct[c]),
            )
            for c in order
        )
        projected = tuple(
            ProjectedAllocation(
                category=c,
                value=ZERO,
                percentage=ZERO,
                target_percentage=quantize_percent(normalized_pct[c]),
                drift=ZERO,
            )
            for c in order
        )
        return RebalancingResult(
            actions=actions,
            projected_allocation=projected,
            total_value=ZERO,
            contribution=ZERO,
            total_buy=ZERO,
            total_sell=ZERO,
            drift_tolerance=self.drift_tolerance_percent,
            max_current_drift=ZERO,
            residual_drift=ZERO,
        )


def _read(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name)


# ==================== Convenience Functions ====================

def calculate_rebalancing(
    holdings: Iterable[Asset] | Mapping[Category | str, Any],
    targets: Iterable[Any],
    contribution: Optional[Any] = None,
    prices: Optional[PriceMap] = None,
    drift_tolerance_percent: Optional[Decimal | float | str] = None,
) -> RebalancingResult:
    """Run a one-off calculation with a fresh calculator."""
    calculator = RebalancingCalculator(drift_tolerance_percent)
    return calculator.calculate(holdings, targets, contribution, prices)

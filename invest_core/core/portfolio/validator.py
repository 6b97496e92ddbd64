"""
Portfolio Input Validator

Independent pure checks over raw portfolio input. Every check returns a
ValidationResult and never raises, so a caller can run all of them and
show every field's errors at once.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping, Optional

from invest_core.config import settings
from invest_core.core.portfolio.models import (
    Category,
    Objective,
    RiskProfileType,
    RISK_SCORE_BANDS,
    MIN_RISK_SCORE,
    MAX_RISK_SCORE,
    HUNDRED,
    ZERO,
    to_decimal,
)


class ValidationCode(str, Enum):
    """Machine-readable validation failure codes."""
    EMPTY = "EMPTY"
    TOO_LONG = "TOO_LONG"
    INVALID_TYPE = "INVALID_TYPE"
    NOT_A_NUMBER = "NOT_A_NUMBER"
    NOT_FINITE = "NOT_FINITE"
    SCORE_OUT_OF_RANGE = "SCORE_OUT_OF_RANGE"
    SCORE_TYPE_MISMATCH = "SCORE_TYPE_MISMATCH"
    EMPTY_ALLOCATION = "EMPTY_ALLOCATION"
    INVALID_CATEGORY = "INVALID_CATEGORY"
    NEGATIVE_PERCENTAGE = "NEGATIVE_PERCENTAGE"
    SUM_MISMATCH = "SUM_MISMATCH"
    DUPLICATE_CATEGORY = "DUPLICATE_CATEGORY"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    NEGATIVE_AMOUNT = "NEGATIVE_AMOUNT"
    NON_POSITIVE_QUANTITY = "NON_POSITIVE_QUANTITY"
    INVALID_OBJECTIVE = "INVALID_OBJECTIVE"
    CATEGORY_CONFLICT = "CATEGORY_CONFLICT"


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""
    field: str
    code: ValidationCode
    message: str

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "code": self.code.value,
            "message": self.message,
        }


@dataclass
class ValidationResult:
    """Result of one or more validation checks."""
    is_valid: bool = True
    errors: list[FieldError] = field(default_factory=list)

    def add_error(self, field_name: str, code: ValidationCode, message: str) -> None:
        self.errors.append(FieldError(field_name, code, message))
        self.is_valid = False

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        for error in other.errors:
            self.errors.append(error)
            self.is_valid = False
        return self

    def codes(self) -> list[ValidationCode]:
        return [e.code for e in self.errors]

    def errors_by_field(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for error in self.errors:
            grouped.setdefault(error.field, []).append(error.message)
        return grouped

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
        }


def read_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a mapping or an attribute holder."""
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _parse_number(
    value: Any,
    field_name: str,
    label: str,
    result: ValidationResult,
) -> Optional[Decimal]:
    """Decimal for value, or None after recording NOT_A_NUMBER / NOT_FINITE."""
    try:
        number = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        result.add_error(field_name, ValidationCode.NOT_A_NUMBER, f"{label} must be a number")
        return None
    if not number.is_finite():
        result.add_error(field_name, ValidationCode.NOT_FINITE, f"{label} must be a finite number")
        return None
    return number


# ==================== Individual Checks ====================

def validate_portfolio_name(name: Any, max_length: Optional[int] = None) -> ValidationResult:
    """Name must be non-blank after trimming and at most max_length characters."""
    result = ValidationResult()
    max_length = max_length if max_length is not None else settings.PORTFOLIO_NAME_MAX_LENGTH

    if name is None:
        result.add_error("name", ValidationCode.EMPTY, "Portfolio name is required")
        return result
    if not isinstance(name, str):
        result.add_error("name", ValidationCode.INVALID_TYPE, "Portfolio name must be text")
        return result

    trimmed = name.strip()
    if not trimmed:
        result.add_error("name", ValidationCode.EMPTY, "Portfolio name is required")
    elif len(trimmed) > max_length:
        result.add_error(
            "name",
            ValidationCode.TOO_LONG,
            f"Portfolio name must be at most {max_length} characters",
        )
    return result


def validate_risk_profile(profile: Any) -> ValidationResult:
    """
    Score must be an integer in 1..10 and, unless the type is custom,
    fall inside the type's band (conservative 1-3, moderate 4-7,
    aggressive 8-10). Out-of-band scores are rejected, never coerced.
    """
    result = ValidationResult()

    if profile is None:
        result.add_error("risk_profile", ValidationCode.EMPTY, "Risk profile is required")
        return result

    raw_type = read_field(profile, "type")
    try:
        profile_type = RiskProfileType(
            raw_type.strip().lower() if isinstance(raw_type, str) else raw_type
        )
    except ValueError:
        profile_type = None
        result.add_error(
            "risk_profile",
            ValidationCode.INVALID_TYPE,
            f"Unknown risk profile type: {raw_type!r}",
        )

    raw_score = read_field(profile, "score")
    score = _parse_number(raw_score, "risk_profile", "Risk score", result)
    if score is None:
        return result

    if score != score.to_integral_value() or not (MIN_RISK_SCORE <= score <= MAX_RISK_SCORE):
        result.add_error(
            "risk_profile",
            ValidationCode.SCORE_OUT_OF_RANGE,
            f"Risk score must be a whole number between {MIN_RISK_SCORE} and {MAX_RISK_SCORE}",
        )
        return result

    if profile_type is not None and profile_type != RiskProfileType.CUSTOM:
        low, high = RISK_SCORE_BANDS[profile_type]
        if not (low <= score <= high):
            result.add_error(
                "risk_profile",
                ValidationCode.SCORE_TYPE_MISMATCH,
                f"A {profile_type.value} profile requires a score between {low} and {high}",
            )
    return result


def validate_target_allocations(
    allocations: Any,
    tolerance: Optional[Decimal] = None,
) -> ValidationResult:
    """
    Allocation set must be non-empty, use known categories once each,
    have non-negative percentages and sum to 100 within tolerance.
    """
    result = ValidationResult()
    tolerance = tolerance if tolerance is not None else settings.ALLOCATION_SUM_TOLERANCE
    field_name = "target_allocations"

    if allocations is None or isinstance(allocations, (str, bytes, Mapping)):
        if allocations is None or len(allocations) == 0:
            result.add_error(field_name, ValidationCode.EMPTY_ALLOCATION, "At least one allocation is required")
        else:
            result.add_error(field_name, ValidationCode.INVALID_TYPE, "Allocations must be a list")
        return result

    try:
        items = list(allocations)
    except TypeError:
        result.add_error(field_name, ValidationCode.INVALID_TYPE, "Allocations must be a list")
        return result

    if not items:
        result.add_error(field_name, ValidationCode.EMPTY_ALLOCATION, "At least one allocation is required")
        return result

    seen: set[Category] = set()
    total = ZERO
    all_numeric = True

    for index, item in enumerate(items):
        raw_category = read_field(item, "category")
        try:
            category = Category.parse(raw_category)
        except ValueError:
            category = None
            result.add_error(
                field_name,
                ValidationCode.INVALID_CATEGORY,
                f"Allocation {index + 1}: unknown category {raw_category!r}",
            )

        if category is not None:
            if category in seen:
                result.add_error(
                    field_name,
                    ValidationCode.DUPLICATE_CATEGORY,
                    f"Category '{category.value}' appears more than once",
                )
            seen.add(category)

        percentage = _parse_number(
            read_field(item, "percentage"), field_name, f"Allocation {index + 1} percentage", result
        )
        if percentage is None:
            all_numeric = False
            continue
        if percentage < 0:
            result.add_error(
                field_name,
                ValidationCode.NEGATIVE_PERCENTAGE,
                f"Allocation {index + 1}: percentage cannot be negative",
            )
        total += percentage

    if all_numeric and abs(total - HUNDRED) > tolerance:
        result.add_error(
            field_name,
            ValidationCode.SUM_MISMATCH,
            f"Allocations must sum to 100% (currently {total.normalize():f}%)",
        )
    return result


def validate_time_horizon(
    years: Any,
    min_years: Optional[int] = None,
    max_years: Optional[int] = None,
) -> ValidationResult:
    """Time horizon in whole years within [min_years, max_years]."""
    result = ValidationResult()
    min_years = min_years if min_years is not None else settings.MIN_TIME_HORIZON_YEARS
    max_years = max_years if max_years is not None else settings.MAX_TIME_HORIZON_YEARS

    value = _parse_number(years, "time_horizon", "Time horizon", result)
    if value is None:
        return result
    if value != value.to_integral_value() or not (min_years <= value <= max_years):
        result.add_error(
            "time_horizon",
            ValidationCode.OUT_OF_RANGE,
            f"Time horizon must be between {min_years} and {max_years} years",
        )
    return result


def validate_currency(amount: Any, label: str = "Amount", field_name: str = "amount") -> ValidationResult:
    """Monetary amount must be a finite, non-negative number."""
    result = ValidationResult()
    value = _parse_number(amount, field_name, label, result)
    if value is not None and value < 0:
        result.add_error(field_name, ValidationCode.NEGATIVE_AMOUNT, f"{label} cannot be negative")
    return result


def validate_objective(objective: Any) -> ValidationResult:
    result = ValidationResult()
    try:
        Objective(objective.strip().lower() if isinstance(objective, str) else objective)
    except ValueError:
        result.add_error(
            "objective",
            ValidationCode.INVALID_OBJECTIVE,
            f"Unknown objective: {objective!r}",
        )
    return result


# ==================== Aggregate Checks ====================

def validate_portfolio_input(data: Any, partial: bool = False) -> ValidationResult:
    """
    Run every check relevant to a create (or, with partial=True, update) input.

    Checks are independent and never short-circuit; optional amounts are
    only checked when present. With partial=True, only fields that are
    present (not None) are checked.
    """
    result = ValidationResult()

    def present(name: str) -> bool:
        return not partial or read_field(data, name) is not None

    if present("name"):
        result.merge(validate_portfolio_name(read_field(data, "name")))
    if present("objective"):
        result.merge(validate_objective(read_field(data, "objective")))
    if present("risk_profile"):
        result.merge(validate_risk_profile(read_field(data, "risk_profile")))
    if present("target_allocations"):
        result.merge(validate_target_allocations(read_field(data, "target_allocations")))
    if present("time_horizon"):
        result.merge(validate_time_horizon(read_field(data, "time_horizon")))

    description = read_field(data, "description")
    if description is not None and not isinstance(description, str):
        result.add_error("description", ValidationCode.INVALID_TYPE, "Description must be text")

    target_amount = read_field(data, "target_amount")
    if target_amount is not None:
        result.merge(validate_currency(target_amount, "Target amount", "target_amount"))
    monthly_contribution = read_field(data, "monthly_contribution")
    if monthly_contribution is not None:
        result.merge(validate_currency(monthly_contribution, "Monthly contribution", "monthly_contribution"))

    return result


def validate_asset_input(data: Any, partial: bool = False) -> ValidationResult:
    """Checks for AddAssetInput / UpdateAssetInput style records."""
    result = ValidationResult()

    def present(name: str) -> bool:
        return not partial or read_field(data, name) is not None

    if not partial:
        symbol = read_field(data, "symbol")
        if not isinstance(symbol, str) or not symbol.strip():
            result.add_error("symbol", ValidationCode.EMPTY, "Asset symbol is required")

    if present("category"):
        raw_category = read_field(data, "category")
        try:
            Category.parse(raw_category)
        except ValueError:
            result.add_error("category", ValidationCode.INVALID_CATEGORY, f"Unknown category: {raw_category!r}")

    if present("quantity"):
        quantity = _parse_number(read_field(data, "quantity"), "quantity", "Quantity", result)
        if quantity is not None and quantity <= 0:
            result.add_error("quantity", ValidationCode.NON_POSITIVE_QUANTITY, "Quantity must be greater than zero")

    if present("average_price"):
        result.merge(validate_currency(read_field(data, "average_price"), "Average price", "average_price"))

    current_price = read_field(data, "current_price")
    if current_price is not None:
        result.merge(validate_currency(current_price, "Current price", "current_price"))

    return result

"""
Unit Tests - Portfolio Validator
Tests for field-level validation of raw portfolio and asset input.
"""
import pytest
from decimal import Decimal

from invest_core.core.portfolio.models import CreatePortfolioInput, TargetAllocation, Category
from invest_core.core.portfolio.validator import (
    ValidationCode,
    ValidationResult,
    FieldError,
    validate_portfolio_name,
    validate_risk_profile,
    validate_target_allocations,
    validate_time_horizon,
    validate_currency,
    validate_objective,
    validate_portfolio_input,
    validate_asset_input,
)


class TestValidationResult:
    """Tests for ValidationResult aggregation."""

    def test_starts_valid(self):
        """A fresh result has no errors."""
        result = ValidationResult()
        assert result.is_valid is True
        assert result.errors == []

    def test_add_error_invalidates(self):
        result = ValidationResult()
        result.add_error("name", ValidationCode.EMPTY, "Portfolio name is required")
        assert result.is_valid is False
        assert result.errors == [FieldError("name", ValidationCode.EMPTY, "Portfolio name is required")]

    def test_merge_keeps_every_error(self):
        """Merging accumulates errors from both results."""
        first = validate_portfolio_name("")
        second = validate_time_horizon(0)
        merged = ValidationResult().merge(first).merge(second)
        assert merged.codes() == [ValidationCode.EMPTY, ValidationCode.OUT_OF_RANGE]
        assert set(merged.errors_by_field()) == {"name", "time_horizon"}

    def test_to_dict(self):
        result = validate_portfolio_name(None)
        data = result.to_dict()
        assert data["is_valid"] is False
        assert data["errors"][0]["code"] == "EMPTY"
        assert data["errors"][0]["field"] == "name"


class TestValidatePortfolioName:
    """Tests for portfolio name validation."""

    def test_valid_name(self):
        assert validate_portfolio_name("Retirement").is_valid

    def test_empty_string_fails(self):
        """Empty string fails with EMPTY."""
        assert validate_portfolio_name("").codes() == [ValidationCode.EMPTY]

    def test_whitespace_only_fails(self):
        """Name is trimmed before checking for blank."""
        assert validate_portfolio_name("   \t ").codes() == [ValidationCode.EMPTY]

    def test_none_fails(self):
        assert validate_portfolio_name(None).codes() == [ValidationCode.EMPTY]

    def test_100_characters_pass(self):
        """Exactly 100 characters is allowed."""
        assert validate_portfolio_name("a" * 100).is_valid

    def test_101_characters_fail(self):
        """101 characters fails with TOO_LONG."""
        assert validate_portfolio_name("a" * 101).codes() == [ValidationCode.TOO_LONG]

    def test_length_measured_after_trim(self):
        assert validate_portfolio_name("  " + "a" * 100 + "  ").is_valid

    def test_custom_max_length(self):
        assert validate_portfolio_name("abcdef", max_length=5).codes() == [ValidationCode.TOO_LONG]

    def test_non_string_fails(self):
        assert validate_portfolio_name(42).codes() == [ValidationCode.INVALID_TYPE]


class TestValidateRiskProfile:
    """Tests for risk profile validation."""

    @pytest.mark.parametrize("profile_type,score", [
        ("conservative", 1),
        ("conservative", 3),
        ("moderate", 4),
        ("moderate", 7),
        ("aggressive", 8),
        ("aggressive", 10),
        ("custom", 1),
        ("custom", 10),
    ])
    def test_scores_inside_band_pass(self, profile_type, score):
        """Band edges are inclusive."""
        assert validate_risk_profile({"type": profile_type, "score": score}).is_valid

    @pytest.mark.parametrize("score", [0, 11, -1, 5.5])
    def test_score_out_of_range(self, score):
        """Score must be a whole number in 1..10."""
        result = validate_risk_profile({"type": "custom", "score": score})
        assert result.codes() == [ValidationCode.SCORE_OUT_OF_RANGE]

    def test_score_type_mismatch(self):
        """A conservative profile cannot carry an aggressive score."""
        result = validate_risk_profile({"type": "conservative", "score": 9})
        assert result.codes() == [ValidationCode.SCORE_TYPE_MISMATCH]

    def test_mismatch_not_coerced(self):
        """Moderate with score 3 is rejected rather than clamped to 4."""
        assert not validate_risk_profile({"type": "moderate", "score": 3}).is_valid

    def test_unknown_type(self):
        result = validate_risk_profile({"type": "reckless", "score": 5})
        assert result.codes() == [ValidationCode.INVALID_TYPE]

    def test_type_is_case_insensitive(self):
        assert validate_risk_profile({"type": " Moderate ", "score": "5"}).is_valid

    def test_score_not_a_number(self):
        result = validate_risk_profile({"type": "moderate", "score": "high"})
        assert result.codes() == [ValidationCode.NOT_A_NUMBER]

    def test_boolean_score_rejected(self):
        result = validate_risk_profile({"type": "moderate", "score": True})
        assert result.codes() == [ValidationCode.NOT_A_NUMBER]

    def test_missing_profile(self):
        assert validate_risk_profile(None).codes() == [ValidationCode.EMPTY]


class TestValidateTargetAllocations:
    """Tests for target allocation validation."""

    def test_valid_allocations(self):
        allocations = [
            {"category": "stocks", "percentage": 60},
            {"category": "bonds", "percentage": 30},
            {"category": "cash", "percentage": 10},
        ]
        assert validate_target_allocations(allocations).is_valid

    def test_accepts_target_allocation_records(self):
        allocations = [
            TargetAllocation(Category.STOCKS, Decimal("50")),
            TargetAllocation(Category.REITS, Decimal("50")),
        ]
        assert validate_target_allocations(allocations).is_valid

    def test_empty_list(self):
        assert validate_target_allocations([]).codes() == [ValidationCode.EMPTY_ALLOCATION]

    def test_none(self):
        assert validate_target_allocations(None).codes() == [ValidationCode.EMPTY_ALLOCATION]

    def test_sum_within_tolerance_passes(self):
        """Sum of 100.01 is inside the 0.01 tolerance."""
        allocations = [
            {"category": "stocks", "percentage": "33.34"},
            {"category": "bonds", "percentage": "33.34"},
            {"category": "cash", "percentage": "33.33"},
        ]
        assert validate_target_allocations(allocations).is_valid

    def test_sum_outside_tolerance_fails(self):
        allocations = [
            {"category": "stocks", "percentage": "60"},
            {"category": "bonds", "percentage": "39.98"},
        ]
        assert validate_target_allocations(allocations).codes() == [ValidationCode.SUM_MISMATCH]

    def test_float_percentages_do_not_drift(self):
        """0.1-step floats sum exactly once converted through str."""
        allocations = [{"category": c, "percentage": 33.3} for c in ("stocks", "bonds")]
        allocations.append({"category": "cash", "percentage": 33.4})
        assert validate_target_allocations(allocations).is_valid

    def test_negative_percentage(self):
        allocations = [
            {"category": "stocks", "percentage": 110},
            {"category": "bonds", "percentage": -10},
        ]
        assert validate_target_allocations(allocations).codes() == [ValidationCode.NEGATIVE_PERCENTAGE]

    def test_duplicate_category(self):
        """Duplicates are rejected, never merged."""
        allocations = [
            {"category": "stocks", "percentage": 50},
            {"category": "STOCKS", "percentage": 50},
        ]
        assert validate_target_allocations(allocations).codes() == [ValidationCode.DUPLICATE_CATEGORY]

    def test_unknown_category(self):
        allocations = [
            {"category": "stonks", "percentage": 50},
            {"category": "bonds", "percentage": 50},
        ]
        assert validate_target_allocations(allocations).codes() == [ValidationCode.INVALID_CATEGORY]

    def test_non_numeric_percentage_skips_sum_check(self):
        """A non-number is reported once; the sum is not checked on partial data."""
        allocations = [
            {"category": "stocks", "percentage": "sixty"},
            {"category": "bonds", "percentage": 40},
        ]
        assert validate_target_allocations(allocations).codes() == [ValidationCode.NOT_A_NUMBER]

    def test_reports_every_problem(self):
        """Checks do not stop at the first failure."""
        allocations = [
            {"category": "stocks", "percentage": -5},
            {"category": "stocks", "percentage": 50},
            {"category": "gold", "percentage": 10},
        ]
        codes = validate_target_allocations(allocations).codes()
        assert ValidationCode.NEGATIVE_PERCENTAGE in codes
        assert ValidationCode.DUPLICATE_CATEGORY in codes
        assert ValidationCode.INVALID_CATEGORY in codes
        assert ValidationCode.SUM_MISMATCH in codes

    def test_mapping_is_rejected(self):
        result = validate_target_allocations({"stocks": 100})
        assert result.codes() == [ValidationCode.INVALID_TYPE]

    def test_does_not_mutate_input(self):
        allocations = [{"category": " Stocks ", "percentage": "100"}]
        validate_target_allocations(allocations)
        assert allocations == [{"category": " Stocks ", "percentage": "100"}]


class TestValidateTimeHorizon:
    """Tests for time horizon validation."""

    @pytest.mark.parametrize("years", [1, 10, 50, "25"])
    def test_in_range(self, years):
        assert validate_time_horizon(years).is_valid

    @pytest.mark.parametrize("years", [0, 51, -3, 2.5])
    def test_out_of_range(self, years):
        assert validate_time_horizon(years).codes() == [ValidationCode.OUT_OF_RANGE]

    def test_not_a_number(self):
        assert validate_time_horizon("ten").codes() == [ValidationCode.NOT_A_NUMBER]

    def test_custom_range(self):
        assert validate_time_horizon(60, max_years=100).is_valid


class TestValidateCurrency:
    """Tests for monetary amount validation."""

    def test_zero_is_valid(self):
        assert validate_currency(0).is_valid

    def test_negative_amount(self):
        result = validate_currency(Decimal("-0.01"), "Target amount", "target_amount")
        assert result.codes() == [ValidationCode.NEGATIVE_AMOUNT]
        assert result.errors[0].field == "target_amount"
        assert "Target amount" in result.errors[0].message

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), "Infinity", Decimal("NaN")])
    def test_not_finite(self, amount):
        assert validate_currency(amount).codes() == [ValidationCode.NOT_FINITE]

    def test_not_a_number(self):
        assert validate_currency("lots").codes() == [ValidationCode.NOT_A_NUMBER]


class TestValidateObjective:
    """Tests for objective validation."""

    @pytest.mark.parametrize("objective", ["retirement", "education", "emergency", "investment", "custom", " Retirement "])
    def test_known_objectives(self, objective):
        assert validate_objective(objective).is_valid

    def test_unknown_objective(self):
        assert validate_objective("lottery").codes() == [ValidationCode.INVALID_OBJECTIVE]


class TestValidatePortfolioInput:
    """Tests for aggregated portfolio input validation."""

    def test_valid_input(self, create_input):
        assert validate_portfolio_input(create_input).is_valid

    def test_accepts_mapping(self, sample_portfolio_data):
        assert validate_portfolio_input(sample_portfolio_data).is_valid

    def test_aggregates_errors_across_fields(self):
        """Every invalid field is reported at once."""
        data = CreatePortfolioInput(
            user_id="user-1",
            name="",
            risk_profile={"type": "conservative", "score": 9},
            target_allocations=[{"category": "stocks", "percentage": 90}],
            time_horizon=80,
            target_amount=-1,
            monthly_contribution=float("inf"),
        )
        by_field = validate_portfolio_input(data).errors_by_field()
        assert set(by_field) == {
            "name",
            "risk_profile",
            "target_allocations",
            "time_horizon",
            "target_amount",
            "monthly_contribution",
        }

    def test_partial_checks_only_present_fields(self):
        """With partial=True, missing fields are not required."""
        assert validate_portfolio_input({"name": "Renamed"}, partial=True).is_valid

    def test_partial_still_rejects_bad_fields(self):
        result = validate_portfolio_input({"time_horizon": 0}, partial=True)
        assert result.codes() == [ValidationCode.OUT_OF_RANGE]

    def test_description_must_be_text(self, sample_portfolio_data):
        sample_portfolio_data["description"] = 123
        result = validate_portfolio_input(sample_portfolio_data)
        assert result.codes() == [ValidationCode.INVALID_TYPE]


class TestValidateAssetInput:
    """Tests for asset input validation."""

    def test_valid_asset(self):
        data = {"symbol": "VTI", "category": "stocks", "quantity": 10, "average_price": "210.50"}
        assert validate_asset_input(data).is_valid

    def test_missing_symbol(self):
        data = {"symbol": "  ", "category": "stocks", "quantity": 10, "average_price": 1}
        assert validate_asset_input(data).codes() == [ValidationCode.EMPTY]

    def test_zero_quantity(self):
        data = {"symbol": "VTI", "category": "stocks", "quantity": 0, "average_price": 1}
        assert validate_asset_input(data).codes() == [ValidationCode.NON_POSITIVE_QUANTITY]

    def test_aggregates_errors(self):
        data = {"symbol": "", "category": "art", "quantity": -1, "average_price": -5, "current_price": "x"}
        assert set(validate_asset_input(data).errors_by_field()) == {
            "symbol", "category", "quantity", "average_price", "current_price",
        }

    def test_partial_update(self):
        """Only provided fields are checked on update."""
        assert validate_asset_input({"current_price": 12}, partial=True).is_valid
        assert not validate_asset_input({"quantity": 0}, partial=True).is_valid

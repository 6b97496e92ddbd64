"""
Invest Core - Custom Exceptions
Domain exceptions carrying an error kind
"""
from enum import Enum
from typing import Optional, Any, Dict, TYPE_CHECKING

if TYPE_CHECKING:
    from invest_core.core.portfolio.validator import FieldError


class ErrorKind(str, Enum):
    """Error taxonomy shared by the core and its callers."""
    VALIDATION_FAILED = "validation_failed"
    FEATURE_DISABLED = "feature_disabled"
    LIMIT_EXCEEDED = "limit_exceeded"
    MISSING_PRICE = "missing_price"
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"


class InvestCoreException(Exception):
    """Base exception for Invest Core."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(
        self,
        message: str = "An error occurred",
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code or self.kind.value.upper()
        self.details = details or {}
        super().__init__(self.message)

    def with_context(self, **context: Any) -> "InvestCoreException":
        """Attach operation context (operation name, portfolio id...) and return self."""
        for key, value in context.items():
            if value is not None:
                self.details.setdefault(key, value)
        return self

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


# =========================
# Validation Exceptions
# =========================

class ValidationFailedError(InvestCoreException):
    """One or more fields failed validation."""

    kind = ErrorKind.VALIDATION_FAILED

    def __init__(
        self,
        errors: list["FieldError"],
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.errors = list(errors)
        super().__init__(message=message, details=details)

    def errors_by_field(self) -> dict[str, list[str]]:
        grouped: dict[str, list[str]] = {}
        for error in self.errors:
            grouped.setdefault(error.field, []).append(error.message)
        return grouped

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


class InvalidInputError(InvestCoreException):
    """Malformed input shape (caller programming error)."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


# =========================
# Policy Exceptions
# =========================

class FeatureDisabledError(InvestCoreException):
    """Operation is gated behind a disabled feature flag."""

    kind = ErrorKind.FEATURE_DISABLED

    def __init__(self, feature: str = "", message: Optional[str] = None):
        message = message or (
            f"Feature '{feature}' is not enabled" if feature else "Feature is not enabled"
        )
        super().__init__(message=message, details={"feature": feature} if feature else None)


class LimitExceededError(InvestCoreException):
    """Maximum portfolio limit exceeded."""

    kind = ErrorKind.LIMIT_EXCEEDED

    def __init__(self, limit: int = 0, message: Optional[str] = None):
        message = message or f"Portfolio limit exceeded (max {limit} per user)"
        super().__init__(message=message, details={"limit": limit})


# =========================
# Market Data Exceptions
# =========================

class MissingPriceError(InvestCoreException):
    """A holding has no resolvable price."""

    kind = ErrorKind.MISSING_PRICE

    def __init__(self, asset_id: str = "", message: Optional[str] = None):
        message = message or (
            f"No price available for asset '{asset_id}'" if asset_id else "Price not available"
        )
        super().__init__(message=message, details={"asset_id": asset_id} if asset_id else None)


# =========================
# Lookup Exceptions
# =========================

class NotFoundError(InvestCoreException):
    """Referenced entity is absent."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, details=details)


class PortfolioNotFoundError(NotFoundError):
    """Portfolio not found."""

    def __init__(self, portfolio_id: str = ""):
        message = f"Portfolio '{portfolio_id}' not found" if portfolio_id else "Portfolio not found"
        super().__init__(message=message, details={"portfolio_id": portfolio_id} if portfolio_id else None)


class AssetNotFoundError(NotFoundError):
    """Asset not found in portfolio."""

    def __init__(self, asset_id: str = "", portfolio_id: str = ""):
        message = f"Asset '{asset_id}' not found" if asset_id else "Asset not found"
        details = {"asset_id": asset_id}
        if portfolio_id:
            details["portfolio_id"] = portfolio_id
        super().__init__(message=message, details=details)

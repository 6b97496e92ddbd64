"""
Feature Flags

Capability set injected into services at construction, so gating
decisions never read process-wide state.
"""
from enum import Enum
from typing import Iterable, Optional

from loguru import logger

from invest_core.config import Settings, settings as default_settings
from invest_core.utils.exceptions import FeatureDisabledError


class FeatureFlag(str, Enum):
    """Named product capabilities, grouped by rollout phase."""
    MANUAL_PORTFOLIO = "MANUAL_PORTFOLIO"              # Phase 0
    REBALANCING_CALCULATOR = "REBALANCING_CALCULATOR"  # Phase 0
    MULTI_PORTFOLIO = "MULTI_PORTFOLIO"
    CSV_IMPORT = "CSV_IMPORT"                          # Phase 1
    BASIC_TAX_CALC = "BASIC_TAX_CALC"                  # Phase 1
    CEI_SCRAPING = "CEI_SCRAPING"                      # Phase 2
    OPEN_FINANCE = "OPEN_FINANCE"                      # Phase 3


class FeatureFlags:
    """
    Immutable set of enabled capabilities.

    Usage:
        flags = FeatureFlags.from_settings(settings)
        flags.require(FeatureFlag.REBALANCING_CALCULATOR, "calculate_rebalancing")
    """

    def __init__(
        self,
        enabled: Iterable[FeatureFlag | str] = (),
        max_portfolios: Optional[int] = None,
    ):
        self._enabled = frozenset(FeatureFlag(flag) for flag in enabled)
        self.max_portfolios = (
            max_portfolios if max_portfolios is not None else default_settings.MAX_PORTFOLIOS_PER_USER
        )

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "FeatureFlags":
        """Build the capability set from FEATURE_* settings."""
        config = config or default_settings
        enabled = [
            flag for flag in FeatureFlag
            if getattr(config, f"FEATURE_{flag.value}", False)
        ]
        return cls(enabled, max_portfolios=config.MAX_PORTFOLIOS_PER_USER)

    @classmethod
    def all_enabled(cls) -> "FeatureFlags":
        return cls(list(FeatureFlag))

    @property
    def enabled(self) -> frozenset[FeatureFlag]:
        return self._enabled

    def is_enabled(self, flag: FeatureFlag | str) -> bool:
        try:
            return FeatureFlag(flag) in self._enabled
        except ValueError:
            return False

    def require(self, flag: FeatureFlag, operation: str = "") -> None:
        """Raise FeatureDisabledError unless flag is enabled."""
        if not self.is_enabled(flag):
            logger.warning(f"Rejected {operation or 'operation'}: feature {flag.value} disabled")
            raise FeatureDisabledError(flag.value).with_context(operation=operation or None)

    # ==================== Rollout Phases ====================

    def is_phase0(self) -> bool:
        return self.is_enabled(FeatureFlag.MANUAL_PORTFOLIO)

    def is_phase1(self) -> bool:
        return self.is_enabled(FeatureFlag.CSV_IMPORT)

    def is_phase2(self) -> bool:
        return self.is_enabled(FeatureFlag.CEI_SCRAPING)

    def is_phase3(self) -> bool:
        return self.is_enabled(FeatureFlag.OPEN_FINANCE)

    def capabilities(self) -> dict:
        """Capability summary consumed by clients."""
        return {
            "can_create_manual": self.is_enabled(FeatureFlag.MANUAL_PORTFOLIO),
            "can_create_multiple": self.is_enabled(FeatureFlag.MULTI_PORTFOLIO),
            "can_rebalance": self.is_enabled(FeatureFlag.REBALANCING_CALCULATOR),
            "max_portfolios": None if self.is_enabled(FeatureFlag.MULTI_PORTFOLIO) else self.max_portfolios,
            "enabled": sorted(flag.value for flag in self._enabled),
        }

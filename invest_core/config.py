"""
Invest Core - Configuration Settings
"""
from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )
    
    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "Invest Core"
    APP_ENV: str = "development"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"
    
    # =========================
    # Logging
    # =========================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    
    # =========================
    # Validation Rules
    # =========================
    PORTFOLIO_NAME_MAX_LENGTH: int = 100
    ALLOCATION_SUM_TOLERANCE: Decimal = Decimal("0.01")
    MIN_TIME_HORIZON_YEARS: int = 1
    MAX_TIME_HORIZON_YEARS: int = 50
    
    # =========================
    # Portfolio Limits
    # =========================
    MAX_PORTFOLIOS_PER_USER: int = 3  # Phase 0 limit
    
    # =========================
    # Rebalancing
    # =========================
    DRIFT_TOLERANCE_PERCENT: Decimal = Decimal("0.5")  # % of total value
    PRICE_LOOKUP_TIMEOUT: float = 5.0  # seconds
    
    # =========================
    # Feature Flags
    # =========================
    FEATURE_MANUAL_PORTFOLIO: bool = True
    FEATURE_MULTI_PORTFOLIO: bool = False
    FEATURE_REBALANCING_CALCULATOR: bool = True
    FEATURE_CSV_IMPORT: bool = False
    FEATURE_BASIC_TAX_CALC: bool = False
    FEATURE_CEI_SCRAPING: bool = False
    FEATURE_OPEN_FINANCE: bool = False


# Create global settings instance
settings = Settings()

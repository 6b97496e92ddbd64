from invest_core.api.v1.endpoints import portfolios

__all__ = ["portfolios"]

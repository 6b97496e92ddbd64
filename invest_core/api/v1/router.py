"""
Invest Core - API v1 Router
"""
from fastapi import APIRouter

from invest_core.api.v1.endpoints import portfolios

api_router = APIRouter()


# API v1 root endpoint
@api_router.get("/", tags=["API Info"])
async def api_root():
    """API v1 root - returns version info."""
    return {
        "api": "Invest Core",
        "version": "v1",
        "status": "operational"
    }


api_router.include_router(portfolios.router, prefix="/portfolios", tags=["Portfolios"])

"""
Invest Core - Application Entry Point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from invest_core import __version__
from invest_core.config import settings
from invest_core.api.v1.router import api_router
from invest_core.utils.exceptions import ErrorKind, InvestCoreException
from invest_core.utils.logger import configure_logging


# HTTP status per domain error kind
STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FEATURE_DISABLED: 403,
    ErrorKind.LIMIT_EXCEEDED: 409,
    ErrorKind.MISSING_PRICE: 424,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events handler."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.APP_ENV})")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}")


async def invest_core_exception_handler(request: Request, exc: InvestCoreException) -> JSONResponse:
    """Render domain errors as {"error", "message", "details"} with the kind's status."""
    return JSONResponse(status_code=STATUS_BY_KIND.get(exc.kind, 400), content=exc.to_dict())


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Portfolio validation, target allocation and rebalancing",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_exception_handler(InvestCoreException, invest_core_exception_handler)
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for load balancers."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": __version__,
        }

    return app


# Create the application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "invest_core.main:app",
        reload=settings.DEBUG,
        log_level="info"
    )

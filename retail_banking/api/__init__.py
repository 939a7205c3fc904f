"""
Retail Banking API Application Factory
"""

from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import uvicorn

from ..config import get_config
from ..exceptions import (
    AccountRuleError, BankingError, ForbiddenError, InvalidOperationError,
    NotAuthenticatedError, NotFoundError, UserValidationError
)
from ..logging_config import setup_logging
from ..system import BankingSystem
from .accounts import router as accounts_router
from .auth import SessionRegistry, router as auth_router
from .clock import router as clock_router
from .transfers import router as transfers_router
from .users import router as users_router

logger = logging.getLogger("retail_banking.api")

API_VERSION = "1.0.0"

# Most specific first
ERROR_STATUS_CODES = (
    (NotAuthenticatedError, 401),
    (ForbiddenError, 403),
    (NotFoundError, 404),
    (InvalidOperationError, 409),
    (AccountRuleError, 400),
    (UserValidationError, 400),
)


def status_code_for(error: BankingError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 400


def create_app(system: Optional[BankingSystem] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        system: Banking system to serve; built from configuration on first
            request when omitted
    """
    app = FastAPI(
        title="Retail Banking Ledger API",
        description="Accounts, transfers and monthly interest for a retail bank",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.system = system
    app.state.sessions = SessionRegistry()

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        status_code = status_code_for(exc)
        if status_code in (401, 403):
            logger.warning(f"{request.method} {request.url.path} refused: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "error": type(exc).__name__}
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # Include routers
    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transfers_router, tags=["Transfers"])
    app.include_router(clock_router, prefix="/clock", tags=["Clock"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "retail_banking_api",
            "version": API_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "retail_banking.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


def main():
    """Console entry point: configure logging and serve the API"""
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)
    run_server(host=config.api_host, port=config.api_port)

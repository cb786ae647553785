"""
KodBank API Application Factory
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import router as auth_router
from .accounts import router as accounts_router
from .assistant import router as assistant_router
from .. import __version__
from ..config import get_config
from ..errors import (
    Conflict, InsufficientFunds, InvalidCredentials, KodbankError, NotFound,
    ServiceError, TransientStoreFailure, Unauthenticated, ValidationError
)
from ..logging_config import get_logger, setup_logging
from ..system import LedgerSystem


ERROR_STATUS = (
    (Unauthenticated, 401),
    (InvalidCredentials, 401),
    (ValidationError, 400),
    (InsufficientFunds, 400),
    (NotFound, 404),
    (Conflict, 409),
    (TransientStoreFailure, 503),
)


def status_for(error: KodbankError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    config = system.config if system else get_config()
    setup_logging(config.log_level, log_format=config.log_format)
    logger = get_logger("kodbank.api")

    app = FastAPI(
        title="KodBank Ledger API",
        description="Session-authenticated balances, deposits and transfers",
        version=__version__,
    )
    app.state.system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(KodbankError)
    async def handle_domain_error(request: Request, exc: KodbankError):
        return JSONResponse(status_code=status_for(exc), content=exc.to_dict())

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content=ServiceError().to_dict())

    app.include_router(auth_router, prefix="/auth", tags=["Auth"])
    app.include_router(accounts_router, prefix="/account", tags=["Account"])
    app.include_router(assistant_router, prefix="/assistant", tags=["Assistant"])

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "kodbank_ledger",
            "version": __version__,
        }

    return app


app = create_app()


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "kodbank.api:app",
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level="info"
    )

"""
FastAPI application entry point.

This is the main application that ties together all components:
- API routes for invoices, analytics, financing quotes and treasury
- Engine and discovery-cache lifecycle management
- CORS configuration for frontend access
- Error handling and logging
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finvoice import __version__
from finvoice.api.routes import analytics, financing, health, invoices, treasury
from finvoice.config import get_settings
from finvoice.errors import (
    CompanionNotFoundError,
    ConfigurationError,
    DecodeError,
    FinvoiceError,
    InputValidationError,
    LedgerTransportError,
    ObjectNotFoundError,
)
from finvoice.infrastructure.cache import InMemoryKeyValueStore, KeyValueStore
from finvoice.infrastructure.database import DatabaseKeyValueStore, close_db, init_db
from finvoice.services.engine import InvoiceEngine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)


# Status code per error kind; subclasses are matched before their bases
ERROR_STATUS: list[tuple[type[FinvoiceError], int, str]] = [
    (InputValidationError, 400, "Bad Request"),
    (ObjectNotFoundError, 404, "Not Found"),
    (CompanionNotFoundError, 404, "Not Found"),
    (ConfigurationError, 500, "Configuration Error"),
    (LedgerTransportError, 502, "Bad Gateway"),
    (DecodeError, 502, "Bad Gateway"),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown tasks:
    - Initialize the persisted cache when a database is configured
    - Build the engine and its ledger client
    - Close the client and database on shutdown
    """
    settings = get_settings()

    logger.info(f"Starting finvoice v{__version__}")
    logger.info(f"Sui network: {settings.sui_network} ({settings.rpc_url})")
    logger.info(f"Debug mode: {settings.debug}")
    if not settings.package_id:
        logger.warning("PACKAGE_ID not set; ledger-backed endpoints will return CONFIG_ERROR")

    store: KeyValueStore = InMemoryKeyValueStore()
    if settings.database_url:
        try:
            await init_db()
            store = DatabaseKeyValueStore()
            logger.info("Discovery cache persisted to database")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            # Continue with the in-memory cache

    app.state.engine = InvoiceEngine.from_settings(settings, store=store)

    yield  # Application runs here

    # Shutdown
    logger.info("Shutting down finvoice")
    await app.state.engine.aclose()
    if settings.database_url:
        await close_db()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance ready to serve requests.
    """
    settings = get_settings()

    app = FastAPI(
        title="finvoice API",
        description=(
            "Invoice financing read API.\n\n"
            "Discovers tokenized invoices on Sui, reconstructs their lifecycle, "
            "and computes financing quotes and portfolio analytics."
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # CORS configuration
    # Read-only API, so any origin may call it
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # Register routers
    app.include_router(health.router)
    app.include_router(invoices.router, prefix="/api/v1")
    app.include_router(analytics.router, prefix="/api/v1")
    app.include_router(financing.router, prefix="/api/v1")
    app.include_router(treasury.router, prefix="/api/v1")

    @app.exception_handler(FinvoiceError)
    async def finvoice_exception_handler(request: Request, exc: FinvoiceError):
        """Map engine errors to HTTP responses."""
        status_code, error = 500, "Internal Server Error"
        for kind, code, label in ERROR_STATUS:
            if isinstance(exc, kind):
                status_code, error = code, label
                break

        if status_code >= 500:
            logger.error(f"{exc.code} on {request.url.path}: {exc}")
        else:
            logger.info(f"{exc.code} on {request.url.path}: {exc}")

        content = {"error": error, "detail": str(exc), "code": exc.code}
        if isinstance(exc, InputValidationError):
            content["errors"] = exc.errors
        return JSONResponse(status_code=status_code, content=content)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler for unhandled errors."""
        logger.exception(f"Unhandled error: {exc}")

        # Don't expose internal errors in production
        if settings.debug:
            detail = str(exc)
        else:
            detail = "An internal error occurred"

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": detail,
                "code": "INTERNAL_ERROR",
            },
        )

    return app


# Create the application instance
app = create_app()


# Development server entry point
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "finvoice.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

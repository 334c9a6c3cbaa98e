"""
Health check endpoint.

Provides system health status for monitoring and load balancers.
"""

from fastapi import APIRouter

from finvoice import __version__
from finvoice.api.schemas import HealthResponse
from finvoice.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Check system health.

    Reports configuration only; it does not call the ledger, so a slow
    full node never fails the load balancer check.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        sui_network=settings.sui_network,
        package_configured=bool(settings.package_id),
        cache="database" if settings.database_url else "memory",
    )

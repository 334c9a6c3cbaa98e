"""
Analytics endpoints.

Platform summary and per-address portfolio metrics, computed from the
current invoice universe on every request.
"""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends

from finvoice.api.dependencies import get_engine
from finvoice.api.schemas import (
    AnalyticsSummaryResponse,
    ErrorResponse,
    IssuerMetricsResponse,
    PortfolioMetricsResponse,
)
from finvoice.services.engine import InvoiceEngine

router = APIRouter(prefix="/analytics", tags=["analytics"])

EngineDep = Annotated[InvoiceEngine, Depends(get_engine)]


@router.get("/summary", response_model=AnalyticsSummaryResponse)
async def platform_summary(engine: EngineDep) -> AnalyticsSummaryResponse:
    """Platform-wide totals, averages and status breakdown."""
    return AnalyticsSummaryResponse.from_domain(await engine.platform_summary())


@router.get(
    "/portfolio",
    response_model=PortfolioMetricsResponse,
    responses={400: {"model": ErrorResponse, "description": "Missing or invalid address"}},
)
async def portfolio(engine: EngineDep, address: str | None = None) -> PortfolioMetricsResponse:
    """Investment performance for a financier address."""
    return PortfolioMetricsResponse.from_domain(await engine.portfolio_metrics(address))


@router.get(
    "/issuer",
    response_model=IssuerMetricsResponse,
    responses={400: {"model": ErrorResponse, "description": "Missing or invalid address"}},
)
async def issuer(engine: EngineDep, address: str | None = None) -> IssuerMetricsResponse:
    """Origination activity for a supplier address."""
    return IssuerMetricsResponse(**asdict(await engine.issuer_metrics(address)))

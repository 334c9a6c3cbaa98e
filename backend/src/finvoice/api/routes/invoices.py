"""
Invoice endpoints.

Listing, detail with history, companion lookups and per-invoice quotes.
Query parameters arrive as raw strings and are validated by the domain
layer so every bad field is reported in one response.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from finvoice.api.dependencies import get_engine
from finvoice.api.schemas import (
    ErrorResponse,
    EscrowResponse,
    FinancingQuoteResponse,
    FundingResponse,
    InvoiceDetailResponse,
    InvoiceListResponse,
)
from finvoice.domain.validation import parse_invoice_filters
from finvoice.services.engine import InvoiceEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["invoices"])

EngineDep = Annotated[InvoiceEngine, Depends(get_engine)]


@router.get(
    "",
    response_model=InvoiceListResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid query parameters"},
        502: {"model": ErrorResponse, "description": "Ledger unavailable"},
    },
)
async def list_invoices(
    engine: EngineDep,
    status: str | None = None,
    issuer: str | None = None,
    buyer: str | None = None,
    financier: str | None = None,
    min_amount: str | None = None,
    max_amount: str | None = None,
    sort: str | None = None,
    order: str | None = None,
    limit: str | None = None,
    offset: str | None = None,
) -> InvoiceListResponse:
    """
    List invoices with filtering and pagination.

    Amounts are in MIST. `sort` is one of created_at, due_date, face_value;
    `order` is asc or desc. `total` counts all matches before paging.
    """
    filters = parse_invoice_filters({
        "status": status,
        "issuer": issuer,
        "buyer": buyer,
        "financier": financier,
        "min_amount": min_amount,
        "max_amount": max_amount,
        "sort": sort,
        "order": order,
        "limit": limit,
        "offset": offset,
    })
    page = await engine.list_invoices(filters)
    logger.info(f"Listed {len(page.invoices)} of {page.total} invoices")
    return InvoiceListResponse.from_domain(page)


@router.get(
    "/{invoice_id}",
    response_model=InvoiceDetailResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed invoice id"},
        404: {"model": ErrorResponse, "description": "Invoice not found"},
    },
)
async def get_invoice(
    invoice_id: str,
    engine: EngineDep,
    resolve: Annotated[bool, Query(description="Also locate escrow and funding objects")] = False,
) -> InvoiceDetailResponse:
    """Get one invoice with its event history and status transitions."""
    detail = await engine.get_invoice_detail(invoice_id, resolve_companions=resolve)
    return InvoiceDetailResponse.from_domain(detail)


@router.get(
    "/{invoice_id}/escrow",
    response_model=EscrowResponse,
    responses={404: {"model": ErrorResponse, "description": "No escrow yet"}},
)
async def get_invoice_escrow(invoice_id: str, engine: EngineDep) -> EscrowResponse:
    """Locate the buyer escrow for an invoice."""
    return EscrowResponse.from_domain(await engine.resolve_escrow(invoice_id))


@router.get(
    "/{invoice_id}/funding",
    response_model=FundingResponse,
    responses={404: {"model": ErrorResponse, "description": "Not funded yet"}},
)
async def get_invoice_funding(invoice_id: str, engine: EngineDep) -> FundingResponse:
    """Locate the investor funding record for an invoice."""
    return FundingResponse.from_domain(await engine.resolve_funding(invoice_id))


@router.get("/{invoice_id}/quote", response_model=FinancingQuoteResponse)
async def quote_invoice(
    invoice_id: str,
    engine: EngineDep,
    discount_bps: Annotated[int | None, Query(description="Override the invoice's discount rate")] = None,
) -> FinancingQuoteResponse:
    """Quote financing for an existing invoice as of now."""
    offer = await engine.quote_invoice(invoice_id, discount_bps)
    return FinancingQuoteResponse.from_domain(offer.quote, offer.assessment.checks)

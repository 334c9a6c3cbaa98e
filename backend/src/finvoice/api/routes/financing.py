"""
Financing quote endpoint.

Pure calculation: no ledger access, so it works even when the node is
down or the package id is not configured.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from finvoice.api.dependencies import get_engine
from finvoice.api.schemas import FinancingQuoteRequest, FinancingQuoteResponse
from finvoice.services.engine import InvoiceEngine

router = APIRouter(prefix="/financing", tags=["financing"])


@router.post("/quote", response_model=FinancingQuoteResponse)
async def quote(
    request: FinancingQuoteRequest,
    engine: Annotated[InvoiceEngine, Depends(get_engine)],
) -> FinancingQuoteResponse:
    """
    Compute the fee waterfall and expected APY for an offer.

    A rejected offer is still a 200; `accepted` is false and the failing
    checks say why.
    """
    offer = engine.quote_financing(
        request.face_value,
        request.discount_rate_bps,
        request.days_until_due,
    )
    return FinancingQuoteResponse.from_domain(offer.quote, offer.assessment.checks)

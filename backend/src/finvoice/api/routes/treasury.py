"""
Treasury and supplier registry reads.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from finvoice.api.dependencies import get_engine
from finvoice.api.schemas import ErrorResponse, SupplierStatusResponse, TreasuryResponse
from finvoice.services.engine import InvoiceEngine

router = APIRouter(tags=["treasury"])

EngineDep = Annotated[InvoiceEngine, Depends(get_engine)]


@router.get(
    "/treasury",
    response_model=TreasuryResponse,
    responses={500: {"model": ErrorResponse, "description": "Treasury not configured"}},
)
async def get_treasury(engine: EngineDep) -> TreasuryResponse:
    """Current platform treasury state."""
    return TreasuryResponse.from_domain(await engine.get_treasury())


@router.get("/suppliers/{address}", response_model=SupplierStatusResponse)
async def supplier_status(address: str, engine: EngineDep) -> SupplierStatusResponse:
    """Whether the address holds a supplier capability."""
    registered = await engine.is_registered_supplier(address)
    return SupplierStatusResponse(address=address.lower(), registered=registered)

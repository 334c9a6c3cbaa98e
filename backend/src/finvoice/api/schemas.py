"""
Pydantic schemas for API request/response validation.

These schemas define the contract between frontend and backend.
Monetary values are integers in the smallest unit (MIST); fields ending
in `_display` carry the same amount in SUI for presentation only.
"""

import math
from typing import Any

from pydantic import BaseModel, Field

from finvoice.domain import analytics
from finvoice.domain.financing import FinancingQuote, escrow_amount, to_display, total_repayment
from finvoice.domain.models import (
    Escrow,
    Funding,
    Invoice,
    InvoiceDetail,
    InvoiceEvent,
    InvoicePage,
    StatusTransition,
    Treasury,
    ValidationCheck,
)


# =============================================================================
# Request Schemas
# =============================================================================

class FinancingQuoteRequest(BaseModel):
    """Terms of a prospective financing offer."""
    face_value: int = Field(
        ...,
        gt=0,
        description="Invoice face value in MIST",
    )
    discount_rate_bps: int = Field(
        ...,
        description="Discount the investor receives, in basis points",
    )
    days_until_due: int = Field(
        ...,
        description="Days until the invoice matures",
    )


# =============================================================================
# Response Schemas
# =============================================================================

class ValidationCheckResponse(BaseModel):
    """Single validation check result."""
    rule_name: str
    passed: bool
    message: str
    details: dict[str, Any] = {}

    @classmethod
    def from_domain(cls, check: ValidationCheck) -> "ValidationCheckResponse":
        return cls(
            rule_name=check.rule_name,
            passed=check.passed,
            message=check.message,
            details=check.details,
        )


class InvoiceResponse(BaseModel):
    """A reconstructed invoice."""
    id: str
    supplier: str
    buyer: str
    face_value: int
    face_value_display: float
    escrow_amount: int
    total_repayment: int
    due_date: int
    status: str
    status_code: int
    discount_bps: int
    escrow_bps: int
    fee_bps: int
    created_at: int | None = None
    financed_at: int | None = None
    paid_at: int | None = None

    investor: str | None = None
    investor_paid: int | None = None
    supplier_received: int | None = None
    origination_fee: int | None = None

    escrow_id: str | None = None
    funding_id: str | None = None

    invoice_number: str | None = None
    description: str = ""

    @classmethod
    def from_domain(cls, invoice: Invoice) -> "InvoiceResponse":
        return cls(
            id=invoice.id,
            supplier=invoice.supplier,
            buyer=invoice.buyer,
            face_value=invoice.face_value,
            face_value_display=to_display(invoice.face_value),
            escrow_amount=escrow_amount(invoice.face_value, invoice.escrow_bps),
            total_repayment=total_repayment(invoice.face_value, invoice.discount_bps),
            due_date=invoice.due_date,
            status=invoice.status.label,
            status_code=invoice.status.value,
            discount_bps=invoice.discount_bps,
            escrow_bps=invoice.escrow_bps,
            fee_bps=invoice.fee_bps,
            created_at=invoice.created_at,
            financed_at=invoice.financed_at,
            paid_at=invoice.paid_at,
            investor=invoice.investor,
            investor_paid=invoice.investor_paid,
            supplier_received=invoice.supplier_received,
            origination_fee=invoice.origination_fee,
            escrow_id=invoice.escrow_id,
            funding_id=invoice.funding_id,
            invoice_number=invoice.invoice_number,
            description=invoice.description,
        )


class InvoiceListResponse(BaseModel):
    """One page of invoices."""
    invoices: list[InvoiceResponse]
    total: int
    page: int
    limit: int

    @classmethod
    def from_domain(cls, page: InvoicePage) -> "InvoiceListResponse":
        return cls(
            invoices=[InvoiceResponse.from_domain(inv) for inv in page.invoices],
            total=page.total,
            page=page.page,
            limit=page.limit,
        )


class InvoiceEventResponse(BaseModel):
    """Contract event in an invoice's history."""
    id: int
    event_type: str
    invoice_id: str | None
    transaction_digest: str
    sender: str | None = None
    timestamp_ms: int | None = None
    data: dict[str, Any] = {}

    @classmethod
    def from_domain(cls, index: int, event: InvoiceEvent) -> "InvoiceEventResponse":
        return cls(
            id=index,
            event_type=event.event_type,
            invoice_id=event.invoice_id,
            transaction_digest=event.tx_digest,
            sender=event.sender,
            timestamp_ms=event.timestamp_ms,
            data=event.payload,
        )


class StatusTransitionResponse(BaseModel):
    from_status: str
    to_status: str
    timestamp_ms: int | None = None
    transaction_digest: str
    event_type: str

    @classmethod
    def from_domain(cls, t: StatusTransition) -> "StatusTransitionResponse":
        return cls(
            from_status=t.from_status.label,
            to_status=t.to_status.label,
            timestamp_ms=t.timestamp_ms,
            transaction_digest=t.tx_digest,
            event_type=t.event_type,
        )


class InvoiceDetailResponse(BaseModel):
    """An invoice with its event history and inferred transitions."""
    invoice: InvoiceResponse
    history: list[InvoiceEventResponse]
    transitions: list[StatusTransitionResponse]
    overdue: bool

    @classmethod
    def from_domain(cls, detail: InvoiceDetail) -> "InvoiceDetailResponse":
        return cls(
            invoice=InvoiceResponse.from_domain(detail.invoice),
            history=[
                InvoiceEventResponse.from_domain(i, e)
                for i, e in enumerate(detail.history, start=1)
            ],
            transitions=[StatusTransitionResponse.from_domain(t) for t in detail.transitions],
            overdue=detail.overdue,
        )


class EscrowResponse(BaseModel):
    id: str
    invoice_id: str
    escrow_amount: int
    escrow_amount_display: float
    paid: bool
    buyer: str | None = None

    @classmethod
    def from_domain(cls, escrow: Escrow) -> "EscrowResponse":
        return cls(
            id=escrow.id,
            invoice_id=escrow.invoice_id,
            escrow_amount=escrow.escrow_amount,
            escrow_amount_display=to_display(escrow.escrow_amount),
            paid=escrow.paid,
            buyer=escrow.buyer,
        )


class FundingResponse(BaseModel):
    id: str
    invoice_id: str
    funder: str

    @classmethod
    def from_domain(cls, funding: Funding) -> "FundingResponse":
        return cls(id=funding.id, invoice_id=funding.invoice_id, funder=funding.funder)


class FinancingQuoteResponse(BaseModel):
    """Fee waterfall for an offer plus the validation verdict."""
    face_value: int
    discount_rate_bps: int
    days_until_due: int
    discount_amount: int
    investor_pays: int
    investor_pays_display: float
    origination_fee: int
    supplier_receives: int
    supplier_receives_display: float
    expected_take_rate_fee: int
    settlement_fee_flat: int
    expected_investor_receives: int
    expected_net_profit: int
    # None when the yield is undefined (maturity reached)
    expected_apy: float | None
    accepted: bool
    checks: list[ValidationCheckResponse]

    @classmethod
    def from_domain(
        cls,
        quote: FinancingQuote,
        checks: list[ValidationCheck],
    ) -> "FinancingQuoteResponse":
        apy = quote.expected_apy
        return cls(
            face_value=quote.face_value,
            discount_rate_bps=quote.discount_rate_bps,
            days_until_due=quote.days_until_due,
            discount_amount=quote.discount_amount,
            investor_pays=quote.investor_pays,
            investor_pays_display=to_display(quote.investor_pays),
            origination_fee=quote.origination_fee,
            supplier_receives=quote.supplier_receives,
            supplier_receives_display=to_display(quote.supplier_receives),
            expected_take_rate_fee=quote.expected_take_rate_fee,
            settlement_fee_flat=quote.settlement_fee_flat,
            expected_investor_receives=quote.expected_investor_receives,
            expected_net_profit=quote.expected_net_profit,
            expected_apy=round(apy, 4) if math.isfinite(apy) else None,
            accepted=all(c.passed for c in checks),
            checks=[ValidationCheckResponse.from_domain(c) for c in checks],
        )


class PortfolioMetricsResponse(BaseModel):
    """Investor performance."""
    address: str
    total_invested: int
    total_returns: int
    active_investments: int
    completed_investments: int
    average_apy: float
    success_rate: float

    @classmethod
    def from_domain(cls, m: analytics.PortfolioMetrics) -> "PortfolioMetricsResponse":
        return cls(
            address=m.address,
            total_invested=m.total_invested,
            total_returns=m.total_returns,
            active_investments=m.active_investments,
            completed_investments=m.completed_investments,
            average_apy=round(m.average_apy, 2),
            success_rate=round(m.success_rate, 2),
        )


class IssuerMetricsResponse(BaseModel):
    """Supplier activity."""
    address: str
    total_issued: int
    total_face_value: int
    financed: int
    settled: int
    total_received: int


class AnalyticsSummaryResponse(BaseModel):
    """Platform-wide aggregates. Durations are in seconds."""
    total_invoices: int
    total_financed: int
    total_settled: int
    total_volume: int
    total_volume_display: float
    avg_time_to_finance: int
    avg_time_to_settlement: int
    active_suppliers: int
    active_financiers: int
    status_breakdown: dict[str, int]

    @classmethod
    def from_domain(cls, s: analytics.PlatformSummary) -> "AnalyticsSummaryResponse":
        return cls(
            total_invoices=s.total_invoices,
            total_financed=s.total_financed,
            total_settled=s.total_settled,
            total_volume=s.total_volume,
            total_volume_display=to_display(s.total_volume),
            avg_time_to_finance=s.avg_time_to_finance,
            avg_time_to_settlement=s.avg_time_to_settlement,
            active_suppliers=s.active_suppliers,
            active_financiers=s.active_financiers,
            status_breakdown=s.status_breakdown,
        )


class TreasuryResponse(BaseModel):
    id: str
    owner: str
    fee_bps: int
    balance: int
    balance_display: float

    @classmethod
    def from_domain(cls, t: Treasury) -> "TreasuryResponse":
        return cls(
            id=t.id,
            owner=t.owner,
            fee_bps=t.fee_bps,
            balance=t.balance,
            balance_display=to_display(t.balance),
        )


class SupplierStatusResponse(BaseModel):
    address: str
    registered: bool


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    sui_network: str
    package_configured: bool
    cache: str = "memory"


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: str | None = None
    code: str | None = None
    errors: dict[str, str] | None = None

"""
Portfolio and platform aggregates over reconstructed invoices.

Pure functions: callers fetch and decode invoices, this module only
counts and averages them. Every mean and rate returns 0 on an empty
denominator so no NaN or infinity ever reaches a response.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from .financing import purchase_price, realized_apy
from .models import Invoice, InvoiceStatus


@dataclass(frozen=True)
class PortfolioMetrics:
    """Investment performance of one address."""
    address: str
    active_investments: int = 0
    completed_investments: int = 0
    total_investments: int = 0
    total_invested: int = 0
    total_returns: int = 0
    average_apy: float = 0.0
    success_rate: float = 0.0


@dataclass(frozen=True)
class IssuerMetrics:
    """Origination activity of one supplier address."""
    address: str
    total_issued: int = 0
    total_face_value: int = 0
    financed: int = 0
    settled: int = 0
    total_received: int = 0


@dataclass(frozen=True)
class PlatformSummary:
    """Platform-wide aggregates."""
    total_invoices: int = 0
    total_financed: int = 0
    total_settled: int = 0
    total_volume: int = 0
    avg_time_to_finance: int = 0
    avg_time_to_settlement: int = 0
    active_suppliers: int = 0
    active_financiers: int = 0
    status_breakdown: dict[str, int] = field(default_factory=dict)


def _same_address(a: str | None, b: str) -> bool:
    return bool(a) and a.lower() == b.lower()


def financed_by(invoices: Iterable[Invoice], address: str) -> list[Invoice]:
    return [inv for inv in invoices if _same_address(inv.investor, address)]


def issued_by(invoices: Iterable[Invoice], address: str) -> list[Invoice]:
    return [inv for inv in invoices if _same_address(inv.supplier, address)]


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def portfolio_metrics(invoices: Iterable[Invoice], address: str) -> PortfolioMetrics:
    """
    Metrics for an investor.

    Active and completed are FINANCED and PAID invoices financed by the
    address. The average APY only covers PAID invoices whose realized
    yield is defined.
    """
    mine = financed_by(invoices, address)
    active = [inv for inv in mine if inv.status == InvoiceStatus.FINANCED]
    completed = [inv for inv in mine if inv.status == InvoiceStatus.PAID]

    total_invested = sum(
        purchase_price(inv.face_value, inv.discount_bps) for inv in active + completed
    )
    total_returns = sum(inv.face_value for inv in completed)

    apys = [
        apy for inv in completed
        if (apy := realized_apy(inv.face_value, inv.discount_bps, inv.financed_at, inv.paid_at))
        is not None
    ]

    total = len(mine)
    return PortfolioMetrics(
        address=address,
        active_investments=len(active),
        completed_investments=len(completed),
        total_investments=total,
        total_invested=total_invested,
        total_returns=total_returns,
        average_apy=_mean(apys),
        success_rate=len(completed) / total * 100 if total else 0.0,
    )


def issuer_metrics(invoices: Iterable[Invoice], address: str) -> IssuerMetrics:
    """Metrics for a supplier: what was issued, financed and received."""
    mine = issued_by(invoices, address)
    return IssuerMetrics(
        address=address,
        total_issued=len(mine),
        total_face_value=sum(inv.face_value for inv in mine),
        financed=sum(1 for inv in mine if inv.has_been_financed),
        settled=sum(1 for inv in mine if inv.status == InvoiceStatus.PAID),
        total_received=sum(inv.supplier_received or 0 for inv in mine),
    )


def platform_summary(invoices: Iterable[Invoice]) -> PlatformSummary:
    """
    Aggregate metrics across every known invoice.

    Durations are in seconds, floored. Time-to-finance only counts
    invoices with both timestamps; time-to-settlement likewise.
    """
    invoices = list(invoices)
    if not invoices:
        return PlatformSummary(status_breakdown={s.label: 0 for s in InvoiceStatus})

    to_finance = [
        inv.financed_at - inv.created_at
        for inv in invoices
        if inv.financed_at and inv.created_at
    ]
    to_settle = [
        inv.paid_at - inv.financed_at
        for inv in invoices
        if inv.paid_at and inv.financed_at
    ]

    counts = Counter(inv.status for inv in invoices)

    return PlatformSummary(
        total_invoices=len(invoices),
        total_financed=sum(1 for inv in invoices if inv.has_been_financed),
        total_settled=counts[InvoiceStatus.PAID],
        total_volume=sum(inv.face_value for inv in invoices),
        avg_time_to_finance=sum(to_finance) // len(to_finance) if to_finance else 0,
        avg_time_to_settlement=sum(to_settle) // len(to_settle) if to_settle else 0,
        active_suppliers=len({inv.supplier.lower() for inv in invoices if inv.supplier}),
        active_financiers=len({inv.investor.lower() for inv in invoices if inv.investor}),
        status_breakdown={s.label: counts[s] for s in InvoiceStatus},
    )

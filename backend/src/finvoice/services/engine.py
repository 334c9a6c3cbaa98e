"""
Invoice engine: the operations the HTTP layer exposes.

Ties discovery, reconstruction, the financing calculator and analytics
together behind one object. Configuration problems and bad input are
rejected before any ledger call.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from finvoice.config import Settings
from finvoice.domain import analytics, financing
from finvoice.domain.financing import FeeSchedule, FinancingQuote, calculate_financing
from finvoice.domain.models import (
    Escrow,
    Funding,
    Invoice,
    InvoiceDetail,
    InvoiceFilters,
    InvoicePage,
    OfferAssessment,
    Treasury,
)
from finvoice.domain.validation import (
    require_address,
    require_object_id,
    validate_financing_offer,
)
from finvoice.errors import ConfigurationError, InputValidationError
from finvoice.infrastructure.cache import DiscoveryCache, InMemoryKeyValueStore, KeyValueStore

from .decoder import decode_treasury
from .discovery import InvoiceDiscovery
from .ledger import ChainReader, LedgerClient
from .reconstructor import LifecycleReconstructor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinancingOffer:
    """A computed quote and the verdict on whether it may be offered."""
    quote: FinancingQuote
    assessment: OfferAssessment


def _sort_value(invoice: Invoice, key: str) -> int:
    if key == "face_value":
        return invoice.face_value
    if key == "due_date":
        return invoice.due_date
    return invoice.created_at or 0


def _matches(invoice: Invoice, filters: InvoiceFilters) -> bool:
    if filters.status is not None and invoice.status != filters.status:
        return False
    if filters.issuer and invoice.supplier.lower() != filters.issuer:
        return False
    if filters.buyer and invoice.buyer.lower() != filters.buyer:
        return False
    if filters.financier and (invoice.investor or "").lower() != filters.financier:
        return False
    if filters.min_amount is not None and invoice.face_value < filters.min_amount:
        return False
    if filters.max_amount is not None and invoice.face_value > filters.max_amount:
        return False
    return True


class InvoiceEngine:
    """
    Read-side invoice engine.

    Example:
        engine = InvoiceEngine.from_settings(get_settings())
        page = await engine.list_invoices(InvoiceFilters(limit=10))
        await engine.aclose()
    """

    def __init__(
        self,
        reader: ChainReader,
        settings: Settings,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.reader = reader
        self.settings = settings
        self.cache = DiscoveryCache(store or InMemoryKeyValueStore())
        self.clock = clock
        self.fees = FeeSchedule(
            origination_fee_bps=settings.origination_fee_bps,
            take_rate_bps=settings.take_rate_bps,
            settlement_fee_flat=settings.settlement_fee_flat,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: KeyValueStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "InvoiceEngine":
        reader = LedgerClient(
            settings.rpc_url,
            timeout=settings.ledger_timeout_seconds,
            http_client=http_client,
        )
        return cls(reader, settings, store=store)

    @property
    def package_id(self) -> str:
        if not self.settings.package_id:
            raise ConfigurationError("Package ID not configured")
        return self.settings.package_id

    @property
    def discovery(self) -> InvoiceDiscovery:
        event_type = (
            self.settings.creation_event_type
            or f"{self.package_id}::invoice_financing::InvoiceCreated"
        )
        return InvoiceDiscovery(
            self.reader,
            self.cache,
            event_type=event_type,
            page_size=self.settings.discovery_page_size,
            max_pages=self.settings.discovery_max_pages,
            retry_attempts=self.settings.discovery_retry_attempts,
        )

    @property
    def reconstructor(self) -> LifecycleReconstructor:
        return LifecycleReconstructor(
            self.reader,
            self.cache,
            package_id=self.package_id,
            history_page_size=self.settings.history_page_size,
            history_max_pages=self.settings.history_max_pages,
            clock=self.clock,
        )

    async def load_invoices(self) -> list[Invoice]:
        """Discover every known invoice and fetch what can be read."""
        reconstructor = self.reconstructor
        result = await self.discovery.discover()
        return await reconstructor.fetch_invoices(result.ids)

    async def list_invoices(self, filters: InvoiceFilters) -> InvoicePage:
        """Filter, sort and paginate; `total` counts matches before paging."""
        invoices = [inv for inv in await self.load_invoices() if _matches(inv, filters)]
        invoices.sort(
            key=lambda inv: _sort_value(inv, filters.sort),
            reverse=filters.order == "desc",
        )
        window = invoices[filters.offset:filters.offset + filters.limit]
        return InvoicePage(
            invoices=window,
            total=len(invoices),
            limit=filters.limit,
            offset=filters.offset,
        )

    async def get_invoice_detail(
        self,
        invoice_id: str,
        resolve_companions: bool = False,
    ) -> InvoiceDetail:
        invoice_id = require_object_id(invoice_id)
        return await self.reconstructor.reconstruct(invoice_id, resolve_companions)

    def quote_financing(
        self,
        face_value: int,
        discount_rate_bps: int,
        days_until_due: int,
    ) -> FinancingOffer:
        """Compute and validate a financing offer; no ledger access."""
        if face_value <= 0:
            raise InputValidationError({"face_value": "Must be a positive amount"})
        quote = calculate_financing(face_value, discount_rate_bps, days_until_due, self.fees)
        assessment = validate_financing_offer(quote, self.settings.max_discount_bps)
        if not assessment.accepted:
            logger.info(
                f"Offer rejected: {'; '.join(c.message for c in assessment.failed_checks)}"
            )
        return FinancingOffer(quote=quote, assessment=assessment)

    async def quote_invoice(self, invoice_id: str, discount_rate_bps: int | None = None) -> FinancingOffer:
        """Quote an existing invoice at its own (or an overridden) discount rate."""
        invoice_id = require_object_id(invoice_id)
        invoice = await self.reconstructor.fetch_invoice(invoice_id)
        rate = invoice.discount_bps if discount_rate_bps is None else discount_rate_bps
        days = financing.days_until_due(invoice.due_date, int(self.clock()))
        return self.quote_financing(invoice.face_value, rate, days)

    async def portfolio_metrics(self, address: str) -> analytics.PortfolioMetrics:
        address = require_address(address)
        return analytics.portfolio_metrics(await self.load_invoices(), address)

    async def issuer_metrics(self, address: str) -> analytics.IssuerMetrics:
        address = require_address(address)
        return analytics.issuer_metrics(await self.load_invoices(), address)

    async def platform_summary(self) -> analytics.PlatformSummary:
        summary = analytics.platform_summary(await self.load_invoices())
        logger.info(
            f"Platform summary: {summary.total_invoices} invoices, "
            f"volume {summary.total_volume}, {summary.active_suppliers} suppliers"
        )
        return summary

    async def get_treasury(self) -> Treasury:
        if not self.settings.treasury_id:
            raise ConfigurationError("Treasury ID not configured")
        return decode_treasury(await self.reader.get_object(self.settings.treasury_id))

    async def is_registered_supplier(self, address: str) -> bool:
        address = require_address(address)
        struct_type = f"{self.package_id}::registry::SupplierCap"
        return bool(await self.reader.get_owned_objects(address, struct_type))

    async def resolve_escrow(self, invoice_id: str) -> Escrow:
        invoice_id = require_object_id(invoice_id)
        return await self.reconstructor.resolve_escrow(invoice_id)

    async def resolve_funding(self, invoice_id: str) -> Funding:
        invoice_id = require_object_id(invoice_id)
        return await self.reconstructor.resolve_funding(invoice_id)

    async def aclose(self) -> None:
        await self.reader.aclose()

"""Unit tests for the invoice engine."""

import math

import pytest

from finvoice.config import Settings
from finvoice.domain.models import InvoiceFilters, InvoiceStatus
from finvoice.domain.validation import parse_invoice_filters
from finvoice.errors import ConfigurationError, InputValidationError
from finvoice.services.engine import InvoiceEngine

from conftest import (
    BUYER,
    DAY,
    INVESTOR,
    PACKAGE_ID,
    SUPPLIER,
    T0,
    TREASURY_ID,
    FakeLedger,
    object_id,
)


@pytest.fixture
def engine(ledger: FakeLedger, settings: Settings) -> InvoiceEngine:
    return InvoiceEngine(ledger, settings, clock=lambda: T0 + 30 * DAY)


@pytest.fixture
def populated(ledger: FakeLedger) -> FakeLedger:
    """Five invoices with distinct amounts, ages and states."""
    ledger.add_invoice(1, amount=1_000, created_at=T0)
    ledger.add_invoice(2, amount=5_000, created_at=T0 + DAY, status=1)
    ledger.add_invoice(3, amount=3_000, created_at=T0 + 2 * DAY, status=2,
                       investor=INVESTOR, financed_at=T0 + 3 * DAY)
    ledger.add_invoice(4, amount=8_000, created_at=T0 + 3 * DAY, status=3,
                       investor=INVESTOR, financed_at=T0 + 4 * DAY, paid_at=T0 + 20 * DAY)
    ledger.add_invoice(5, amount=2_000, created_at=T0 + 4 * DAY, supplier=BUYER, buyer=SUPPLIER)
    return ledger


class TestListInvoices:
    """Test filtering, sorting and paging."""

    @pytest.mark.asyncio
    async def test_default_order_is_newest_first(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        page = await engine.list_invoices(InvoiceFilters())

        assert [inv.id for inv in page.invoices] == [object_id(n) for n in (5, 4, 3, 2, 1)]
        assert page.total == 5

    @pytest.mark.asyncio
    async def test_filters_combine(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        filters = parse_invoice_filters({"issuer": SUPPLIER, "min_amount": "2000", "max_amount": "6000"})

        page = await engine.list_invoices(filters)

        assert {inv.id for inv in page.invoices} == {object_id(2), object_id(3)}

    @pytest.mark.asyncio
    async def test_status_and_financier(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        filters = parse_invoice_filters({"status": "paid", "financier": INVESTOR})

        page = await engine.list_invoices(filters)

        assert [inv.id for inv in page.invoices] == [object_id(4)]
        assert page.invoices[0].status == InvoiceStatus.PAID

    @pytest.mark.asyncio
    async def test_sort_by_face_value_ascending(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        page = await engine.list_invoices(InvoiceFilters(sort="face_value", order="asc"))

        assert [inv.face_value for inv in page.invoices] == [1_000, 2_000, 3_000, 5_000, 8_000]

    @pytest.mark.asyncio
    async def test_pagination(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        """Total counts every match; the window is limit items from offset."""
        page = await engine.list_invoices(InvoiceFilters(sort="face_value", order="asc", limit=2, offset=2))

        assert [inv.face_value for inv in page.invoices] == [3_000, 5_000]
        assert page.total == 5
        assert page.page == 2

    @pytest.mark.asyncio
    async def test_offset_past_end(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        page = await engine.list_invoices(InvoiceFilters(offset=50))

        assert page.invoices == []
        assert page.total == 5

    @pytest.mark.asyncio
    async def test_repeat_listing_is_identical(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        """With no ledger change a second pass returns the same page."""
        first = await engine.list_invoices(InvoiceFilters())
        second = await engine.list_invoices(InvoiceFilters())

        assert first == second
        assert await engine.cache.known_invoice_ids() == [object_id(n) for n in (5, 4, 3, 2, 1)]

    @pytest.mark.asyncio
    async def test_unreadable_invoice_is_skipped(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        populated.unreachable.add(object_id(3))

        page = await engine.list_invoices(InvoiceFilters())

        assert page.total == 4

    @pytest.mark.asyncio
    async def test_missing_package_id_fails_before_ledger(self, ledger: FakeLedger) -> None:
        """Configuration is checked before any ledger call."""
        engine = InvoiceEngine(ledger, Settings(_env_file=None, package_id=None))

        with pytest.raises(ConfigurationError, match="Package ID"):
            await engine.list_invoices(InvoiceFilters())

        assert ledger.query_calls == 0
        assert ledger.object_calls == []


class TestDetail:
    """Test single-invoice operations."""

    @pytest.mark.asyncio
    async def test_malformed_id_rejected_before_ledger(self, engine: InvoiceEngine, ledger: FakeLedger) -> None:
        with pytest.raises(InputValidationError):
            await engine.get_invoice_detail("abc")

        assert ledger.object_calls == []

    @pytest.mark.asyncio
    async def test_detail(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        detail = await engine.get_invoice_detail(object_id(3))

        assert detail.invoice.investor == INVESTOR
        assert detail.invoice.invoice_number == "INV-3"
        assert detail.history[0].event_type == "InvoiceCreated"


class TestQuotes:
    """Test financing quotes."""

    def test_quote_uses_configured_fees(self, ledger: FakeLedger) -> None:
        settings = Settings(_env_file=None, package_id=PACKAGE_ID, settlement_fee_flat=10)
        engine = InvoiceEngine(ledger, settings)

        offer = engine.quote_financing(10_000, 200, 60)

        assert offer.quote.expected_net_profit == 170
        assert offer.assessment.accepted

    def test_quote_works_without_package_id(self, ledger: FakeLedger) -> None:
        engine = InvoiceEngine(ledger, Settings(_env_file=None, package_id=None))

        assert engine.quote_financing(10_000_000_000, 200, 60).assessment.accepted

    def test_non_positive_face_value(self, engine: InvoiceEngine) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            engine.quote_financing(0, 200, 60)
        assert "face_value" in exc_info.value.errors

    def test_rejected_offer_is_not_an_error(self, engine: InvoiceEngine) -> None:
        offer = engine.quote_financing(10_000, 200, 0)

        assert not offer.assessment.accepted
        assert math.isnan(offer.quote.expected_apy)

    @pytest.mark.asyncio
    async def test_quote_invoice_counts_days_from_now(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        """Invoice 1 is due 60 days after T0; the clock reads T0 + 30 days."""
        offer = await engine.quote_invoice(object_id(1))

        assert offer.quote.days_until_due == 30
        assert offer.quote.discount_rate_bps == 200

    @pytest.mark.asyncio
    async def test_quote_invoice_rate_override(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        offer = await engine.quote_invoice(object_id(1), discount_rate_bps=400)

        assert offer.quote.discount_amount == 40


class TestAnalytics:
    """Test metrics over the discovered invoices."""

    @pytest.mark.asyncio
    async def test_portfolio(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        metrics = await engine.portfolio_metrics(INVESTOR)

        assert metrics.active_investments == 1
        assert metrics.completed_investments == 1
        assert metrics.success_rate == 50.0

    @pytest.mark.asyncio
    async def test_portfolio_requires_address(self, engine: InvoiceEngine, ledger: FakeLedger) -> None:
        with pytest.raises(InputValidationError):
            await engine.portfolio_metrics("0x1234")
        assert ledger.query_calls == 0

    @pytest.mark.asyncio
    async def test_issuer(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        metrics = await engine.issuer_metrics(BUYER)

        assert metrics.total_issued == 1
        assert metrics.total_face_value == 2_000

    @pytest.mark.asyncio
    async def test_platform_summary(self, engine: InvoiceEngine, populated: FakeLedger) -> None:
        summary = await engine.platform_summary()

        assert summary.total_invoices == 5
        assert summary.total_financed == 2
        assert summary.total_volume == 19_000
        assert summary.active_suppliers == 2


class TestTreasuryAndRegistry:
    """Test treasury and supplier reads."""

    @pytest.mark.asyncio
    async def test_treasury(self, engine: InvoiceEngine, ledger: FakeLedger) -> None:
        ledger.put_object(TREASURY_ID, "treasury::Treasury", {"owner": SUPPLIER, "fee_bps": "100", "balance": "42"})

        treasury = await engine.get_treasury()

        assert treasury.balance == 42

    @pytest.mark.asyncio
    async def test_treasury_not_configured(self, ledger: FakeLedger) -> None:
        engine = InvoiceEngine(ledger, Settings(_env_file=None, package_id=PACKAGE_ID, treasury_id=None))

        with pytest.raises(ConfigurationError, match="Treasury ID"):
            await engine.get_treasury()

    @pytest.mark.asyncio
    async def test_registered_supplier(self, engine: InvoiceEngine, ledger: FakeLedger) -> None:
        ledger.owned[(SUPPLIER, f"{PACKAGE_ID}::registry::SupplierCap")] = [object_id(900)]

        assert await engine.is_registered_supplier(SUPPLIER)
        assert not await engine.is_registered_supplier(BUYER)

    @pytest.mark.asyncio
    async def test_aclose_closes_reader(self, engine: InvoiceEngine, ledger: FakeLedger) -> None:
        await engine.aclose()

        assert ledger.closed

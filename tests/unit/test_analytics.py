"""Unit tests for portfolio and platform aggregates."""

import pytest

from finvoice.domain.analytics import issuer_metrics, platform_summary, portfolio_metrics
from finvoice.domain.financing import realized_apy
from finvoice.domain.models import Invoice, InvoiceStatus

from conftest import BUYER, DAY, INVESTOR, SUPPLIER, T0


def make_invoice(n: int, status: InvoiceStatus, **overrides) -> Invoice:
    values = dict(
        id=f"0x{n:064x}",
        supplier=SUPPLIER,
        buyer=BUYER,
        face_value=10_000,
        due_date=T0 + 60 * DAY,
        status=status,
        discount_bps=200,
        escrow_bps=1_000,
        fee_bps=100,
        created_at=T0,
    )
    values.update(overrides)
    return Invoice(**values)


@pytest.fixture
def book() -> list[Invoice]:
    """One active and one settled investment by INVESTOR, plus an unfinanced invoice."""
    return [
        make_invoice(1, InvoiceStatus.FINANCED, investor=INVESTOR, financed_at=T0 + DAY,
                     supplier_received=9_702),
        make_invoice(2, InvoiceStatus.PAID, investor=INVESTOR, financed_at=T0 + 3 * DAY,
                     paid_at=T0 + 33 * DAY, supplier_received=9_702),
        make_invoice(3, InvoiceStatus.CREATED, face_value=5_000),
    ]


class TestPortfolioMetrics:
    """Test investor metrics."""

    def test_no_investments_is_all_zero(self) -> None:
        metrics = portfolio_metrics([], INVESTOR)

        assert metrics.total_investments == 0
        assert metrics.average_apy == 0.0
        assert metrics.success_rate == 0.0

    def test_active_and_completed(self, book: list[Invoice]) -> None:
        metrics = portfolio_metrics(book, INVESTOR)

        assert metrics.active_investments == 1
        assert metrics.completed_investments == 1
        assert metrics.total_investments == 2
        assert metrics.total_invested == 9_800 * 2
        assert metrics.total_returns == 10_000
        assert metrics.success_rate == 50.0

    def test_average_apy_uses_settled_only(self, book: list[Invoice]) -> None:
        """With one settled invoice the average equals its realized yield."""
        metrics = portfolio_metrics(book, INVESTOR)

        assert metrics.average_apy == pytest.approx(
            realized_apy(10_000, 200, T0 + 3 * DAY, T0 + 33 * DAY)
        )

    def test_address_match_is_case_insensitive(self, book: list[Invoice]) -> None:
        metrics = portfolio_metrics(book, INVESTOR.upper().replace("0X", "0x"))

        assert metrics.total_investments == 2

    def test_settled_without_timestamps_excluded_from_apy(self) -> None:
        invoices = [make_invoice(1, InvoiceStatus.PAID, investor=INVESTOR)]

        metrics = portfolio_metrics(invoices, INVESTOR)

        assert metrics.completed_investments == 1
        assert metrics.average_apy == 0.0


class TestIssuerMetrics:
    """Test supplier metrics."""

    def test_issuer_totals(self, book: list[Invoice]) -> None:
        metrics = issuer_metrics(book, SUPPLIER)

        assert metrics.total_issued == 3
        assert metrics.total_face_value == 25_000
        assert metrics.financed == 2
        assert metrics.settled == 1
        assert metrics.total_received == 19_404

    def test_unknown_issuer(self, book: list[Invoice]) -> None:
        assert issuer_metrics(book, BUYER).total_issued == 0


class TestPlatformSummary:
    """Test platform-wide aggregates."""

    def test_empty_platform(self) -> None:
        summary = platform_summary([])

        assert summary.total_invoices == 0
        assert summary.avg_time_to_finance == 0
        assert summary.status_breakdown == {s.label: 0 for s in InvoiceStatus}

    def test_totals_and_breakdown(self, book: list[Invoice]) -> None:
        summary = platform_summary(book)

        assert summary.total_invoices == 3
        assert summary.total_financed == 2
        assert summary.total_settled == 1
        assert summary.total_volume == 25_000
        assert summary.active_suppliers == 1
        assert summary.active_financiers == 1
        assert summary.status_breakdown["financed"] == 1
        assert summary.status_breakdown["paid"] == 1
        assert summary.status_breakdown["created"] == 1
        assert summary.status_breakdown["defaulted"] == 0

    def test_mean_durations_are_floored(self, book: list[Invoice]) -> None:
        """(1 day + 3 days) / 2 to finance, 30 days to settle."""
        summary = platform_summary(book)

        assert summary.avg_time_to_finance == 2 * DAY
        assert summary.avg_time_to_settlement == 30 * DAY

    def test_disputed_after_financing_counts_as_financed(self) -> None:
        invoices = [make_invoice(1, InvoiceStatus.DISPUTED, investor=INVESTOR)]

        assert platform_summary(invoices).total_financed == 1

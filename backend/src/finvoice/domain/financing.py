"""
Financing arithmetic for discounted invoices.

This module contains pure functions for the fee waterfall an investor
offer goes through, and for projected and realized yields.
No side effects, no I/O.

Design Decisions:
- All amounts are int in the smallest currency unit with floor division,
  so every split reconciles exactly with its parent amount
- Yields are floats (percent); a non-positive horizon yields NaN so the
  caller has to reject it explicitly
- Display conversion goes through Decimal to avoid float drift
"""

import math
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal

BPS_DIVISOR = 10_000
DAYS_PER_YEAR = 365
SECONDS_PER_DAY = 60 * 60 * 24
MIST_PER_SUI = 1_000_000_000


@dataclass(frozen=True)
class FeeSchedule:
    """Platform fee parameters applied to every financing."""
    origination_fee_bps: int = 100
    take_rate_bps: int = 1_000
    settlement_fee_flat: int = 10_000_000


@dataclass(frozen=True)
class FinancingQuote:
    """
    The full fee waterfall for one financing offer.

    Reconciles by construction:
    - discount_amount + investor_pays == face_value
    - origination_fee + supplier_receives == investor_pays
    - expected_take_rate_fee + settlement_fee_flat + expected_investor_receives == face_value
    """
    face_value: int
    discount_rate_bps: int
    days_until_due: int
    discount_amount: int
    investor_pays: int
    origination_fee: int
    supplier_receives: int
    expected_take_rate_fee: int
    settlement_fee_flat: int
    expected_investor_receives: int
    expected_net_profit: int
    expected_apy: float


def apply_bps(amount: int, bps: int) -> int:
    """Take `bps` basis points of `amount`, rounding down."""
    return amount * bps // BPS_DIVISOR


def discount_amount(face_value: int, discount_rate_bps: int) -> int:
    return apply_bps(face_value, discount_rate_bps)


def purchase_price(face_value: int, discount_rate_bps: int) -> int:
    """What an investor pays for the invoice."""
    return face_value - discount_amount(face_value, discount_rate_bps)


def escrow_amount(face_value: int, escrow_bps: int) -> int:
    """Collateral the buyer locks before the invoice can be financed."""
    return apply_bps(face_value, escrow_bps)


def total_repayment(face_value: int, discount_rate_bps: int) -> int:
    """What the buyer owes at settlement: face value plus the discount."""
    return face_value + discount_amount(face_value, discount_rate_bps)


def annualize(profit: int, investment: int, days: float) -> float:
    """
    Annualized percentage yield of `profit` on `investment` over `days`.

    Returns NaN for a non-positive horizon and 0 for a zero investment.
    The horizon check comes first.
    """
    if days <= 0:
        return math.nan
    if investment == 0:
        return 0.0
    return (profit / investment) * (DAYS_PER_YEAR / days) * 100


def calculate_financing(
    face_value: int,
    discount_rate_bps: int,
    days_until_due: int,
    fees: FeeSchedule | None = None,
) -> FinancingQuote:
    """
    Compute the fee waterfall and projected APY for a financing offer.

    Deterministic: identical inputs always produce an identical quote.
    The quote is not validated here; see `validation.validate_financing_offer`.
    """
    fees = fees or FeeSchedule()

    discount = discount_amount(face_value, discount_rate_bps)
    investor_pays = face_value - discount
    origination_fee = apply_bps(investor_pays, fees.origination_fee_bps)
    supplier_receives = investor_pays - origination_fee

    take_rate_fee = apply_bps(discount, fees.take_rate_bps)
    investor_receives = face_value - take_rate_fee - fees.settlement_fee_flat
    net_profit = investor_receives - investor_pays

    return FinancingQuote(
        face_value=face_value,
        discount_rate_bps=discount_rate_bps,
        days_until_due=days_until_due,
        discount_amount=discount,
        investor_pays=investor_pays,
        origination_fee=origination_fee,
        supplier_receives=supplier_receives,
        expected_take_rate_fee=take_rate_fee,
        settlement_fee_flat=fees.settlement_fee_flat,
        expected_investor_receives=investor_receives,
        expected_net_profit=net_profit,
        expected_apy=annualize(net_profit, investor_pays, days_until_due),
    )


def days_held(financed_at: int | None, paid_at: int | None) -> float | None:
    """Fractional days between financing and settlement, None if unknown."""
    if not financed_at or not paid_at:
        return None
    return (paid_at - financed_at) / SECONDS_PER_DAY


def realized_apy(
    face_value: int,
    discount_rate_bps: int,
    financed_at: int | None,
    paid_at: int | None,
) -> float | None:
    """
    Yield actually earned on a settled invoice.

    The investment is the purchase price and the return is the face value.
    Returns None when the invoice does not qualify for averaging:
    missing timestamps, non-positive holding period or zero investment.
    """
    held = days_held(financed_at, paid_at)
    if held is None or held <= 0:
        return None
    investment = purchase_price(face_value, discount_rate_bps)
    if investment == 0:
        return None
    return annualize(face_value - investment, investment, held)


def days_until_due(due_date: int, now: int) -> int:
    """Whole days until `due_date`, rounded up; negative once overdue."""
    return math.ceil((due_date - now) / SECONDS_PER_DAY)


def to_display(amount: int) -> float:
    """Smallest units to display units (SUI) for presentation."""
    return float(Decimal(amount) / MIST_PER_SUI)


def from_display(value: str | float | Decimal) -> int:
    """
    Display units to smallest units, truncating sub-unit precision.

    Raises ValueError for negative or non-numeric input.
    """
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise ValueError(f"Not a number: {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Amount must be a non-negative number: {value!r}")
    return int((amount * MIST_PER_SUI).to_integral_value(rounding=ROUND_DOWN))

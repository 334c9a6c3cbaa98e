"""
Input and business-rule validation for invoice financing.

This module contains pure functions that reject bad caller input before
any ledger call, and rules that decide whether an invoice snapshot or a
financing offer is acceptable.
No side effects, no I/O - just rule evaluation.

Design Decisions:
- Query validation collects every field error before raising, so callers
  get one complete field-level error map
- Business rules return ValidationCheck with pass/fail and details
- Addresses are compared lowercased; the ledger is case-insensitive on hex
"""

import math
import re
from collections.abc import Mapping
from typing import get_args

from ..errors import InputValidationError
from .financing import BPS_DIVISOR, FinancingQuote
from .models import (
    Invoice,
    InvoiceFilters,
    InvoiceStatus,
    OfferAssessment,
    SortKey,
    SortOrder,
    ValidationCheck,
)


SUI_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")

INVALID_ADDRESS = "Invalid Sui address format"
NON_NEGATIVE = "Must be a non-negative number"

DEFAULT_LIMIT = 50

# Discount rates above this are treated as malformed input
MAX_DISCOUNT_BPS = 5_000


def is_valid_sui_address(address: str | None) -> bool:
    """Sui addresses are 0x followed by 64 hex characters."""
    if not address:
        return False
    return SUI_ADDRESS_PATTERN.match(address) is not None


def normalize_address(address: str) -> str:
    return address.strip().lower()


def require_address(address: str | None, field_name: str = "address") -> str:
    """Validate and normalize a single address parameter."""
    if not address:
        raise InputValidationError(
            {field_name: "Address parameter is required"},
            message="Missing parameter",
        )
    if not is_valid_sui_address(address):
        raise InputValidationError(
            {field_name: f"{INVALID_ADDRESS} (must be 0x + 64 hex characters)"},
        )
    return normalize_address(address)


def require_object_id(object_id: str | None) -> str:
    """Object ids only need the 0x prefix; existence is the ledger's call."""
    if not object_id or not object_id.startswith("0x"):
        raise InputValidationError(
            {"id": 'Invoice ID must start with "0x"'},
            message="Invalid invoice id",
        )
    return object_id


def _parse_int(raw: str, minimum: int) -> int | None:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= minimum else None


def parse_invoice_filters(params: Mapping[str, str | None]) -> InvoiceFilters:
    """
    Parse raw list-query parameters into InvoiceFilters.

    Empty values are treated as absent. Raises InputValidationError with
    one entry per rejected field.
    """
    errors: dict[str, str] = {}
    raw = {k: v for k, v in params.items() if v not in (None, "")}

    status = None
    if "status" in raw:
        try:
            status = InvoiceStatus.from_name(raw["status"])
        except ValueError:
            errors["status"] = "Invalid status value"

    addresses: dict[str, str | None] = {}
    for name in ("issuer", "buyer", "financier"):
        value = raw.get(name)
        if value is not None and not is_valid_sui_address(value):
            errors[name] = INVALID_ADDRESS
        addresses[name] = normalize_address(value) if value else None

    amounts: dict[str, int | None] = {}
    for name in ("min_amount", "max_amount"):
        amounts[name] = None
        if name in raw:
            amounts[name] = _parse_int(raw[name], minimum=0)
            if amounts[name] is None:
                errors[name] = NON_NEGATIVE

    min_amount, max_amount = amounts["min_amount"], amounts["max_amount"]
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        errors["max_amount"] = "Must be greater than or equal to min_amount"

    sort = raw.get("sort", "created_at")
    if sort not in get_args(SortKey):
        errors["sort"] = "Invalid sort field"

    order = raw.get("order", "desc")
    if order not in get_args(SortOrder):
        errors["order"] = "Invalid order value"

    limit = DEFAULT_LIMIT
    if "limit" in raw:
        limit = _parse_int(raw["limit"], minimum=1)
        if limit is None:
            errors["limit"] = "Must be a positive number"

    offset = 0
    if "offset" in raw:
        offset = _parse_int(raw["offset"], minimum=0)
        if offset is None:
            errors["offset"] = NON_NEGATIVE

    if errors:
        raise InputValidationError(errors, message="Invalid query parameters")

    return InvoiceFilters(
        status=status,
        issuer=addresses["issuer"],
        buyer=addresses["buyer"],
        financier=addresses["financier"],
        min_amount=min_amount,
        max_amount=max_amount,
        sort=sort,
        order=order,
        limit=limit,
        offset=offset,
    )


def check_rate_bounds(invoice: Invoice) -> ValidationCheck:
    """Every rate on an invoice is a basis-point value in [0, 10000]."""
    rates = {
        "discount_bps": invoice.discount_bps,
        "escrow_bps": invoice.escrow_bps,
        "fee_bps": invoice.fee_bps,
    }
    out_of_range = {k: v for k, v in rates.items() if not 0 <= v <= BPS_DIVISOR}
    passed = not out_of_range
    return ValidationCheck(
        rule_name="rate_bounds",
        passed=passed,
        message=(
            "Rates within bounds" if passed
            else f"Rates out of range: {', '.join(f'{k}={v}' for k, v in out_of_range.items())}"
        ),
        details={k: str(v) for k, v in rates.items()},
    )


def check_date_sequence(invoice: Invoice) -> ValidationCheck:
    """
    The due date must be strictly after creation.

    Skipped when the creation time is unknown.
    """
    if invoice.created_at is None:
        return ValidationCheck(
            rule_name="date_sequence",
            passed=True,
            message="No creation time to compare",
            details={"note": "Skipped - created_at missing"},
        )
    passed = invoice.due_date > invoice.created_at
    return ValidationCheck(
        rule_name="date_sequence",
        passed=passed,
        message=(
            "Date sequence valid" if passed
            else f"Due date ({invoice.due_date}) is not after creation ({invoice.created_at})"
        ),
        details={
            "created_at": str(invoice.created_at),
            "due_date": str(invoice.due_date),
        },
    )


def check_settlement_amounts(invoice: Invoice) -> ValidationCheck:
    """Paid/received amounts may only appear once the invoice was financed."""
    populated = [
        name for name in ("investor_paid", "supplier_received", "origination_fee")
        if getattr(invoice, name) is not None
    ]
    passed = not populated or invoice.has_been_financed
    return ValidationCheck(
        rule_name="settlement_amounts",
        passed=passed,
        message=(
            "Settlement amounts consistent with status" if passed
            else f"{', '.join(populated)} set on a {invoice.status.label} invoice"
        ),
        details={"status": invoice.status.label, "populated": populated},
    )


def check_invoice_invariants(invoice: Invoice) -> list[ValidationCheck]:
    return [
        check_rate_bounds(invoice),
        check_date_sequence(invoice),
        check_settlement_amounts(invoice),
    ]


def validate_financing_offer(
    quote: FinancingQuote,
    max_discount_bps: int = MAX_DISCOUNT_BPS,
) -> OfferAssessment:
    """
    Decide whether a computed quote may be offered to an investor.

    Rejects a non-positive or malformed discount, a non-finite APY
    (maturity already reached) and an APY below zero (the investor
    would lose money after fees).
    """
    checks: list[ValidationCheck] = []

    rate = quote.discount_rate_bps
    checks.append(ValidationCheck(
        rule_name="discount_rate",
        passed=0 < rate <= max_discount_bps,
        message=(
            f"Discount rate {rate} bps accepted" if 0 < rate <= max_discount_bps
            else f"Discount rate must be between 1 and {max_discount_bps} bps, got {rate}"
        ),
        details={"discount_rate_bps": rate, "max_discount_bps": max_discount_bps},
    ))

    finite = math.isfinite(quote.expected_apy)
    checks.append(ValidationCheck(
        rule_name="maturity",
        passed=finite,
        message=(
            f"{quote.days_until_due} days until due" if finite
            else "Invoice is at or past its due date"
        ),
        details={"days_until_due": quote.days_until_due},
    ))

    if finite:
        non_negative = quote.expected_apy >= 0
        checks.append(ValidationCheck(
            rule_name="positive_yield",
            passed=non_negative,
            message=(
                f"Expected APY {quote.expected_apy:.2f}%" if non_negative
                else f"Expected APY {quote.expected_apy:.2f}% is negative after fees"
            ),
            details={
                "expected_apy": round(quote.expected_apy, 4),
                "expected_net_profit": quote.expected_net_profit,
            },
        ))

    return OfferAssessment(checks=checks)

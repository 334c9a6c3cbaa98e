"""
Decode raw ledger records into domain entities.

The contracts have been redeployed with renamed fields, so several
attributes are read from an ordered list of candidate names; the first
name present wins. Move `Option<T>` values arrive as {"vec": [v]} or
{"vec": []} and are unwrapped here.

Design Decisions:
- Decoding never guesses a missing required field; it raises DecodeError
  and list callers drop the record
- Invariant checks reuse the domain validation rules
- Numbers arrive as decimal strings (u64) and are parsed with int()
"""

import json
import logging
from typing import Any

from finvoice.domain.lifecycle import event_type_name
from finvoice.domain.models import Escrow, Funding, Invoice, InvoiceEvent, InvoiceStatus, Treasury
from finvoice.domain.validation import check_invoice_invariants
from finvoice.errors import DecodeError

from .ledger import LedgerEvent, LedgerObject

logger = logging.getLogger(__name__)


# Candidate field names, newest contract layout first
FACE_VALUE_FIELDS = ("amount", "face_value")
INVESTOR_FIELDS = ("financed_by", "financier", "investor")
CREATED_AT_FIELDS = ("created_at", "issued_at")
SUPPLIER_FIELDS = ("supplier", "issuer")
BUYER_FIELDS = ("buyer", "buyer_hash")


def unwrap_option(value: Any) -> Any:
    """Return the inner value of a Move Option, or the value unchanged."""
    if isinstance(value, dict) and "vec" in value:
        vec = value["vec"]
        if not isinstance(vec, list):
            raise DecodeError(f"Option value is not a vector: {vec!r}")
        return vec[0] if vec else None
    return value


def first_present(fields: dict[str, Any], names: tuple[str, ...]) -> Any:
    """First non-empty value among `names`, after Option unwrapping."""
    for name in names:
        value = unwrap_option(fields.get(name))
        if value not in (None, ""):
            return value
    return None


def _int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DecodeError(f"Field {name!r} is not an integer: {value!r}") from None


def _optional_int(value: Any, name: str) -> int | None:
    value = unwrap_option(value)
    if value in (None, ""):
        return None
    return _int(value, name)


def _timestamp(value: Any, name: str) -> int | None:
    """Optional unix timestamp; the contracts write 0 for "not yet"."""
    parsed = _optional_int(value, name)
    return parsed or None


def _address(value: Any) -> str | None:
    """Addresses are hex strings; legacy buyer hashes arrive as byte lists."""
    value = unwrap_option(value)
    if value in (None, ""):
        return None
    if isinstance(value, list):
        try:
            return "0x" + bytes(value).hex()
        except (TypeError, ValueError):
            raise DecodeError(f"Field is not a byte list: {value!r}") from None
    return str(value).lower()


def _require(fields: dict[str, Any], names: tuple[str, ...]) -> Any:
    value = first_present(fields, names)
    if value is None:
        raise DecodeError(f"Missing required field: {' or '.join(names)}")
    return value


def struct_name(object_type: str | None) -> str | None:
    """`0x..::invoice::Invoice` -> `Invoice` (generic parameters stripped)."""
    if not object_type:
        return None
    return object_type.split("<", 1)[0].split("::")[-1]


def decode_companies_info(raw: Any) -> tuple[str | None, str]:
    """
    Decode invoice metadata stored as UTF-8 JSON bytes.

    Returns (invoice_number, description). Text that is not JSON becomes
    the description as-is.
    """
    if raw in (None, "", []):
        return None, ""
    try:
        text = bytes(raw).decode("utf-8") if isinstance(raw, list) else str(raw)
    except (ValueError, TypeError):
        logger.warning("Failed to decode companies_info bytes")
        return None, ""

    try:
        info = json.loads(text)
    except json.JSONDecodeError:
        return None, text
    if not isinstance(info, dict):
        return None, text

    number = info.get("invoiceNumber") or info.get("invoice_number")
    return (str(number) if number else None), str(info.get("description") or "")


def decode_invoice(obj: LedgerObject) -> Invoice:
    """
    Build an Invoice from an object snapshot.

    Raises:
        DecodeError: Wrong object type, missing fields or broken invariants
    """
    name = struct_name(obj.type)
    if name is not None and name != "Invoice":
        raise DecodeError(f"Object {obj.object_id} is a {name}, not an Invoice")

    f = obj.fields
    status_code = _int(_require(f, ("status",)), "status")
    try:
        status = InvoiceStatus.from_code(status_code)
    except ValueError:
        raise DecodeError(f"Unknown status code {status_code} on {obj.object_id}") from None

    invoice_number, description = decode_companies_info(f.get("companies_info"))

    invoice = Invoice(
        id=obj.object_id,
        supplier=_address(_require(f, SUPPLIER_FIELDS)),
        buyer=_address(_require(f, BUYER_FIELDS)),
        face_value=_int(_require(f, FACE_VALUE_FIELDS), "amount"),
        due_date=_int(_require(f, ("due_date",)), "due_date"),
        status=status,
        discount_bps=_optional_int(f.get("discount_bps"), "discount_bps") or 0,
        escrow_bps=_optional_int(f.get("escrow_bps"), "escrow_bps") or 0,
        fee_bps=_optional_int(f.get("fee_bps"), "fee_bps") or 0,
        created_at=_timestamp(first_present(f, CREATED_AT_FIELDS), "created_at"),
        financed_at=_timestamp(f.get("financed_at"), "financed_at"),
        paid_at=_timestamp(f.get("paid_at"), "paid_at"),
        investor=_address(first_present(f, INVESTOR_FIELDS)),
        investor_paid=_optional_int(f.get("investor_paid"), "investor_paid"),
        supplier_received=_optional_int(f.get("supplier_received"), "supplier_received"),
        origination_fee=_optional_int(f.get("origination_fee"), "origination_fee"),
        invoice_number=invoice_number,
        description=description,
        previous_transaction=obj.previous_transaction,
    )

    failed = [c for c in check_invoice_invariants(invoice) if not c.passed]
    if failed:
        raise DecodeError(
            f"Invoice {obj.object_id} violates invariants: "
            + "; ".join(c.message for c in failed)
        )
    return invoice


def decode_escrow(obj: LedgerObject) -> Escrow:
    f = obj.fields
    return Escrow(
        id=obj.object_id,
        invoice_id=str(_require(f, ("invoice_id",))),
        escrow_amount=_int(_require(f, ("escrow_amount",)), "escrow_amount"),
        paid=bool(f.get("paid", False)),
        buyer=_address(f.get("buyer")),
    )


def decode_funding(obj: LedgerObject) -> Funding:
    f = obj.fields
    return Funding(
        id=obj.object_id,
        invoice_id=str(_require(f, ("invoice_id",))),
        funder=_address(_require(f, ("funder",))),
    )


def decode_treasury(obj: LedgerObject) -> Treasury:
    """Balance<SUI> is either a plain u64 string or a {"fields": {"value"}} struct."""
    f = obj.fields
    balance = f.get("balance", 0)
    if isinstance(balance, dict):
        balance = (balance.get("fields") or balance).get("value", 0)
    return Treasury(
        id=obj.object_id,
        owner=_address(_require(f, ("owner",))),
        fee_bps=_optional_int(f.get("fee_bps"), "fee_bps") or 0,
        balance=_int(balance, "balance"),
    )


def decode_event(event: LedgerEvent) -> InvoiceEvent:
    payload = event.parsed_json
    invoice_id = payload.get("invoice_id")
    return InvoiceEvent(
        event_type=event_type_name(event.type),
        full_type=event.type,
        invoice_id=str(invoice_id) if invoice_id else None,
        tx_digest=event.tx_digest,
        sender=event.sender,
        timestamp_ms=event.timestamp_ms,
        payload=payload,
        sequence=event.event_seq,
    )

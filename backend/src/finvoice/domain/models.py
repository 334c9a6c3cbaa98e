"""
Domain models for on-chain invoice financing.

These models are read-only snapshots of ledger state. Nothing in this
package mutates them; every change happens through ledger transactions
issued elsewhere.

Design Decisions:
- Frozen dataclasses for immutable, typed snapshots
- All money as int in the smallest currency unit (MIST); floats only for
  explicit display values and percentages
- Timestamps on entities are unix seconds; event timestamps keep the
  ledger's milliseconds
- Status codes follow the contract enum, with DISPUTED appended after it
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal


class InvoiceStatus(Enum):
    """Lifecycle states, valued by their on-chain status code."""
    CREATED = 0    # Issued, awaiting buyer escrow
    READY = 1      # Escrow paid, available for financing
    FINANCED = 2   # Investor funded
    PAID = 3       # Settled by the buyer
    DEFAULTED = 4  # Overdue and unsettled
    DISPUTED = 5

    @classmethod
    def from_code(cls, code: int) -> "InvoiceStatus":
        """Map an on-chain status code; raises ValueError for unknown codes."""
        return cls(code)

    @classmethod
    def from_name(cls, name: str) -> "InvoiceStatus":
        """Parse a case-insensitive status name such as 'financed'."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown invoice status: {name}") from None

    @property
    def label(self) -> str:
        return self.name.lower()


# States at or past financing on the main path
FINANCED_OR_LATER = frozenset({
    InvoiceStatus.FINANCED,
    InvoiceStatus.PAID,
    InvoiceStatus.DEFAULTED,
})


@dataclass(frozen=True)
class Invoice:
    """
    A tokenized invoice as read from the ledger.

    Paid/received amounts are only populated once the invoice has been
    financed; the decoder enforces that.
    """
    id: str
    supplier: str
    buyer: str
    face_value: int
    due_date: int
    status: InvoiceStatus
    discount_bps: int = 0
    escrow_bps: int = 0
    fee_bps: int = 0
    created_at: int | None = None
    financed_at: int | None = None
    paid_at: int | None = None

    investor: str | None = None
    investor_paid: int | None = None
    supplier_received: int | None = None
    origination_fee: int | None = None

    # Companion objects, attached when resolved
    escrow_id: str | None = None
    funding_id: str | None = None

    invoice_number: str | None = None
    description: str = ""
    previous_transaction: str | None = None

    @property
    def has_been_financed(self) -> bool:
        """True once the invoice reached FINANCED, including a later dispute."""
        if self.status in FINANCED_OR_LATER:
            return True
        return self.status == InvoiceStatus.DISPUTED and (
            self.financed_at is not None or self.investor is not None
        )

    def is_overdue(self, now: int) -> bool:
        """A financed invoice past its due date without settlement."""
        return (
            self.status == InvoiceStatus.FINANCED
            and self.paid_at is None
            and self.due_date < now
        )


@dataclass(frozen=True)
class Escrow:
    """Buyer-side collateral for one invoice (shared object)."""
    id: str
    invoice_id: str
    escrow_amount: int
    paid: bool
    buyer: str | None = None


@dataclass(frozen=True)
class Funding:
    """Investor-side financing record for one invoice (shared object)."""
    id: str
    invoice_id: str
    funder: str


@dataclass(frozen=True)
class Treasury:
    """Platform fee sink."""
    id: str
    owner: str
    fee_bps: int
    balance: int


@dataclass(frozen=True)
class InvoiceEvent:
    """
    A contract event that mentions an invoice.

    `event_type` is the short struct name (e.g. "InvoiceFinanced");
    `full_type` keeps the package and module path.
    """
    event_type: str
    full_type: str
    invoice_id: str | None
    tx_digest: str
    sender: str | None
    timestamp_ms: int | None
    payload: dict[str, Any] = field(default_factory=dict)
    sequence: int = 0


@dataclass(frozen=True)
class StatusTransition:
    """One inferred edge of the lifecycle state machine."""
    from_status: InvoiceStatus
    to_status: InvoiceStatus
    timestamp_ms: int | None
    tx_digest: str
    event_type: str


@dataclass(frozen=True)
class InvoiceDetail:
    """An invoice with its replayed history."""
    invoice: Invoice
    history: list[InvoiceEvent] = field(default_factory=list)
    transitions: list[StatusTransition] = field(default_factory=list)
    overdue: bool = False


SortKey = Literal["created_at", "due_date", "face_value"]
SortOrder = Literal["asc", "desc"]


@dataclass(frozen=True)
class InvoiceFilters:
    """Validated list criteria. Build with `validation.parse_invoice_filters`."""
    status: InvoiceStatus | None = None
    issuer: str | None = None
    buyer: str | None = None
    financier: str | None = None
    min_amount: int | None = None
    max_amount: int | None = None
    sort: SortKey = "created_at"
    order: SortOrder = "desc"
    limit: int = 50
    offset: int = 0


@dataclass(frozen=True)
class InvoicePage:
    """A filtered, sorted window over the reconstructed invoices."""
    invoices: list[Invoice]
    total: int
    limit: int
    offset: int

    @property
    def page(self) -> int:
        return self.offset // self.limit + 1 if self.limit else 1


@dataclass
class ValidationCheck:
    """
    Result of a single validation rule.

    Mutable because checks are built incrementally during validation.
    """
    rule_name: str
    passed: bool
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class OfferAssessment:
    """Outcome of validating a financing quote before it is offered."""
    checks: list[ValidationCheck] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def failed_checks(self) -> list[ValidationCheck]:
        return [c for c in self.checks if not c.passed]

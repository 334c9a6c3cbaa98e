"""
Error taxonomy for the reconciliation engine.

Each kind maps to a distinct caller reaction: fix the input, fix the
deployment, treat as "not yet created", or retry later. The HTTP layer
translates these into status codes; the engine never converts one kind
into another.
"""


class FinvoiceError(Exception):
    """Base class for all engine errors."""

    code = "INTERNAL_ERROR"


class InputValidationError(FinvoiceError):
    """
    Caller-supplied input was rejected before any ledger call.

    Carries a field-level error map, e.g. {"issuer": "Invalid Sui address format"}.
    """

    code = "VALIDATION_ERROR"

    def __init__(self, errors: dict[str, str], message: str = "Invalid parameters") -> None:
        super().__init__(message)
        self.errors = errors


class ConfigurationError(FinvoiceError):
    """A required contract or network identifier is missing."""

    code = "CONFIG_ERROR"


class ObjectNotFoundError(FinvoiceError):
    """The object id is well-formed but does not exist on the ledger."""

    code = "NOT_FOUND"

    def __init__(self, object_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Object {object_id} not found")
        self.object_id = object_id


class LedgerTransportError(FinvoiceError):
    """The node was unreachable or returned an error or malformed payload."""

    code = "BLOCKCHAIN_ERROR"


class DecodeError(FinvoiceError):
    """A ledger record could not be turned into a valid domain entity."""

    code = "DECODE_ERROR"


class CompanionNotFoundError(FinvoiceError):
    """
    An escrow or funding object could not be located for an invoice.

    Recoverable: the object may simply not exist yet (escrow unpaid,
    invoice not financed).
    """

    code = "COMPANION_NOT_FOUND"

    def __init__(self, kind: str, invoice_id: str) -> None:
        super().__init__(
            f"No {kind} object found for invoice {invoice_id}; "
            f"it may not have been created yet"
        )
        self.kind = kind
        self.invoice_id = invoice_id

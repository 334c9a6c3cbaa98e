"""Shared fixtures: settings and an in-process ledger."""

from typing import Any

import pytest

from finvoice.config import Settings
from finvoice.errors import LedgerTransportError, ObjectNotFoundError
from finvoice.infrastructure.cache import DiscoveryCache, InMemoryKeyValueStore
from finvoice.services.ledger import (
    ChainReader,
    CreatedObject,
    EventPage,
    LedgerEvent,
    LedgerObject,
    LedgerTransaction,
)

PACKAGE_ID = "0x" + "1" * 64
TREASURY_ID = "0x" + "7" * 64
CREATED_EVENT = f"{PACKAGE_ID}::invoice_financing::InvoiceCreated"

SUPPLIER = "0x" + "a" * 64
BUYER = "0x" + "b" * 64
INVESTOR = "0x" + "c" * 64

# 2024-01-01T00:00:00Z
T0 = 1_704_067_200
DAY = 86_400


def object_id(n: int) -> str:
    return "0x" + f"{n:064x}"


def digest(n: int) -> str:
    return f"Dg{n:040d}"


class FakeLedger(ChainReader):
    """
    In-memory ledger with the same contract as LedgerClient.

    Events are stored oldest first; cursors are list offsets.
    """

    def __init__(self) -> None:
        self.objects: dict[str, LedgerObject] = {}
        self.events: list[LedgerEvent] = []
        self.transactions: dict[str, LedgerTransaction] = {}
        self.owned: dict[tuple[str, str], list[str]] = {}
        self.unreachable: set[str] = set()
        self.query_failures = 0
        self.query_calls = 0
        self.object_calls: list[str] = []
        self.closed = False

    # Builders

    def put_object(
        self,
        oid: str,
        struct: str,
        fields: dict[str, Any],
        previous_transaction: str | None = None,
    ) -> str:
        self.objects[oid] = LedgerObject(
            object_id=oid,
            type=f"{PACKAGE_ID}::{struct}",
            fields=fields,
            previous_transaction=previous_transaction,
        )
        return oid

    def emit(self, event_name: str, payload: dict[str, Any], tx: str, timestamp_ms: int | None = None) -> None:
        module = "invoice_financing"
        self.events.append(LedgerEvent(
            tx_digest=tx,
            event_seq=len(self.events),
            type=f"{PACKAGE_ID}::{module}::{event_name}",
            parsed_json=payload,
            sender=SUPPLIER,
            timestamp_ms=timestamp_ms,
        ))

    def add_invoice(
        self,
        n: int,
        *,
        status: int = 0,
        amount: int = 10_000,
        supplier: str = SUPPLIER,
        buyer: str = BUYER,
        investor: str | None = None,
        created_at: int = T0,
        due_date: int | None = None,
        financed_at: int | None = None,
        paid_at: int | None = None,
        discount_bps: int = 200,
        escrow_bps: int = 1_000,
        emit_created: bool = True,
        **extra: Any,
    ) -> str:
        oid = object_id(n)
        fields: dict[str, Any] = {
            "supplier": supplier,
            "buyer": buyer,
            "amount": str(amount),
            "due_date": str(due_date or created_at + 60 * DAY),
            "created_at": str(created_at),
            "status": status,
            "discount_bps": str(discount_bps),
            "escrow_bps": str(escrow_bps),
            "fee_bps": "100",
            "investor": {"vec": [investor] if investor else []},
            "companies_info": list(b'{"invoiceNumber": "INV-%d", "description": "Steel"}' % n),
        }
        if financed_at is not None:
            fields["financed_at"] = str(financed_at)
        if paid_at is not None:
            fields["paid_at"] = str(paid_at)
        fields.update(extra)
        self.put_object(oid, "invoice::Invoice", fields, previous_transaction=digest(n))
        if emit_created:
            self.emit("InvoiceCreated", {"invoice_id": oid}, tx=digest(1000 + n), timestamp_ms=created_at * 1000)
        return oid

    def add_transaction(self, tx: str, created: list[tuple[str, str]]) -> None:
        self.transactions[tx] = LedgerTransaction(
            digest=tx,
            created_objects=[
                CreatedObject(object_type=f"{PACKAGE_ID}::{struct}", object_id=oid)
                for struct, oid in created
            ],
        )

    # ChainReader

    async def get_object(self, object_id: str) -> LedgerObject:
        self.object_calls.append(object_id)
        if object_id in self.unreachable:
            raise LedgerTransportError(f"connection reset reading {object_id}")
        if object_id not in self.objects:
            raise ObjectNotFoundError(object_id)
        return self.objects[object_id]

    async def query_events(
        self,
        *,
        event_type: str | None = None,
        module: tuple[str, str] | None = None,
        cursor: dict[str, Any] | None = None,
        limit: int = 50,
        descending: bool = False,
    ) -> EventPage:
        self.query_calls += 1
        if self.query_failures:
            self.query_failures -= 1
            raise LedgerTransportError("full node unavailable")

        if event_type is not None:
            matching = [e for e in self.events if e.type == event_type]
        else:
            package, module_name = module
            matching = [e for e in self.events if e.type.startswith(f"{package}::{module_name}::")]
        if descending:
            matching = list(reversed(matching))

        start = cursor["index"] if cursor else 0
        window = matching[start:start + limit]
        has_next = start + limit < len(matching)
        return EventPage(
            events=window,
            next_cursor={"index": start + limit} if has_next else None,
            has_next_page=has_next,
        )

    async def get_transaction(self, digest: str) -> LedgerTransaction:
        return self.transactions.get(digest, LedgerTransaction(digest=digest))

    async def get_owned_objects(self, address: str, struct_type: str) -> list[str]:
        return self.owned.get((address, struct_type), [])

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at the fake package, independent of the environment."""
    return Settings(
        _env_file=None,
        package_id=PACKAGE_ID,
        treasury_id=TREASURY_ID,
        database_url=None,
        debug=False,
    )


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def cache(store: InMemoryKeyValueStore) -> DiscoveryCache:
    return DiscoveryCache(store)

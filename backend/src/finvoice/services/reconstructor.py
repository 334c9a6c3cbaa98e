"""
Lifecycle reconstruction for individual invoices.

Handles:
- Concurrent invoice fetches where one failure only drops that invoice
- Event history replay into a transition timeline
- Lazy resolution of escrow and funding objects, which are shared
  objects and cannot be found by owner

Companion resolution order: verified cache entry, then known funding
ids (funding only), then a scan of candidate transactions for a created
object of the right type. Whatever is found is written back to the cache.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import TypeVar

from finvoice.domain.lifecycle import build_transitions, can_transition
from finvoice.domain.models import Escrow, Funding, Invoice, InvoiceDetail, InvoiceEvent
from finvoice.errors import (
    CompanionNotFoundError,
    DecodeError,
    FinvoiceError,
    ObjectNotFoundError,
)
from finvoice.infrastructure.cache import DiscoveryCache

from .decoder import decode_escrow, decode_event, decode_funding, decode_invoice, struct_name
from .ledger import ChainReader, LedgerObject

logger = logging.getLogger(__name__)

CONTRACT_MODULE = "invoice_financing"
ESCROW_STRUCT = "BuyerEscrow"
FUNDING_STRUCT = "Funding"

T = TypeVar("T", Escrow, Funding)


class LifecycleReconstructor:
    """
    Reads invoices and their history from the ledger.

    Example:
        reconstructor = LifecycleReconstructor(reader, cache, package_id="0x...")
        detail = await reconstructor.reconstruct("0x...")
        for t in detail.transitions:
            print(t.from_status, "->", t.to_status)
    """

    def __init__(
        self,
        reader: ChainReader,
        cache: DiscoveryCache,
        package_id: str,
        history_page_size: int = 50,
        history_max_pages: int = 1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.reader = reader
        self.cache = cache
        self.package_id = package_id
        self.history_page_size = history_page_size
        self.history_max_pages = history_max_pages
        self.clock = clock

    # Invoices

    async def fetch_invoice(self, invoice_id: str) -> Invoice:
        """Read and decode one invoice; errors propagate."""
        return decode_invoice(await self.reader.get_object(invoice_id))

    async def _fetch_or_none(self, invoice_id: str) -> Invoice | None:
        try:
            return await self.fetch_invoice(invoice_id)
        except FinvoiceError as e:
            logger.warning(f"Dropping invoice {invoice_id}: {e}")
            return None

    async def fetch_invoices(self, invoice_ids: list[str]) -> list[Invoice]:
        """
        Fetch many invoices concurrently.

        Each fetch converts its own failure into "absent", so the result
        holds every invoice that could be read, in input order.
        """
        results = await asyncio.gather(*(self._fetch_or_none(i) for i in invoice_ids))
        invoices = [inv for inv in results if inv is not None]
        if len(invoices) < len(invoice_ids):
            logger.warning(f"Fetched {len(invoices)} of {len(invoice_ids)} invoices")
        return invoices

    # History

    async def invoice_history(self, invoice_id: str) -> list[InvoiceEvent]:
        """Contract-module events mentioning the invoice, oldest first."""
        events: list[InvoiceEvent] = []
        cursor = None
        for _ in range(self.history_max_pages):
            page = await self.reader.query_events(
                module=(self.package_id, CONTRACT_MODULE),
                cursor=cursor,
                limit=self.history_page_size,
                descending=False,
            )
            events.extend(
                decoded for decoded in map(decode_event, page.events)
                if decoded.invoice_id == invoice_id
            )
            if not page.has_next_page or page.next_cursor is None:
                break
            cursor = page.next_cursor
        return events

    async def reconstruct(
        self,
        invoice_id: str,
        resolve_companions: bool = False,
    ) -> InvoiceDetail:
        """
        Current state plus replayed history for one invoice.

        The object's own status is authoritative; the transition timeline
        is inferred from events and may lag behind it.
        """
        invoice = await self.fetch_invoice(invoice_id)
        history = await self.invoice_history(invoice_id)
        transitions = build_transitions(history)

        for t in transitions:
            if not can_transition(t.from_status, t.to_status):
                logger.warning(
                    f"Invoice {invoice_id}: unexpected transition "
                    f"{t.from_status.label} -> {t.to_status.label} ({t.event_type})"
                )

        if resolve_companions:
            invoice = await self._attach_companions(invoice, history)

        return InvoiceDetail(
            invoice=invoice,
            history=history,
            transitions=transitions,
            overdue=invoice.is_overdue(int(self.clock())),
        )

    async def _attach_companions(self, invoice: Invoice, history: list[InvoiceEvent]) -> Invoice:
        escrow_id = funding_id = None
        try:
            escrow_id = (await self.resolve_escrow(invoice.id, invoice)).id
        except CompanionNotFoundError as e:
            logger.info(str(e))
        if invoice.has_been_financed:
            try:
                funding_id = (await self.resolve_funding(invoice.id, invoice, history)).id
            except CompanionNotFoundError as e:
                logger.info(str(e))
        return replace(invoice, escrow_id=escrow_id, funding_id=funding_id)

    # Companions

    async def _read_companion(
        self,
        object_id: str,
        decode: Callable[[LedgerObject], T],
    ) -> T | None:
        try:
            return decode(await self.reader.get_object(object_id))
        except (ObjectNotFoundError, DecodeError) as e:
            logger.debug(f"Companion candidate {object_id} unusable: {e}")
            return None

    async def _verified_cache_hit(
        self,
        object_id: str | None,
        invoice_id: str,
        decode: Callable[[LedgerObject], T],
        kind: str,
    ) -> T | None:
        if object_id is None:
            return None
        found = await self._read_companion(object_id, decode)
        if found is not None and found.invoice_id == invoice_id:
            return found
        logger.warning(f"Stale cached {kind} id {object_id} for invoice {invoice_id}; rescanning")
        return None

    async def _scan_transactions(
        self,
        digests: list[str],
        invoice_id: str,
        struct: str,
        decode: Callable[[LedgerObject], T],
    ) -> T | None:
        for digest in dict.fromkeys(d for d in digests if d):
            tx = await self.reader.get_transaction(digest)
            for created in tx.created_objects:
                if struct_name(created.object_type) != struct:
                    continue
                found = await self._read_companion(created.object_id, decode)
                if found is not None and found.invoice_id == invoice_id:
                    return found
        return None

    async def resolve_escrow(self, invoice_id: str, invoice: Invoice | None = None) -> Escrow:
        """
        Locate the buyer escrow of an invoice.

        Raises:
            CompanionNotFoundError: No escrow exists (yet) for the invoice
        """
        escrow = await self._verified_cache_hit(
            await self.cache.escrow_id_for(invoice_id), invoice_id, decode_escrow, "escrow"
        )
        if escrow is not None:
            return escrow

        invoice = invoice or await self.fetch_invoice(invoice_id)
        digests = [await self.cache.origin_tx_for(invoice_id), invoice.previous_transaction]
        escrow = await self._scan_transactions(digests, invoice_id, ESCROW_STRUCT, decode_escrow)
        if escrow is None:
            raise CompanionNotFoundError("escrow", invoice_id)

        await self.cache.set_escrow_id(invoice_id, escrow.id)
        logger.info(f"Resolved escrow {escrow.id} for invoice {invoice_id}")
        return escrow

    async def resolve_funding(
        self,
        invoice_id: str,
        invoice: Invoice | None = None,
        history: list[InvoiceEvent] | None = None,
    ) -> Funding:
        """
        Locate the investor funding record of an invoice.

        Raises:
            CompanionNotFoundError: The invoice has not been funded (yet)
        """
        funding = await self._verified_cache_hit(
            await self.cache.funding_id_for(invoice_id), invoice_id, decode_funding, "funding"
        )
        if funding is not None:
            return funding

        funding = await self._scan_known_funding(invoice_id)
        if funding is None:
            invoice = invoice or await self.fetch_invoice(invoice_id)
            if history is None:
                history = await self.invoice_history(invoice_id)
            digests = [e.tx_digest for e in history if "Financed" in e.event_type]
            digests.append(invoice.previous_transaction)
            funding = await self._scan_transactions(digests, invoice_id, FUNDING_STRUCT, decode_funding)

        if funding is None:
            raise CompanionNotFoundError("funding", invoice_id)

        await self.cache.set_funding_id(invoice_id, funding.id)
        logger.info(f"Resolved funding {funding.id} for invoice {invoice_id}")
        return funding

    async def _scan_known_funding(self, invoice_id: str) -> Funding | None:
        known = await self.cache.known_funding_ids()
        if not known:
            return None
        missing: list[str] = []

        async def read(funding_id: str) -> Funding | None:
            try:
                return decode_funding(await self.reader.get_object(funding_id))
            except ObjectNotFoundError:
                missing.append(funding_id)
            except DecodeError as e:
                logger.debug(f"Known funding {funding_id} unusable: {e}")
            return None

        candidates = await asyncio.gather(*(read(fid) for fid in known))
        if missing:
            await self.cache.remove_funding_ids(missing)
            logger.info(f"Pruned {len(missing)} funding ids missing from the ledger")
        return next((f for f in candidates if f is not None and f.invoice_id == invoice_id), None)

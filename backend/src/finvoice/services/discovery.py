"""
Invoice discovery from creation events.

There is no canonical index of invoices on the ledger, so the invoice
universe is whatever the creation-event stream says it is, backed by
the discovery cache when the stream cannot answer.

Handles:
- Newest-first creation-event paging with a bounded page budget
- Bounded retry of page queries on transport errors
- Cache fallback on failure, cache merge on truncated results
- Writing freshly discovered ids and origin digests back to the cache
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from finvoice.errors import LedgerTransportError
from finvoice.infrastructure.cache import DiscoveryCache

from .ledger import ChainReader, LedgerEvent

logger = logging.getLogger(__name__)

DiscoverySource = Literal["ledger", "ledger+cache", "cache"]


@dataclass(frozen=True)
class DiscoveryResult:
    """
    Invoice ids known after one discovery pass.

    `ids` is newest-first for ledger results. `origin_txs` maps each id
    seen in an event to the digest of the transaction that created it.
    """
    ids: list[str]
    source: DiscoverySource
    origin_txs: dict[str, str] = field(default_factory=dict)
    truncated: bool = False


class InvoiceDiscovery:
    """
    Builds the set of known invoice ids.

    A successful query is authoritative, including a successful empty
    one. The cache only answers when the query fails, and only fills in
    when the page budget ran out before the stream did.
    """

    def __init__(
        self,
        reader: ChainReader,
        cache: DiscoveryCache,
        event_type: str,
        page_size: int = 100,
        max_pages: int = 1,
        retry_attempts: int = 3,
        retry_wait: wait_base | None = None,
    ) -> None:
        self.reader = reader
        self.cache = cache
        self.event_type = event_type
        self.page_size = page_size
        self.max_pages = max_pages
        self.retry_attempts = retry_attempts
        self._retry_wait = retry_wait or wait_exponential_jitter(initial=0.5, max=5)

    async def _query_page(self, cursor: dict[str, Any] | None):
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(LedgerTransportError),
            wait=self._retry_wait,
            stop=stop_after_attempt(self.retry_attempts),
            reraise=True,
        ):
            with attempt:
                return await self.reader.query_events(
                    event_type=self.event_type,
                    cursor=cursor,
                    limit=self.page_size,
                    descending=True,
                )

    async def _creation_events(self) -> tuple[list[LedgerEvent], bool]:
        """Accumulate up to `max_pages` pages; returns (events, truncated)."""
        events: list[LedgerEvent] = []
        cursor = None
        for _ in range(self.max_pages):
            page = await self._query_page(cursor)
            events.extend(page.events)
            if not page.has_next_page or page.next_cursor is None:
                return events, False
            cursor = page.next_cursor
        return events, True

    async def discover(self) -> DiscoveryResult:
        try:
            events, truncated = await self._creation_events()
        except LedgerTransportError as e:
            cached = await self.cache.known_invoice_ids()
            logger.warning(
                f"Creation event query failed ({e}); "
                f"falling back to {len(cached)} cached invoice ids"
            )
            return DiscoveryResult(ids=cached, source="cache")

        origin_txs: dict[str, str] = {}
        for event in events:
            invoice_id = event.parsed_json.get("invoice_id")
            if invoice_id and invoice_id not in origin_txs:
                origin_txs[str(invoice_id)] = event.tx_digest
        ids = list(origin_txs)

        await self.cache.add_invoice_ids(ids)
        await self.cache.set_origin_txs(origin_txs)

        if not truncated:
            logger.info(f"Discovered {len(ids)} invoices from creation events")
            return DiscoveryResult(ids=ids, source="ledger", origin_txs=origin_txs)

        seen = set(ids)
        older = [i for i in await self.cache.known_invoice_ids() if i not in seen]
        logger.info(
            f"Discovered {len(ids)} invoices from {self.max_pages} event page(s), "
            f"{len(older)} more from cache"
        )
        return DiscoveryResult(
            ids=ids + older,
            source="ledger+cache",
            origin_txs=origin_txs,
            truncated=True,
        )

    async def discover_invoice_ids(self) -> set[str]:
        return set((await self.discover()).ids)

"""
Best-effort discovery cache.

A side index of ids the ledger cannot answer cheaply: known invoice ids,
known funding ids, and per-invoice escrow id, funding id and originating
transaction digest.

Design Decisions:
- Abstract key/value interface, injected; never a module global
- Never authoritative: readers verify against the ledger and overwrite
- A broken store degrades to "no cache", it never fails a request
- Malformed entries are dropped on read
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

logger = logging.getLogger(__name__)

INVOICE_IDS_KEY = "invoice_ids"
FUNDING_IDS_KEY = "funding_ids"
ESCROW_MAP_KEY = "escrow_ids"
FUNDING_MAP_KEY = "funding_map"
ORIGIN_TX_MAP_KEY = "origin_txs"

# Object ids and digests are far longer than this; anything shorter is junk
MIN_ID_LENGTH = 20

# Every funding-cache miss reads all known funding ids; only the newest are kept
MAX_FUNDING_IDS = 200


class KeyValueStore(ABC):
    """Abstract interface for persisted JSON values."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None if absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value, replacing any previous one."""
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store, used when no database is configured."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value


def _is_valid_id(value: Any) -> bool:
    return isinstance(value, str) and len(value) > MIN_ID_LENGTH


class DiscoveryCache:
    """
    Typed view over a KeyValueStore.

    Every read filters out malformed entries and every write is
    read-merge-write per key (last writer wins).
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def _read(self, key: str) -> Any | None:
        try:
            return await self.store.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    async def _write(self, key: str, value: Any) -> None:
        try:
            await self.store.set(key, value)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    async def _read_list(self, key: str) -> list[str]:
        raw = await self._read(key)
        if not isinstance(raw, list):
            return []
        return [v for v in raw if _is_valid_id(v)]

    async def _read_map(self, key: str) -> dict[str, str]:
        raw = await self._read(key)
        if not isinstance(raw, dict):
            return {}
        return {k: v for k, v in raw.items() if _is_valid_id(k) and _is_valid_id(v)}

    async def _merge_list(self, key: str, ids: Iterable[str], limit: int | None = None) -> list[str]:
        current = await self._read_list(key)
        seen = set(current)
        added = [i for i in dict.fromkeys(ids) if _is_valid_id(i) and i not in seen]
        if added:
            current.extend(added)
            if limit is not None:
                current = current[-limit:]
            await self._write(key, current)
        return current

    async def _put(self, key: str, entries: dict[str, str]) -> None:
        entries = {k: v for k, v in entries.items() if _is_valid_id(k) and _is_valid_id(v)}
        if not entries:
            return
        current = await self._read_map(key)
        if all(current.get(k) == v for k, v in entries.items()):
            return
        current.update(entries)
        await self._write(key, current)

    # Invoice ids

    async def known_invoice_ids(self) -> list[str]:
        return await self._read_list(INVOICE_IDS_KEY)

    async def add_invoice_ids(self, ids: Iterable[str]) -> list[str]:
        """Union `ids` into the known set; returns the merged list."""
        return await self._merge_list(INVOICE_IDS_KEY, ids)

    # Funding ids

    async def known_funding_ids(self) -> list[str]:
        return (await self._read_list(FUNDING_IDS_KEY))[-MAX_FUNDING_IDS:]

    async def add_funding_ids(self, ids: Iterable[str]) -> list[str]:
        return await self._merge_list(FUNDING_IDS_KEY, ids, limit=MAX_FUNDING_IDS)

    async def remove_funding_ids(self, ids: Iterable[str]) -> None:
        """Forget funding ids whose objects no longer exist."""
        drop = set(ids)
        current = await self._read_list(FUNDING_IDS_KEY)
        kept = [i for i in current if i not in drop]
        if len(kept) != len(current):
            await self._write(FUNDING_IDS_KEY, kept)

    # Per-invoice companions

    async def escrow_id_for(self, invoice_id: str) -> str | None:
        return (await self._read_map(ESCROW_MAP_KEY)).get(invoice_id)

    async def set_escrow_id(self, invoice_id: str, escrow_id: str) -> None:
        await self._put(ESCROW_MAP_KEY, {invoice_id: escrow_id})

    async def funding_id_for(self, invoice_id: str) -> str | None:
        return (await self._read_map(FUNDING_MAP_KEY)).get(invoice_id)

    async def set_funding_id(self, invoice_id: str, funding_id: str) -> None:
        await self._put(FUNDING_MAP_KEY, {invoice_id: funding_id})
        await self.add_funding_ids([funding_id])

    async def origin_tx_for(self, invoice_id: str) -> str | None:
        return (await self._read_map(ORIGIN_TX_MAP_KEY)).get(invoice_id)

    async def set_origin_txs(self, digests: dict[str, str]) -> None:
        await self._put(ORIGIN_TX_MAP_KEY, digests)

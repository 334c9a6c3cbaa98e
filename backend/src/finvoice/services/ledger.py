"""
Read-only Sui JSON-RPC client.

Handles:
- Point reads of objects by id
- Event queries by type or by module, paginated and ordered
- Transaction reads (created objects)
- Owned-object reads filtered by struct type

Records come back untyped apart from their envelope; turning them into
domain entities is the decoder's job.
"""

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from finvoice.errors import LedgerTransportError, ObjectNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerObject:
    """An object snapshot with its Move fields."""
    object_id: str
    type: str | None
    fields: dict[str, Any]
    previous_transaction: str | None = None


@dataclass(frozen=True)
class LedgerEvent:
    """A Move event as emitted by a transaction."""
    tx_digest: str
    event_seq: int
    type: str
    parsed_json: dict[str, Any]
    sender: str | None = None
    timestamp_ms: int | None = None


@dataclass(frozen=True)
class EventPage:
    events: list[LedgerEvent]
    next_cursor: dict[str, Any] | None = None
    has_next_page: bool = False


@dataclass(frozen=True)
class CreatedObject:
    object_type: str
    object_id: str


@dataclass(frozen=True)
class LedgerTransaction:
    digest: str
    created_objects: list[CreatedObject] = field(default_factory=list)


class ChainReader(ABC):
    """
    Abstract read-only ledger interface.

    The engine depends on this interface only, so tests can substitute
    an in-process ledger.
    """

    @abstractmethod
    async def get_object(self, object_id: str) -> LedgerObject:
        """Fetch one object; raises ObjectNotFoundError if it does not exist."""
        pass

    @abstractmethod
    async def query_events(
        self,
        *,
        event_type: str | None = None,
        module: tuple[str, str] | None = None,
        cursor: dict[str, Any] | None = None,
        limit: int = 50,
        descending: bool = False,
    ) -> EventPage:
        """Query one page of events by full event type or by (package, module)."""
        pass

    @abstractmethod
    async def get_transaction(self, digest: str) -> LedgerTransaction:
        pass

    @abstractmethod
    async def get_owned_objects(self, address: str, struct_type: str) -> list[str]:
        """Ids of objects of `struct_type` owned by `address`."""
        pass

    async def aclose(self) -> None:
        pass


def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class LedgerClient(ChainReader):
    """
    Async JSON-RPC client for a Sui full node.

    Every failure to get a well-formed answer (connection error, timeout,
    HTTP error status, JSON-RPC error, malformed body) surfaces as
    LedgerTransportError. A missing object surfaces as ObjectNotFoundError.

    Example:
        client = LedgerClient("https://fullnode.testnet.sui.io:443")
        obj = await client.get_object("0x...")
        await client.aclose()
    """

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            url: Full node JSON-RPC endpoint
            timeout: Per-request timeout in seconds
            http_client: Pre-built client (for testing with a mock transport)
        """
        self.url = url
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            raise LedgerTransportError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise LedgerTransportError(f"{method} returned a non-JSON body") from e

        if not isinstance(body, dict):
            raise LedgerTransportError(f"{method} returned a malformed response")
        if "error" in body:
            error = body["error"] or {}
            raise LedgerTransportError(
                f"{method} error {error.get('code')}: {error.get('message', 'unknown')}"
            )
        if "result" not in body:
            raise LedgerTransportError(f"{method} response has no result")
        return body["result"]

    async def get_object(self, object_id: str) -> LedgerObject:
        result = await self._call(
            "sui_getObject",
            [object_id, {"showContent": True, "showType": True, "showPreviousTransaction": True}],
        )
        if not isinstance(result, dict):
            raise LedgerTransportError("sui_getObject returned a malformed response")

        if "error" in result:
            error = result["error"]
            code = error.get("code") if isinstance(error, dict) else error
            logger.debug(f"Object {object_id} unavailable: {code}")
            raise ObjectNotFoundError(object_id)

        data = result.get("data") or {}
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(data, dict) or (content and not isinstance(content, dict)):
            raise LedgerTransportError(f"sui_getObject returned a malformed object for {object_id}")
        if not content or content.get("dataType") != "moveObject":
            raise ObjectNotFoundError(object_id, f"Object {object_id} has no readable content")

        fields = content.get("fields") or {}
        if not isinstance(fields, dict):
            raise LedgerTransportError(f"sui_getObject returned malformed fields for {object_id}")

        return LedgerObject(
            object_id=data.get("objectId", object_id),
            type=content.get("type") or data.get("type"),
            fields=fields,
            previous_transaction=data.get("previousTransaction"),
        )

    async def query_events(
        self,
        *,
        event_type: str | None = None,
        module: tuple[str, str] | None = None,
        cursor: dict[str, Any] | None = None,
        limit: int = 50,
        descending: bool = False,
    ) -> EventPage:
        if (event_type is None) == (module is None):
            raise ValueError("Pass exactly one of event_type or module")

        if event_type is not None:
            query: dict[str, Any] = {"MoveEventType": event_type}
        else:
            package, module_name = module
            query = {"MoveModule": {"package": package, "module": module_name}}

        result = await self._call("suix_queryEvents", [query, cursor, limit, descending])
        try:
            events = [self._parse_event(raw) for raw in result.get("data", [])]
        except (AttributeError, KeyError, TypeError) as e:
            raise LedgerTransportError("suix_queryEvents returned a malformed page") from e

        return EventPage(
            events=events,
            next_cursor=result.get("nextCursor"),
            has_next_page=bool(result.get("hasNextPage")),
        )

    @staticmethod
    def _parse_event(raw: dict[str, Any]) -> LedgerEvent:
        event_id = raw["id"]
        return LedgerEvent(
            tx_digest=event_id["txDigest"],
            event_seq=_to_int(event_id.get("eventSeq")) or 0,
            type=raw["type"],
            parsed_json=raw.get("parsedJson") or {},
            sender=raw.get("sender"),
            timestamp_ms=_to_int(raw.get("timestampMs")),
        )

    async def get_transaction(self, digest: str) -> LedgerTransaction:
        result = await self._call(
            "sui_getTransactionBlock",
            [digest, {"showObjectChanges": True}],
        )
        if not isinstance(result, dict):
            raise LedgerTransportError("sui_getTransactionBlock returned a malformed response")

        created = [
            CreatedObject(object_type=change["objectType"], object_id=change["objectId"])
            for change in result.get("objectChanges") or []
            if change.get("type") == "created" and "objectType" in change and "objectId" in change
        ]
        return LedgerTransaction(digest=result.get("digest", digest), created_objects=created)

    async def get_owned_objects(self, address: str, struct_type: str) -> list[str]:
        result = await self._call(
            "suix_getOwnedObjects",
            [address, {"filter": {"StructType": struct_type}, "options": {"showType": True}}, None, 50],
        )
        return [
            item["data"]["objectId"]
            for item in result.get("data", [])
            if item.get("data") and "objectId" in item["data"]
        ]

    async def aclose(self) -> None:
        await self._client.aclose()

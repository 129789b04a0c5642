"""
Batched and paginated reads of on-chain collections.

Reads are grouped into Multicall3 batches so listing N items costs roughly
N / batch_size round trips instead of N. A batch is closed when it reaches
``batch_size`` calls or when its encoded call data would exceed
``max_calldata_bytes``. Batches run sequentially; reads inside one batch run
together.

Enumerable collections:

    TRUSTED_SERVERS   userServerIdsLength(owner) / userServerIdsAt(owner, i)
    PERMISSIONS       userPermissionIdsLength(owner) / userPermissionIdsAt(owner, i)
    GRANTEES          granteesCount() / grantees(i + 1)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from eth_abi import encode as abi_encode
from eth_utils.abi import collapse_if_tuple
from web3 import AsyncWeb3

from ..adapters.bases import CallResult, ContractCall, LedgerClient
from ..adapters.evm.abis import get_grantees_abi, get_permissions_abi, get_servers_abi
from ..config import DATA_PORTABILITY_GRANTEES, DATA_PORTABILITY_PERMISSIONS, DATA_PORTABILITY_SERVERS
from ..engine.exceptions import VanaError, reraise_or_wrap
from ..schemas.permissions import BatchResult, GranteeInfo, PaginatedResult, PermissionInfo, ServerInfo
from ..utils import logger


DEFAULT_BATCH_SIZE = 100
DEFAULT_MAX_CALLDATA_BYTES = 100_000


class CollectionKind(str, Enum):
    TRUSTED_SERVERS = "trusted_servers"
    PERMISSIONS = "permissions"
    GRANTEES = "grantees"


@dataclass(frozen=True)
class _Collection:
    contract_name: str
    abi: Callable[[], List[Dict[str, Any]]]
    count_fn: str
    item_fn: str
    per_owner: bool


_COLLECTIONS: Dict[CollectionKind, _Collection] = {
    CollectionKind.TRUSTED_SERVERS: _Collection(
        DATA_PORTABILITY_SERVERS, get_servers_abi, "userServerIdsLength", "userServerIdsAt", True
    ),
    CollectionKind.PERMISSIONS: _Collection(
        DATA_PORTABILITY_PERMISSIONS, get_permissions_abi, "userPermissionIdsLength", "userPermissionIdsAt", True
    ),
    CollectionKind.GRANTEES: _Collection(
        DATA_PORTABILITY_GRANTEES, get_grantees_abi, "granteesCount", "grantees", False
    ),
}


# ---------------------------------------------------------------------------
# Record parsing
# ---------------------------------------------------------------------------

def _fields(value: Any, names: Sequence[str]) -> Tuple[Any, ...]:
    """Accept either a positional tuple or a mapping keyed by ABI component names."""
    if isinstance(value, dict):
        return tuple(value[name] for name in names)
    return tuple(value)


def parse_server_info(value: Any) -> ServerInfo:
    server_id, owner, server_address, public_key, url = _fields(
        value, ("id", "owner", "serverAddress", "publicKey", "url")
    )
    return ServerInfo(
        id=int(server_id),
        owner=owner,
        server_address=server_address,
        public_key=public_key,
        url=url,
    )


def parse_grantee_info(grantee_id: int, value: Any) -> GranteeInfo:
    owner, address, public_key, permission_ids = _fields(
        value, ("owner", "granteeAddress", "publicKey", "permissionIds")
    )
    return GranteeInfo(
        id=int(grantee_id),
        owner=owner,
        address=address,
        public_key=public_key,
        permission_ids=[int(p) for p in permission_ids],
    )


def parse_permission_info(value: Any) -> PermissionInfo:
    permission_id, grantor, nonce, grantee_id, grant, start_block, end_block, file_ids = _fields(
        value, ("id", "grantor", "nonce", "granteeId", "grant", "startBlock", "endBlock", "fileIds")
    )
    return PermissionInfo(
        id=int(permission_id),
        grantor=grantor,
        nonce=int(nonce),
        grantee_id=int(grantee_id),
        grant=grant,
        start_block=int(start_block),
        end_block=int(end_block),
        file_ids=[int(f) for f in file_ids],
    )


class BatchReader:
    """
    Gas-aware multicall batching and collection pagination.

    Args:
        ledger: Chain access; its ``multicall`` executes each batch.
        address_of: Resolves a contract name to its address.
        batch_size: Maximum item reads per batch.
        max_calldata_bytes: Maximum encoded call data per batch.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        address_of: Callable[[str], str],
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_calldata_bytes: int = DEFAULT_MAX_CALLDATA_BYTES,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._ledger = ledger
        self._address_of = address_of
        self.batch_size = batch_size
        self.max_calldata_bytes = max_calldata_bytes

    # -------------------------------------------------------------------------
    # Batch planning and execution
    # -------------------------------------------------------------------------

    @staticmethod
    def calldata_size(call: ContractCall) -> int:
        """Selector plus ABI-encoded arguments, in bytes."""
        fn_abi = next(
            e for e in call.abi if e.get("type") == "function" and e.get("name") == call.function_name
        )
        types = [collapse_if_tuple(i) for i in fn_abi["inputs"]]
        return 4 + len(abi_encode(types, list(call.args)))

    def plan_batches(self, calls: Sequence[ContractCall], max_calls: Optional[int] = None) -> List[List[ContractCall]]:
        limit = max_calls or self.batch_size
        batches: List[List[ContractCall]] = []
        current: List[ContractCall] = []
        current_bytes = 0
        for call in calls:
            size = self.calldata_size(call)
            if current and (len(current) >= limit or current_bytes + size > self.max_calldata_bytes):
                batches.append(current)
                current, current_bytes = [], 0
            current.append(call)
            current_bytes += size
        if current:
            batches.append(current)
        return batches

    async def _run(self, batches: List[List[ContractCall]]) -> List[CallResult]:
        results: List[CallResult] = []
        for index, batch in enumerate(batches):
            logger.debug(f"Multicall batch {index + 1}/{len(batches)}: {len(batch)} calls")
            try:
                results.extend(await self._ledger.multicall(batch, allow_failure=True))
            except VanaError:
                raise
            except Exception as e:
                raise reraise_or_wrap(e, f"Multicall batch {index + 1} failed") from e
        return results

    async def execute(self, calls: Sequence[ContractCall]) -> List[CallResult]:
        """Run ``calls`` in sequential batches; results keep the input order."""
        return await self._run(self.plan_batches(calls))

    # -------------------------------------------------------------------------
    # Pagination
    # -------------------------------------------------------------------------

    def _count_call(self, collection: _Collection, owner: Optional[str]) -> ContractCall:
        args = [AsyncWeb3.to_checksum_address(owner)] if collection.per_owner else []
        return ContractCall(self._address_of(collection.contract_name), collection.abi(), collection.count_fn, args)

    def _item_call(self, collection: _Collection, owner: Optional[str], index: int) -> ContractCall:
        if collection.per_owner:
            args = [AsyncWeb3.to_checksum_address(owner), index]
        else:
            args = [index + 1]
        return ContractCall(self._address_of(collection.contract_name), collection.abi(), collection.item_fn, args)

    @staticmethod
    def _item_value(kind: CollectionKind, index: int, value: Any) -> Any:
        if kind is CollectionKind.GRANTEES:
            return parse_grantee_info(index + 1, value)
        return int(value)

    async def read_paginated(
        self,
        kind: CollectionKind,
        owner: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> PaginatedResult:
        """
        Read ``limit`` items of a collection starting at ``offset``.

        The collection size rides along in the first batch, so no count-only
        round trip is made. With ``limit=None`` the whole remainder is read.

        Iteration stops on a batch that returns fewer readable items than
        requested or once the cumulative offset reaches the reported total.
        """
        if offset < 0:
            raise ValueError("offset must be non-negative")
        if limit is not None and limit < 1:
            raise ValueError("limit must be positive")
        kind = CollectionKind(kind)
        collection = _COLLECTIONS[kind]
        if collection.per_owner and owner is None:
            raise ValueError(f"{kind.value} requires an owner address")

        items: List[Any] = []
        failed: List[int] = []
        total: Optional[int] = None
        cursor = offset
        end = None if limit is None else offset + limit

        while end is None or cursor < end:
            window = self.batch_size if end is None else min(self.batch_size, end - cursor)
            if total is not None:
                window = min(window, total - cursor)
                if window <= 0:
                    break

            calls = [self._item_call(collection, owner, i) for i in range(cursor, cursor + window)]
            if total is None:
                calls.insert(0, self._count_call(collection, owner))
            results = await self._run(self.plan_batches(calls, max_calls=len(calls)))

            if total is None:
                count_result, results = results[0], results[1:]
                if not count_result.success:
                    raise reraise_or_wrap(count_result.error, f"Failed to read {kind.value} count")
                total = int(count_result.value)

            readable = 0
            for index, result in zip(range(cursor, cursor + window), results):
                if index >= total:
                    break
                readable += 1
                if result.success:
                    try:
                        items.append(self._item_value(kind, index, result.value))
                        continue
                    except (TypeError, ValueError) as e:
                        logger.debug(f"Unreadable {kind.value} item {index}: {e}")
                failed.append(index)

            cursor += window
            if readable < window:
                if cursor - window + readable < total:
                    logger.warning(
                        f"{kind.value}: batch at offset {cursor - window} returned {readable} of {window} "
                        f"items with {total} reported; stopping"
                    )
                break
            if cursor >= total:
                break

        if total is None:
            total = 0
        consumed = min(cursor, total) - offset
        return PaginatedResult(
            items=items,
            total_count=total,
            offset=offset,
            limit=limit if limit is not None else max(consumed, 0),
            has_more=min(cursor, total) < total,
            failed=failed,
        )

    async def fetch_all(self, kind: CollectionKind, owner: Optional[str] = None) -> PaginatedResult:
        """Read an entire collection."""
        return await self.read_paginated(kind, owner, offset=0, limit=None)

    # -------------------------------------------------------------------------
    # Detail fan-out
    # -------------------------------------------------------------------------

    async def _detail_batch(
        self,
        ids: Sequence[int],
        contract_name: str,
        abi: List[Dict[str, Any]],
        fn: str,
        parse: Callable[[int, Any], Any],
    ) -> BatchResult:
        address = self._address_of(contract_name)
        calls = [ContractCall(address, abi, fn, [int(i)]) for i in ids]
        results = await self.execute(calls)
        outcome = BatchResult(items=[], failed=[])
        for record_id, result in zip(ids, results):
            if result.success:
                try:
                    record = parse(int(record_id), result.value)
                except (TypeError, ValueError) as e:
                    logger.debug(f"Unreadable {fn}({record_id}): {e}")
                    record = None
                if record is not None:
                    outcome.items.append(record)
                    continue
            outcome.failed.append(int(record_id))
        return outcome

    async def get_server_info_batch(self, server_ids: Sequence[int]) -> BatchResult:
        """Server records by id. Unknown ids (zeroed records) count as failed."""
        def parse(_: int, value: Any) -> Optional[ServerInfo]:
            info = parse_server_info(value)
            return info if info.id != 0 else None

        return await self._detail_batch(
            server_ids, DATA_PORTABILITY_SERVERS, get_servers_abi(), "servers", parse
        )

    async def get_permission_info_batch(self, permission_ids: Sequence[int]) -> BatchResult:
        def parse(_: int, value: Any) -> Optional[PermissionInfo]:
            info = parse_permission_info(value)
            return info if info.id != 0 else None

        return await self._detail_batch(
            permission_ids, DATA_PORTABILITY_PERMISSIONS, get_permissions_abi(), "permissions", parse
        )

    async def get_grantee_info_batch(self, grantee_ids: Sequence[int]) -> BatchResult:
        return await self._detail_batch(
            grantee_ids, DATA_PORTABILITY_GRANTEES, get_grantees_abi(), "grantees", parse_grantee_info
        )

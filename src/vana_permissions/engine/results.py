"""
Transaction handles and expected-event resolution.

Every signed operation maps to the contract and function it calls and the
event it must emit. ``TransactionResult`` wraps a submitted hash and resolves
that event lazily; resolution is memoized and never resubmits anything.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..adapters.bases import LedgerClient
from ..adapters.evm.abis import get_permissions_abi, get_servers_abi
from ..config import DATA_PORTABILITY_PERMISSIONS, DATA_PORTABILITY_SERVERS
from ..schemas.typed_data import OperationKind
from ..utils import logger
from .exceptions import BlockchainError, VanaError, reraise_or_wrap


@dataclass(frozen=True)
class OperationSpec:
    """Where an operation lands on-chain and what it emits."""
    contract_name: str
    function_name: str
    relayer_operation: str
    event_name: str
    abi: Callable[[], List[Dict[str, Any]]]


OPERATIONS: Dict[OperationKind, OperationSpec] = {
    OperationKind.GRANT: OperationSpec(
        DATA_PORTABILITY_PERMISSIONS, "addPermission", "submitAddPermission",
        "PermissionAdded", get_permissions_abi,
    ),
    OperationKind.REVOKE: OperationSpec(
        DATA_PORTABILITY_PERMISSIONS, "revokePermissionWithSignature", "submitPermissionRevoke",
        "PermissionRevoked", get_permissions_abi,
    ),
    OperationKind.TRUST_SERVER: OperationSpec(
        DATA_PORTABILITY_SERVERS, "trustServerWithSignature", "submitTrustServer",
        "ServerTrusted", get_servers_abi,
    ),
    OperationKind.UNTRUST_SERVER: OperationSpec(
        DATA_PORTABILITY_SERVERS, "untrustServerWithSignature", "submitUntrustServer",
        "ServerUntrusted", get_servers_abi,
    ),
    OperationKind.ADD_AND_TRUST_SERVER: OperationSpec(
        DATA_PORTABILITY_SERVERS, "addAndTrustServerWithSignature", "submitAddAndTrustServer",
        "ServerTrusted", get_servers_abi,
    ),
    OperationKind.SERVER_FILES_AND_PERMISSION: OperationSpec(
        DATA_PORTABILITY_PERMISSIONS, "addServerFilesAndPermissions", "submitAddServerFilesAndPermissions",
        "PermissionAdded", get_permissions_abi,
    ),
}


def _hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


class TransactionResult:
    """
    Handle for a submitted transaction.

    Attributes:
        hash: Transaction hash, assigned once at construction.
        sender: Account that signed the operation.
        contract_name: Target contract.
        function_name: Target function.
        expected_event: Event the operation must emit.

    ``str(result)`` is the hash.
    """

    def __init__(
        self,
        hash: str,
        sender: str,
        spec: OperationSpec,
        ledger: LedgerClient,
        receipt: Optional[Dict[str, Any]] = None,
        receipt_timeout: float = 120.0,
    ):
        self._hash = hash
        self.sender = sender
        self.contract_name = spec.contract_name
        self.function_name = spec.function_name
        self.expected_event = spec.event_name
        self._abi = spec.abi
        self._ledger = ledger
        self._receipt = receipt
        self._event: Optional[Dict[str, Any]] = None
        self._receipt_timeout = receipt_timeout
        self._lock = asyncio.Lock()

    @property
    def hash(self) -> str:
        return self._hash

    def __str__(self) -> str:
        return self._hash

    def __repr__(self) -> str:
        return f"TransactionResult(hash={self._hash!r}, function={self.function_name!r})"

    async def wait_for_receipt(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """Wait for the transaction to be mined; memoized."""
        async with self._lock:
            if self._receipt is None:
                self._receipt = await self._ledger.wait_for_receipt(
                    self._hash, timeout if timeout is not None else self._receipt_timeout
                )
            return self._receipt

    async def wait_for_events(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Wait for mining and return the expected event's arguments plus
        ``transactionHash``, ``blockNumber`` and ``gasUsed``; memoized.

        Raises:
            BlockchainError: The receipt has no matching event.
        """
        if self._event is None:
            self._event = await resolve_expected_event(self, self.expected_event, timeout)
        return self._event

    def decode(self, receipt: Dict[str, Any], event_name: str) -> List[Dict[str, Any]]:
        return self._ledger.decode_events(receipt, self._abi(), event_name)


async def resolve_expected_event(
    result: TransactionResult,
    event_name: str,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Extract ``event_name`` from a transaction's receipt.

    A successful transaction without the event means an ABI mismatch or a
    contract behaviour change; that is reported as ``BlockchainError``.
    If the event appears more than once the first occurrence is used.
    """
    try:
        receipt = await result.wait_for_receipt(timeout)
        events = result.decode(receipt, event_name)
    except VanaError:
        raise
    except Exception as e:
        raise reraise_or_wrap(e, f"Failed to resolve {event_name} for {result.hash}") from e

    if not events:
        raise BlockchainError(f"No {event_name} event found in transaction {result.hash}")
    if len(events) > 1:
        logger.warning(f"Found {len(events)} {event_name} events in {result.hash}; using the first")

    record = {key: _hex(value) for key, value in events[0].items()}
    record["transactionHash"] = result.hash
    record["blockNumber"] = receipt.get("blockNumber")
    record["gasUsed"] = receipt.get("gasUsed")
    return record

"""
Abstract Base Classes for External Collaborators

Defines the boundaries the permission engine depends on. Concrete
implementations live in ``adapters/evm`` (chain access, local signing) and
``adapters/storage.py`` (grant file storage); tests supply in-memory ones.

Core Classes:
    - LedgerClient: Contract reads, writes, receipts and batched reads
    - SigningCapability: EIP-712 typed data signing for an account
    - BlobStore: Upload of grant file bytes, returning a URL

The engine never touches RPC transport details or key material directly.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


@dataclass
class ContractCall:
    """A single read in a batch."""
    address: str
    abi: List[Dict[str, Any]]
    function_name: str
    args: Sequence[Any] = field(default_factory=tuple)


@dataclass
class CallResult:
    """Outcome of one read in a batch; ``error`` is set when ``success`` is False."""
    success: bool
    value: Any = None
    error: Optional[BaseException] = None


class LedgerClient(ABC):
    """
    Abstract chain access boundary.

    Implementations raise their own transport exceptions; the engine maps
    them onto the package error taxonomy.
    """

    @abstractmethod
    async def read_contract(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any:
        """Call a view function and return its decoded output."""
        pass

    @abstractmethod
    async def write_contract(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        function_name: str,
        args: Sequence[Any],
        account: str,
        gas_options: Optional[Dict[str, int]] = None,
    ) -> str:
        """
        Build, sign and broadcast a state-changing call from ``account``.

        Args:
            gas_options: web3 transaction keys (``gas``, ``gasPrice``,
                ``maxFeePerGas``, ``maxPriorityFeePerGas``, ``nonce``).

        Returns:
            str: 0x-prefixed transaction hash.
        """
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> Dict[str, Any]:
        """Block until the transaction is mined and return its receipt."""
        pass

    @abstractmethod
    def decode_events(
        self,
        receipt: Dict[str, Any],
        abi: List[Dict[str, Any]],
        event_name: str,
    ) -> List[Dict[str, Any]]:
        """Return the decoded ``args`` of every ``event_name`` log in the receipt."""
        pass

    async def multicall(
        self,
        calls: Sequence[ContractCall],
        allow_failure: bool = True,
    ) -> List[CallResult]:
        """
        Execute several reads in one round trip where the backend supports it.

        The default issues the reads concurrently and isolates failures per
        item. With ``allow_failure=False`` the first failure is raised.
        """
        async def _one(call: ContractCall) -> CallResult:
            try:
                value = await self.read_contract(call.address, call.abi, call.function_name, call.args)
                return CallResult(success=True, value=value)
            except Exception as e:
                if not allow_failure:
                    raise
                return CallResult(success=False, error=e)

        return list(await asyncio.gather(*(_one(c) for c in calls)))


class SigningCapability(ABC):
    """Produces EIP-712 signatures for one or more accounts."""

    @abstractmethod
    async def get_address(self) -> str:
        """Return the default signing account."""
        pass

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any], account: str) -> str:
        """
        Sign a full EIP-712 payload (``types``, ``primaryType``, ``domain``,
        ``message``) with ``account``.

        Returns:
            str: 0x-prefixed 65-byte signature.
        """
        pass


class BlobStore(ABC):
    """Stores grant file bytes and returns where they can be fetched."""

    @abstractmethod
    async def upload(self, data: bytes, filename: str) -> str:
        """Upload ``data`` and return its URL (typically ``ipfs://<cid>``)."""
        pass

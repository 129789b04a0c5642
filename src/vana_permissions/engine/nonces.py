"""
Replay-counter reads for the two nonce families.

Permission operations (grant, revoke, server-files-and-permission) use the
counter on DataPortabilityPermissions; server trust operations use the one on
DataPortabilityServers. The counters are independent.
"""

from typing import Callable

from web3 import AsyncWeb3

from ..adapters.bases import LedgerClient
from ..adapters.evm.abis import get_permissions_abi, get_servers_abi
from ..config import DATA_PORTABILITY_PERMISSIONS, DATA_PORTABILITY_SERVERS
from ..schemas.bases import NonceFamily
from ..utils import logger
from .exceptions import NonceError


_FAMILY_CONTRACTS = {
    NonceFamily.PERMISSIONS: (DATA_PORTABILITY_PERMISSIONS, get_permissions_abi),
    NonceFamily.SERVERS: (DATA_PORTABILITY_SERVERS, get_servers_abi),
}


class NonceSource:
    """
    Reads ``userNonce(account)`` for a nonce family.

    Never retries: a failed read surfaces as ``NonceError`` and the caller
    decides whether to retry the whole operation.

    Args:
        ledger: Chain access.
        address_of: Resolves a contract name to its address.
    """

    def __init__(self, ledger: LedgerClient, address_of: Callable[[str], str]):
        self._ledger = ledger
        self._address_of = address_of

    async def get_nonce(self, account: str, family: NonceFamily) -> int:
        contract_name, abi_getter = _FAMILY_CONTRACTS[NonceFamily(family)]
        address = self._address_of(contract_name)
        try:
            nonce = await self._ledger.read_contract(
                address, abi_getter(), "userNonce", [AsyncWeb3.to_checksum_address(account)]
            )
        except Exception as e:
            raise NonceError(f"Failed to read {family.value} nonce for {account}: {e}", e) from e
        logger.debug(f"{family.value} nonce for {account}: {nonce}")
        return int(nonce)

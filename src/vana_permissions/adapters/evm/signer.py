"""
Local EIP-712 signing with ``eth_account``.

All cryptographic operations run in-process; no RPC calls are made. Use a
custom ``SigningCapability`` to delegate to hardware wallets or MPC services.
"""

from typing import Any, Dict, Optional

from eth_account import Account
from web3 import AsyncWeb3

from ..bases import SigningCapability
from ...config import get_private_key_from_env


class LocalAccountSigner(SigningCapability):
    """
    Sign typed data with a private key held in memory.

    The key is taken from the ``private_key`` argument, falling back to the
    ``VANA_PRIVATE_KEY`` environment variable.

    Raises:
        ValueError: If no key is available.
    """

    def __init__(self, private_key: Optional[str] = None):
        resolved = private_key if private_key else get_private_key_from_env()
        if not resolved:
            raise ValueError(
                "Private key not provided. Either pass 'private_key' or set "
                "the 'VANA_PRIVATE_KEY' environment variable."
            )
        self._private_key = resolved
        self.account = Account.from_key(resolved)
        self.address = AsyncWeb3.to_checksum_address(self.account.address)

    async def get_address(self) -> str:
        return self.address

    async def sign_typed_data(self, typed_data: Dict[str, Any], account: str) -> str:
        if AsyncWeb3.to_checksum_address(account) != self.address:
            raise ValueError(f"No key available for account {account}")
        signed = Account.sign_typed_data(self._private_key, full_message=typed_data)
        return "0x" + bytes(signed.signature).hex()

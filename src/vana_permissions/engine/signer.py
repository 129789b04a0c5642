"""
Typed message signing with a per-instance signature cache.

The cache is keyed by (checksummed account, canonical message JSON), so a
preview/confirm split or a retry that re-issues a logically identical message
does not prompt the wallet twice. Entries live only in memory and expire
after a TTL; a failed signing attempt never creates an entry.
"""

import time
from typing import Callable, Dict, Optional, Tuple

from web3 import AsyncWeb3

from ..adapters.bases import SigningCapability
from ..schemas.typed_data import TypedMessage
from ..utils import logger
from .exceptions import SignatureError, UserRejectedRequestError, VanaError


DEFAULT_SIGNATURE_TTL = 2 * 60 * 60

_REJECTION_MARKERS = ("user rejected", "user denied", "rejected the request", "denied transaction signature")


def is_user_rejection(error: BaseException) -> bool:
    """
    Detect wallet rejections across providers: EIP-1193 code 4001 or the
    usual rejection phrases in the message.
    """
    if isinstance(error, UserRejectedRequestError):
        return True
    if getattr(error, "code", None) == 4001:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _REJECTION_MARKERS)


class SignatureCache:
    """
    In-memory signature store with expiry.

    Args:
        ttl: Seconds an entry stays valid.
        clock: Time source, seconds.
    """

    def __init__(self, ttl: float = DEFAULT_SIGNATURE_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[str, float]] = {}

    @staticmethod
    def key(account: str, message: TypedMessage) -> Tuple[str, str]:
        return AsyncWeb3.to_checksum_address(account), message.canonical()

    def get(self, account: str, message: TypedMessage) -> Optional[str]:
        key = self.key(account, message)
        entry = self._entries.get(key)
        if entry is None:
            return None
        signature, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return signature

    def set(self, account: str, message: TypedMessage, signature: str) -> None:
        self._entries[self.key(account, message)] = (signature, self._clock() + self.ttl)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class TypedDataSigner:
    """
    Signs ``TypedMessage`` objects through a ``SigningCapability``.

    Rejections map to ``UserRejectedRequestError``; any other signing
    failure maps to ``SignatureError``.
    """

    def __init__(self, capability: SigningCapability, cache: Optional[SignatureCache] = None):
        self.capability = capability
        self.cache = cache if cache is not None else SignatureCache()

    async def sign(self, account: str, message: TypedMessage) -> str:
        cached = self.cache.get(account, message)
        if cached is not None:
            logger.debug(f"Signature cache hit for {message.primary_type} nonce={message.nonce}")
            return cached

        logger.debug(f"Signature cache miss for {message.primary_type} nonce={message.nonce}")
        try:
            signature = await self.capability.sign_typed_data(message.to_dict(), account)
        except Exception as e:
            if is_user_rejection(e):
                if isinstance(e, UserRejectedRequestError):
                    raise
                raise UserRejectedRequestError() from e
            if isinstance(e, VanaError):
                raise
            raise SignatureError(f"Failed to sign {message.primary_type}: {e}", e) from e

        self.cache.set(account, message, signature)
        return signature


async def resolve_signer_account(capability: SigningCapability, user_address: Optional[str] = None) -> str:
    """
    Decide which account signs an operation.

    Precedence: an explicitly configured ``user_address`` wins; otherwise the
    signing capability's own address is used.

    Returns:
        str: Checksummed account address.
    """
    if user_address:
        return AsyncWeb3.to_checksum_address(user_address)
    return AsyncWeb3.to_checksum_address(await capability.get_address())

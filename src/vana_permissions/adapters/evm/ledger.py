"""
EVM Ledger Client

``LedgerClient`` implementation on top of ``web3.AsyncWeb3``. Provides view
calls, locally-signed contract writes, receipt waiting, event decoding and
Multicall3 ``aggregate3`` batching.

Dependencies:
    - web3.py: For blockchain RPC interaction
    - eth_account: For local transaction signing
    - eth_abi / eth_utils: For multicall call data encoding and decoding
"""

from typing import Any, Dict, List, Optional, Sequence

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_account import Account
from eth_utils import function_abi_to_4byte_selector, keccak
from eth_utils.abi import collapse_if_tuple
from web3 import AsyncWeb3
from web3.exceptions import ContractCustomError, TimeExhausted
from web3.logs import DISCARD

from ..bases import CallResult, ContractCall, LedgerClient
from .abis import get_multicall3_abi
from ...config import MULTICALL3_ADDRESS
from ...engine.exceptions import BlockchainError
from ...utils import logger


def _find_abi_entry(abi: List[Dict[str, Any]], name: str, kind: str = "function") -> Dict[str, Any]:
    for entry in abi:
        if entry.get("type") == kind and entry.get("name") == name:
            return entry
    raise BlockchainError(f"{kind} {name} not present in ABI")


def _decode_custom_error(abi: List[Dict[str, Any]], data: Any) -> Optional[str]:
    """
    Render revert data for a custom error declared in ``abi`` as
    ``Name(arg="value", ...)``. Returns None when no declared error matches.
    """
    if isinstance(data, (bytes, bytearray)):
        raw = bytes(data)
    elif isinstance(data, str) and data.startswith("0x"):
        raw = bytes.fromhex(data[2:])
    else:
        return None
    if len(raw) < 4:
        return None
    for entry in abi:
        if entry.get("type") != "error":
            continue
        types = [collapse_if_tuple(i) for i in entry["inputs"]]
        signature = f"{entry['name']}({','.join(types)})"
        if keccak(text=signature)[:4] != raw[:4]:
            continue
        values = abi_decode(types, raw[4:])
        rendered = ", ".join(
            f'{i["name"]}="{v}"' for i, v in zip(entry["inputs"], values)
        )
        return f"{entry['name']}({rendered})"
    return None


class Web3LedgerClient(LedgerClient):
    """
    Chain access through an ``AsyncWeb3`` HTTP provider.

    Writes are signed locally when the client holds the key for the sending
    account; otherwise ``eth_sendTransaction`` is used and the node or wallet
    behind the RPC must manage that account.

    Example:
        ledger = Web3LedgerClient("https://rpc.moksha.vana.org", private_key="0x...")
        nonce = await ledger.read_contract(address, get_permissions_abi(), "userNonce", [user])
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: Optional[str] = None,
        request_timeout: float = 30.0,
        multicall_address: str = MULTICALL3_ADDRESS,
        web3: Optional[AsyncWeb3] = None,
    ):
        self._web3 = web3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={"timeout": request_timeout}
        ))
        self._account = Account.from_key(private_key) if private_key else None
        self._multicall_address = AsyncWeb3.to_checksum_address(multicall_address)

    @property
    def web3(self) -> AsyncWeb3:
        return self._web3

    async def aclose(self) -> None:
        """Release the provider's cached HTTP sessions."""
        await self._web3.provider.disconnect()

    def _contract(self, address: str, abi: List[Dict[str, Any]]):
        return self._web3.eth.contract(address=AsyncWeb3.to_checksum_address(address), abi=abi)

    async def read_contract(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        function_name: str,
        args: Sequence[Any] = (),
    ) -> Any:
        contract = self._contract(address, abi)
        return await contract.functions[function_name](*args).call()

    async def write_contract(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        function_name: str,
        args: Sequence[Any],
        account: str,
        gas_options: Optional[Dict[str, int]] = None,
    ) -> str:
        contract = self._contract(address, abi)
        sender = AsyncWeb3.to_checksum_address(account)
        tx_params: Dict[str, Any] = {"from": sender}
        tx_params.update(gas_options or {})

        try:
            call = contract.functions[function_name](*args)
            if self._account is not None and self._account.address == sender:
                if "nonce" not in tx_params:
                    tx_params["nonce"] = await self._web3.eth.get_transaction_count(sender)
                tx_params.setdefault("chainId", await self._web3.eth.chain_id)
                transaction = await call.build_transaction(tx_params)
                signed_tx = self._account.sign_transaction(transaction)
                tx_hash = await self._web3.eth.send_raw_transaction(signed_tx.raw_transaction)
            else:
                tx_hash = await call.transact(tx_params)
        except ContractCustomError as e:
            decoded = _decode_custom_error(abi, getattr(e, "data", None))
            if decoded is not None:
                raise BlockchainError(f"Contract reverted: {decoded}", e) from e
            raise

        tx_hex = tx_hash.hex() if isinstance(tx_hash, (bytes, bytearray)) else str(tx_hash)
        if not tx_hex.startswith("0x"):
            tx_hex = "0x" + tx_hex
        logger.debug(f"Broadcast {function_name} from {sender}: {tx_hex}")
        return tx_hex

    async def get_chain_id(self) -> int:
        return await self._web3.eth.chain_id

    async def wait_for_receipt(self, tx_hash: str, timeout: float = 120.0) -> Dict[str, Any]:
        try:
            receipt = await self._web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise BlockchainError(f"Transaction {tx_hash} not mined within {timeout}s", e) from e
        if receipt.get("status") == 0:
            raise BlockchainError(f"Transaction reverted on-chain: {tx_hash}")
        return dict(receipt)

    def decode_events(
        self,
        receipt: Dict[str, Any],
        abi: List[Dict[str, Any]],
        event_name: str,
    ) -> List[Dict[str, Any]]:
        _find_abi_entry(abi, event_name, "event")
        # log decoding does not depend on the contract address
        contract = self._web3.eth.contract(abi=abi)
        events = contract.events[event_name]().process_receipt(receipt, errors=DISCARD)
        return [dict(event["args"]) for event in events]

    async def multicall(
        self,
        calls: Sequence[ContractCall],
        allow_failure: bool = True,
    ) -> List[CallResult]:
        """
        Batch reads through Multicall3 ``aggregate3`` in a single ``eth_call``.

        Each call is encoded with its own ABI; failed sub-calls are reported
        per item when ``allow_failure`` is True.
        """
        if not calls:
            return []

        encoded = []
        fn_abis = []
        for call in calls:
            fn_abi = _find_abi_entry(call.abi, call.function_name)
            input_types = [collapse_if_tuple(i) for i in fn_abi["inputs"]]
            call_data = function_abi_to_4byte_selector(fn_abi) + abi_encode(input_types, list(call.args))
            encoded.append((AsyncWeb3.to_checksum_address(call.address), allow_failure, call_data))
            fn_abis.append(fn_abi)

        multicall = self._contract(self._multicall_address, get_multicall3_abi())
        raw_results = await multicall.functions.aggregate3(encoded).call()

        results: List[CallResult] = []
        for fn_abi, (success, return_data) in zip(fn_abis, raw_results):
            if not success:
                results.append(CallResult(
                    success=False,
                    error=BlockchainError(f"{fn_abi['name']} reverted inside multicall"),
                ))
                continue
            output_types = [collapse_if_tuple(o) for o in fn_abi["outputs"]]
            try:
                decoded = abi_decode(output_types, return_data)
            except Exception as e:
                if not allow_failure:
                    raise
                results.append(CallResult(success=False, error=e))
                continue
            value = decoded[0] if len(decoded) == 1 else decoded
            results.append(CallResult(success=True, value=value))
        return results

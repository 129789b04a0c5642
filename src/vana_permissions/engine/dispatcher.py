"""
Submission of signed typed messages.

Two paths, chosen by configuration:

    relayer  -> ``SignedRelayerRequest`` through the relay callback; the
                relayer pays gas and answers with one of the response
                variants (submitted / confirmed / signed / pending / error)
    direct   -> the signer's own wallet calls the contract function with
                the struct plus the signature

Both paths return a ``TransactionResult`` carrying the hash and the event the
operation is expected to emit.
"""

import re
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
from web3 import AsyncWeb3

from ..adapters.bases import LedgerClient
from ..schemas.options import PollingOptions, TransactionOptions
from ..schemas.relayer import (
    ErrorResponse,
    PendingResponse,
    SignedRelayerRequest,
    parse_relayer_response,
    resolve_submitted_hash,
)
from ..schemas.typed_data import LAYOUTS, OperationKind, TypedMessage
from ..utils import format_signature_for_contract, logger
from .exceptions import RelayerError, ServerUrlMismatchError, UserRejectedRequestError, VanaError, reraise_or_wrap
from .poller import CancellationToken, ConfirmationPoller, RelayCallback
from .results import OPERATIONS, OperationSpec, TransactionResult
from .signer import is_user_rejection


_SERVER_URL_MISMATCH = re.compile(
    r'ServerUrlMismatch\(\s*existingUrl="(?P<existing>[^"]*)",\s*providedUrl="(?P<provided>[^"]*)"\s*\)'
)


def _struct_value(struct_name: str, value: Dict[str, Any], types: Dict[str, List[Dict[str, str]]]) -> tuple:
    """Flatten a typed message struct into the ABI tuple, in declared field order."""
    items = []
    for field_def in types[struct_name]:
        field_value = value[field_def["name"]]
        base_type = field_def["type"].split("[", 1)[0]
        if base_type in types:
            depth = field_def["type"].count("[]")
            items.append(_nested(base_type, field_value, depth, types))
        else:
            items.append(field_value)
    return tuple(items)


def _nested(struct_name: str, value: Any, depth: int, types: Dict[str, List[Dict[str, str]]]) -> Any:
    if depth == 0:
        return _struct_value(struct_name, value, types)
    return [_nested(struct_name, v, depth - 1, types) for v in value]


def build_contract_args(message: TypedMessage, signature: str) -> List[Any]:
    """
    Arguments for the ``*WithSignature`` style contract functions:
    the primary struct as a tuple followed by the signature bytes.
    """
    layout = LAYOUTS[message.kind]
    struct = _struct_value(layout.primary_type, message.message, layout.structs)
    normalized = format_signature_for_contract(signature)
    return [struct, bytes.fromhex(normalized[2:])]


def parse_server_url_mismatch(error_text: str, server_id: str) -> Optional[ServerUrlMismatchError]:
    """Recognize a ``ServerUrlMismatch`` revert in an error message."""
    match = _SERVER_URL_MISMATCH.search(error_text)
    if match is None:
        return None
    return ServerUrlMismatchError(match.group("existing"), match.group("provided"), server_id)


def _server_identity(message: TypedMessage) -> str:
    payload = message.message
    return str(payload.get("serverAddress") or payload.get("serverId") or "unknown")


class Dispatcher:
    """
    Routes a signed message to the relayer or to the contract.

    Args:
        ledger: Chain access for the direct path and receipt resolution.
        address_of: Resolves a contract name to its address.
        relay: Relayer callback; when set, every submission goes through it.
        poller: Confirmation poller for ``pending`` relayer responses.
            Built around ``relay`` when omitted.
        receipt_timeout: Default receipt wait passed to results.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        address_of: Callable[[str], str],
        relay: Optional[RelayCallback] = None,
        poller: Optional[ConfirmationPoller] = None,
        receipt_timeout: float = 120.0,
    ):
        self._ledger = ledger
        self._address_of = address_of
        self._relay = relay
        self._poller = poller or (ConfirmationPoller(relay) if relay is not None else None)
        self.receipt_timeout = receipt_timeout

    @property
    def uses_relayer(self) -> bool:
        return self._relay is not None

    async def submit(
        self,
        message: TypedMessage,
        signature: str,
        account: str,
        options: Optional[TransactionOptions] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        """
        Submit ``message`` with its ``signature`` on behalf of ``account``.

        Raises:
            RelayerError: The relayer reported failure or answered with a
                shape this dispatcher does not handle.
            UserRejectedRequestError: The wallet declined the transaction.
            ServerUrlMismatchError: The server is registered under another URL.
            BlockchainError: Any other submission failure, wrapping its cause.
        """
        spec = OPERATIONS[message.kind]
        sender = AsyncWeb3.to_checksum_address(account)
        if self._relay is not None:
            return await self._submit_via_relayer(spec, message, signature, sender, options, polling, cancel)
        return await self._submit_direct(spec, message, signature, sender, options)

    def _result(self, spec: OperationSpec, tx_hash: str, sender: str, receipt: Optional[Dict[str, Any]] = None) -> TransactionResult:
        return TransactionResult(tx_hash, sender, spec, self._ledger, receipt=receipt, receipt_timeout=self.receipt_timeout)

    async def _submit_via_relayer(
        self,
        spec: OperationSpec,
        message: TypedMessage,
        signature: str,
        sender: str,
        options: Optional[TransactionOptions],
        polling: Optional[PollingOptions],
        cancel: Optional[CancellationToken],
    ) -> TransactionResult:
        if options is not None and not options.is_empty():
            logger.debug(f"Relayer path ignores transaction options for {spec.relayer_operation}")

        request = SignedRelayerRequest(
            operation=spec.relayer_operation,
            typed_data=message.to_dict(),
            signature=signature,
            expected_user_address=sender,
        )
        logger.debug(f"Relaying {spec.relayer_operation} for {sender}")
        try:
            raw = await self._relay(request)
        except VanaError:
            raise
        except Exception as e:
            raise reraise_or_wrap(e, f"Relayer call for {spec.relayer_operation} failed") from e
        try:
            response = parse_relayer_response(raw)
        except ValidationError as e:
            raise RelayerError("Unexpected relayer response shape", response=raw) from e

        tx_hash = resolve_submitted_hash(response)
        if tx_hash is not None:
            return self._result(spec, tx_hash, sender, getattr(response, "receipt", None))

        if isinstance(response, PendingResponse):
            logger.info(f"{spec.relayer_operation} queued as operation {response.operation_id}")
            outcome = await self._poller.wait_for_confirmation(response.operation_id, polling, cancel)
            return self._result(spec, outcome.hash, sender, outcome.receipt)

        if isinstance(response, ErrorResponse):
            mismatch = parse_server_url_mismatch(response.error, _server_identity(message))
            if mismatch is not None:
                raise mismatch
            raise RelayerError(response.error, response=response.to_dict())

        # a direct response answers a direct request, never a signed one
        raise RelayerError("Unexpected relayer response shape", response=response.to_dict())

    async def _submit_direct(
        self,
        spec: OperationSpec,
        message: TypedMessage,
        signature: str,
        sender: str,
        options: Optional[TransactionOptions],
    ) -> TransactionResult:
        args = build_contract_args(message, signature)
        gas_options = options.to_tx_params() if options is not None else None
        try:
            tx_hash = await self._ledger.write_contract(
                self._address_of(spec.contract_name),
                spec.abi(),
                spec.function_name,
                args,
                sender,
                gas_options,
            )
        except Exception as e:
            if is_user_rejection(e):
                raise UserRejectedRequestError("User rejected the transaction request") from e
            mismatch = parse_server_url_mismatch(str(e), _server_identity(message))
            if mismatch is not None:
                raise mismatch from e
            if isinstance(e, VanaError):
                raise
            raise reraise_or_wrap(e, f"Failed to submit {spec.function_name}") from e

        logger.info(f"Submitted {spec.function_name} from {sender}: {tx_hash}")
        return self._result(spec, tx_hash, sender)

"""
Dispatcher Test Suite

Relayer response handling (one case per response tag), the direct
contract path, and revert/rejection mapping.
"""

import pytest
from unittest.mock import AsyncMock

from ledger_mocks import (
    MOCK_CHAIN_ID,
    MOCK_GRANT_URL,
    MOCK_PERMISSIONS_CONTRACT,
    MOCK_PUBLIC_KEY,
    MOCK_SERVER_ADDRESS,
    MOCK_SERVERS_CONTRACT,
    MOCK_TX_HASH,
    MOCK_USER_ADDRESS,
    FakeClock,
    ScriptedRelayer,
    SimulatedLedger,
    create_mock_config,
)
from vana_permissions.engine.dispatcher import Dispatcher, build_contract_args, parse_server_url_mismatch
from vana_permissions.engine.exceptions import (
    BlockchainError,
    RelayerError,
    ServerUrlMismatchError,
    UserRejectedRequestError,
)
from vana_permissions.engine.poller import ConfirmationPoller
from vana_permissions.schemas.options import PollingOptions, TransactionOptions
from vana_permissions.schemas.relayer import SignedRelayerRequest, StatusCheckRequest
from vana_permissions.schemas.typed_data import OperationKind, TypedMessage


SIGNATURE = "0x" + "11" * 64 + "1b"
SIGNATURE_V0 = "0x" + "11" * 64 + "00"


def create_grant_message(nonce: int = 0) -> TypedMessage:
    return TypedMessage.build(
        OperationKind.GRANT,
        chain_id=MOCK_CHAIN_ID,
        verifying_contract=MOCK_PERMISSIONS_CONTRACT,
        message={"nonce": nonce, "granteeId": 1, "grant": MOCK_GRANT_URL, "fileIds": [1, 2, 3]},
    )


def create_add_server_message(nonce: int = 0, url: str = "https://new.example.com") -> TypedMessage:
    return TypedMessage.build(
        OperationKind.ADD_AND_TRUST_SERVER,
        chain_id=MOCK_CHAIN_ID,
        verifying_contract=MOCK_SERVERS_CONTRACT,
        message={"nonce": nonce, "serverAddress": MOCK_SERVER_ADDRESS, "publicKey": MOCK_PUBLIC_KEY, "serverUrl": url},
    )


def create_dispatcher(ledger=None, relayer=None, clock=None):
    ledger = ledger if ledger is not None else SimulatedLedger()
    poller = None
    if relayer is not None:
        clock = clock or FakeClock()
        poller = ConfirmationPoller(relayer, PollingOptions(jitter=0.0), sleep=clock.sleep, clock=clock)
    return Dispatcher(ledger, create_mock_config().contract_address, relayer, poller)


class TestRelayerResponses:
    """Each response tag maps to exactly one outcome."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tag", ["submitted", "confirmed", "signed"])
    async def test_hash_bearing_responses(self, tag):
        relayer = ScriptedRelayer([{"type": tag, "hash": MOCK_TX_HASH}])
        dispatcher = create_dispatcher(relayer=relayer)

        result = await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)

        assert result.hash == MOCK_TX_HASH
        assert str(result) == MOCK_TX_HASH
        assert result.expected_event == "PermissionAdded"

    @pytest.mark.asyncio
    async def test_pending_response_polls_until_confirmed(self):
        relayer = ScriptedRelayer([
            {"type": "pending", "operationId": "op-7"},
            {"type": "pending", "operationId": "op-7"},
            {"type": "confirmed", "hash": MOCK_TX_HASH},
        ])
        dispatcher = create_dispatcher(relayer=relayer)

        result = await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)

        assert result.hash == MOCK_TX_HASH
        assert isinstance(relayer.requests[0], SignedRelayerRequest)
        assert all(isinstance(r, StatusCheckRequest) for r in relayer.requests[1:])

    @pytest.mark.asyncio
    async def test_error_response_raises_relayer_error(self):
        relayer = ScriptedRelayer([{"type": "error", "error": "Insufficient sponsor balance"}])
        dispatcher = create_dispatcher(relayer=relayer)

        with pytest.raises(RelayerError, match="Insufficient sponsor balance"):
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)

    @pytest.mark.asyncio
    async def test_direct_response_to_signed_request_is_rejected(self):
        relayer = ScriptedRelayer([{"type": "direct", "result": {"ok": True}}])
        dispatcher = create_dispatcher(relayer=relayer)

        with pytest.raises(RelayerError, match="Unexpected relayer response shape"):
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)

    @pytest.mark.asyncio
    async def test_unknown_tag_is_rejected(self):
        relayer = ScriptedRelayer([{"type": "teleported", "hash": MOCK_TX_HASH}])
        dispatcher = create_dispatcher(relayer=relayer)

        with pytest.raises(RelayerError, match="Unexpected relayer response shape"):
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)

    @pytest.mark.asyncio
    async def test_signed_request_carries_operation_and_typed_data(self):
        relayer = ScriptedRelayer([{"type": "submitted", "hash": MOCK_TX_HASH}])
        dispatcher = create_dispatcher(relayer=relayer)
        message = create_grant_message(nonce=4)

        await dispatcher.submit(message, SIGNATURE, MOCK_USER_ADDRESS.lower())

        request = relayer.requests[0]
        assert request.operation == "submitAddPermission"
        assert request.typed_data == message.to_dict()
        assert request.signature == SIGNATURE
        assert request.expected_user_address == MOCK_USER_ADDRESS
        payload = request.model_dump(by_alias=True)
        assert payload["type"] == "signed"
        assert "typedData" in payload and "expectedUserAddress" in payload

    @pytest.mark.asyncio
    async def test_relayer_server_url_mismatch(self):
        relayer = ScriptedRelayer([{
            "type": "error",
            "error": 'execution reverted: ServerUrlMismatch(existingUrl="https://old.example.com", providedUrl="https://new.example.com")',
        }])
        dispatcher = create_dispatcher(relayer=relayer)

        with pytest.raises(ServerUrlMismatchError) as exc_info:
            await dispatcher.submit(create_add_server_message(), SIGNATURE, MOCK_USER_ADDRESS)
        assert exc_info.value.existing_url == "https://old.example.com"
        assert exc_info.value.server_id == MOCK_SERVER_ADDRESS


class TestDirectPath:

    @pytest.mark.asyncio
    async def test_direct_submission_calls_contract(self):
        ledger = SimulatedLedger()
        dispatcher = create_dispatcher(ledger)

        result = await dispatcher.submit(
            create_grant_message(),
            SIGNATURE,
            MOCK_USER_ADDRESS,
            TransactionOptions(gas_limit=500_000, gas_price=2_000_000_000),
        )

        write = ledger.writes[0]
        assert write["function"] == "addPermission"
        assert write["struct"] == (0, 1, MOCK_GRANT_URL, [1, 2, 3])
        assert write["gas_options"] == {"gas": 500_000, "gasPrice": 2_000_000_000}
        assert result.hash == write["hash"]

    @pytest.mark.asyncio
    async def test_stale_nonce_reverts_as_blockchain_error(self):
        ledger = SimulatedLedger()
        dispatcher = create_dispatcher(ledger)

        await dispatcher.submit(create_grant_message(nonce=0), SIGNATURE, MOCK_USER_ADDRESS)
        with pytest.raises(BlockchainError, match="InvalidNonce"):
            await dispatcher.submit(create_grant_message(nonce=0), SIGNATURE, MOCK_USER_ADDRESS)

    @pytest.mark.asyncio
    async def test_wallet_rejection(self):
        ledger = SimulatedLedger()
        ledger.write_contract = AsyncMock(side_effect=Exception("User rejected the request."))
        dispatcher = create_dispatcher(ledger)

        with pytest.raises(UserRejectedRequestError):
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)

    @pytest.mark.asyncio
    async def test_unknown_failure_is_wrapped_once(self):
        ledger = SimulatedLedger()
        cause = ConnectionError("rpc unreachable")
        ledger.write_contract = AsyncMock(side_effect=cause)
        dispatcher = create_dispatcher(ledger)

        with pytest.raises(BlockchainError) as exc_info:
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)
        assert exc_info.value.original_error is cause

    @pytest.mark.asyncio
    async def test_server_url_mismatch_revert(self):
        ledger = SimulatedLedger()
        ledger.register_server(MOCK_SERVER_ADDRESS, "https://old.example.com")
        dispatcher = create_dispatcher(ledger)

        with pytest.raises(ServerUrlMismatchError) as exc_info:
            await dispatcher.submit(create_add_server_message(), SIGNATURE, MOCK_USER_ADDRESS)
        assert exc_info.value.existing_url == "https://old.example.com"
        assert exc_info.value.provided_url == "https://new.example.com"


class TestContractArgs:

    def test_signature_v_is_normalized(self):
        args = build_contract_args(create_grant_message(), SIGNATURE_V0)
        assert args[1][-1] == 27
        assert len(args[1]) == 65

    def test_nested_struct_arrays_flatten_in_field_order(self):
        message = TypedMessage.build(
            OperationKind.SERVER_FILES_AND_PERMISSION,
            chain_id=MOCK_CHAIN_ID,
            verifying_contract=MOCK_PERMISSIONS_CONTRACT,
            message={
                "nonce": 2,
                "granteeId": 1,
                "grant": MOCK_GRANT_URL,
                "fileUrls": ["ipfs://a"],
                "schemaIds": [0],
                "serverAddress": MOCK_SERVER_ADDRESS,
                "serverUrl": "https://s",
                "serverPublicKey": MOCK_PUBLIC_KEY,
                "filePermissions": [[{"account": MOCK_SERVER_ADDRESS, "key": "k"}]],
            },
        )
        struct, _ = build_contract_args(message, SIGNATURE)
        assert struct[0] == 2
        assert struct[-1] == [[(MOCK_SERVER_ADDRESS, "k")]]

    def test_mismatch_parser_ignores_other_errors(self):
        assert parse_server_url_mismatch("InvalidNonce()", "1") is None


class TestErrorPropagation:

    @pytest.mark.asyncio
    async def test_unexpected_relay_exception_is_wrapped_once(self):
        cause = RuntimeError("socket closed")
        dispatcher = create_dispatcher(relayer=ScriptedRelayer([cause]))

        with pytest.raises(BlockchainError) as exc_info:
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)
        assert exc_info.value.original_error is cause
        assert exc_info.value.__cause__ is cause

    @pytest.mark.asyncio
    async def test_relayer_error_passes_through(self):
        error = RelayerError("rate limited", status_code=429)
        dispatcher = create_dispatcher(relayer=ScriptedRelayer([error]))

        with pytest.raises(RelayerError) as exc_info:
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_known_error_is_reraised_without_self_cause(self):
        error = BlockchainError("execution reverted: PermissionNotFound()")
        ledger = SimulatedLedger()
        ledger.write_contract = AsyncMock(side_effect=error)
        dispatcher = create_dispatcher(ledger)

        with pytest.raises(BlockchainError) as exc_info:
            await dispatcher.submit(create_grant_message(), SIGNATURE, MOCK_USER_ADDRESS)
        assert exc_info.value is error
        assert exc_info.value.__cause__ is None

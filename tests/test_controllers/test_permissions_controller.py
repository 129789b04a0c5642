"""
Permissions Controller Test Suite

End-to-end flows against the simulated ledger and relayer:
- two-phase grant (preview has no side effects, confirm signs/uploads/submits once)
- direct and relayer-sponsored submission, including asynchronous confirmation
- nonce sequencing across consecutive operations
- server trust operations and read queries
"""

import json

import pytest
from unittest.mock import AsyncMock

from ledger_mocks import (
    MOCK_GRANT_URL,
    MOCK_GRANTEE_ADDRESS,
    MOCK_PERMISSIONS_CONTRACT,
    MOCK_PUBLIC_KEY,
    MOCK_SERVER_ADDRESS,
    MOCK_SERVER_URL,
    MOCK_SERVERS_CONTRACT,
    MOCK_UNREGISTERED_ADDRESS,
    MOCK_USER_ADDRESS,
    MOCK_USER_PRIVATE_KEY,
    CountingSigner,
    MemoryBlobStore,
    SimulatedRelayer,
    create_controller,
    create_grant_params,
    create_ledger_with_grantee,
    create_mock_config,
    create_server_files_params,
)
from vana_permissions.controllers.permissions import PermissionsController
from vana_permissions.engine.exceptions import (
    BlockchainError,
    NoStorageAvailableError,
    NonceError,
    SerializationError,
    ServerUrlMismatchError,
    UserRejectedRequestError,
)
from vana_permissions.schemas.relayer import SignedRelayerRequest, StatusCheckRequest


class TestGrantPreview:
    """Preview builds and validates only; confirm performs the side effects."""

    @pytest.mark.asyncio
    async def test_preview_is_pure(self):
        ledger = create_ledger_with_grantee()
        signer = CountingSigner()
        store = MemoryBlobStore()
        controller = create_controller(ledger, signer, blob_store=store)

        first = await controller.prepare_grant(create_grant_params())
        second = await controller.prepare_grant(create_grant_params())

        assert signer.sign_count == 0
        assert store.uploads == []
        assert ledger.writes == []
        assert ledger.read_count == 0
        assert first.grant_file == second.grant_file

    @pytest.mark.asyncio
    async def test_grant_end_to_end(self):
        ledger = create_ledger_with_grantee()
        signer = CountingSigner()
        store = MemoryBlobStore()
        controller = create_controller(ledger, signer, blob_store=store)

        preview = await controller.prepare_grant(create_grant_params(grantee=MOCK_GRANTEE_ADDRESS.lower()))
        assert preview.operation == "llm_inference"
        assert preview.file_count == 3

        tx = await preview.confirm()
        event = await tx.wait_for_events()

        assert signer.sign_count == 1
        assert len(store.uploads) == 1
        assert len(ledger.writes) == 1
        assert event["permissionId"] == 1
        assert event["user"] == MOCK_USER_ADDRESS
        assert event["fileIds"] == [1, 2, 3]
        assert event["grant"] == "ipfs://QmMemory1"
        assert event["transactionHash"] == tx.hash

    @pytest.mark.asyncio
    async def test_uploaded_grant_file_omits_file_ids(self):
        store = MemoryBlobStore()
        controller = create_controller(blob_store=store)

        await controller.grant(create_grant_params(expires_at=1_900_000_000))

        filename, data = store.uploads[0]
        body = json.loads(data)
        assert filename == "grant-file.json"
        assert body == {
            "grantee": MOCK_GRANTEE_ADDRESS,
            "operation": "llm_inference",
            "parameters": {"prompt": "Summarize my data", "model": "gpt-4"},
            "expires": 1_900_000_000,
        }

    @pytest.mark.asyncio
    async def test_supplied_grant_url_skips_storage(self):
        ledger = create_ledger_with_grantee()
        store = MemoryBlobStore()
        controller = create_controller(ledger, blob_store=store)

        tx = await controller.grant(create_grant_params(grant_url=MOCK_GRANT_URL))
        event = await tx.wait_for_events()

        assert store.uploads == []
        assert event["grant"] == MOCK_GRANT_URL

    @pytest.mark.asyncio
    async def test_no_storage_fails_before_signing(self):
        signer = CountingSigner()
        controller = PermissionsController(create_ledger_with_grantee(), signer, config=create_mock_config())

        with pytest.raises(NoStorageAvailableError):
            await controller.prepare_grant(create_grant_params())
        assert signer.sign_count == 0

    @pytest.mark.asyncio
    async def test_invalid_params_raise_serialization_error(self):
        controller = create_controller()

        with pytest.raises(SerializationError):
            await controller.prepare_grant(create_grant_params(grantee="not-an-address"))
        with pytest.raises(SerializationError):
            await controller.prepare_grant(create_grant_params(operation=""))

    @pytest.mark.asyncio
    async def test_rejected_signature_submits_nothing(self):
        ledger = create_ledger_with_grantee()
        signer = CountingSigner()
        signer.sign_typed_data = AsyncMock(side_effect=Exception("User rejected the request."))
        controller = create_controller(ledger, signer)

        with pytest.raises(UserRejectedRequestError):
            await controller.grant(create_grant_params())
        assert ledger.writes == []

    @pytest.mark.asyncio
    async def test_sign_then_submit_separately(self):
        ledger = create_ledger_with_grantee()
        controller = create_controller(ledger)

        signed = await controller.create_and_sign_grant(create_grant_params())
        assert ledger.writes == []

        tx = await controller.submit_signed_grant(signed)
        assert (await tx.wait_for_events())["fileIds"] == [1, 2, 3]


class TestNonceSequencing:

    @pytest.mark.asyncio
    async def test_consecutive_grants_use_increasing_nonces(self):
        ledger = create_ledger_with_grantee()
        controller = create_controller(ledger)

        await controller.grant(create_grant_params(files=[1]))
        await controller.grant(create_grant_params(files=[2]))
        await controller.revoke(1)

        assert [w["struct"][0] for w in ledger.writes] == [0, 1, 2]
        assert ledger.nonce_of(MOCK_PERMISSIONS_CONTRACT, MOCK_USER_ADDRESS) == 3

    @pytest.mark.asyncio
    async def test_server_family_has_its_own_counter(self):
        ledger = create_ledger_with_grantee()
        server_id = ledger.register_server(MOCK_SERVER_ADDRESS)
        controller = create_controller(ledger)

        await controller.grant(create_grant_params())
        await controller.trust_server(server_id)

        assert ledger.writes[1]["struct"] == (0, server_id)
        assert ledger.nonce_of(MOCK_SERVERS_CONTRACT, MOCK_USER_ADDRESS) == 1

    @pytest.mark.asyncio
    async def test_failed_nonce_read_is_retried_once(self):
        ledger = create_ledger_with_grantee()
        controller = create_controller(ledger)
        real_get_nonce = controller.nonces.get_nonce
        calls = []

        async def flaky_get_nonce(account, family):
            calls.append(family)
            if len(calls) == 1:
                raise NonceError("rpc timeout")
            return await real_get_nonce(account, family)

        controller.nonces.get_nonce = flaky_get_nonce

        tx = await controller.revoke(ledger.add_user_permission(MOCK_USER_ADDRESS))

        assert len(calls) == 2
        assert tx.hash == ledger.writes[0]["hash"]

    @pytest.mark.asyncio
    async def test_persistent_nonce_failure_surfaces(self):
        controller = create_controller()

        async def failing_get_nonce(account, family):
            raise NonceError("rpc timeout")

        controller.nonces.get_nonce = failing_get_nonce

        with pytest.raises(NonceError):
            await controller.trust_server(1)


class TestRelayerSubmission:

    @pytest.mark.asyncio
    async def test_relayed_grant(self):
        ledger = create_ledger_with_grantee()
        relayer = SimulatedRelayer(ledger, mode="submitted")
        controller = create_controller(ledger, relayer=relayer)

        tx = await controller.grant(create_grant_params(), options={"gas_limit": 1_000_000})
        event = await tx.wait_for_events()

        assert isinstance(relayer.requests[0], SignedRelayerRequest)
        assert relayer.requests[0].operation == "submitAddPermission"
        assert event["fileIds"] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_relayed_grant_with_async_confirmation(self):
        ledger = create_ledger_with_grantee()
        relayer = SimulatedRelayer(ledger, mode="pending", pending_ticks=2)
        controller = create_controller(ledger, relayer=relayer)

        tx = await controller.grant(create_grant_params())
        event = await tx.wait_for_events()

        status_checks = [r for r in relayer.requests if isinstance(r, StatusCheckRequest)]
        assert len(status_checks) == 3
        assert event["permissionId"] == 1

    @pytest.mark.asyncio
    async def test_relayed_trust_server(self):
        ledger = create_ledger_with_grantee()
        server_id = ledger.register_server(MOCK_SERVER_ADDRESS)
        relayer = SimulatedRelayer(ledger, mode="signed")
        controller = create_controller(ledger, relayer=relayer)

        tx = await controller.trust_server(server_id)
        event = await tx.wait_for_events()

        assert relayer.requests[0].operation == "submitTrustServer"
        assert event["serverId"] == server_id
        assert event["serverUrl"] == MOCK_SERVER_URL


class TestServerOperations:

    @pytest.mark.asyncio
    async def test_add_and_trust_then_untrust(self):
        ledger = create_ledger_with_grantee()
        controller = create_controller(ledger)

        added = await controller.add_and_trust_server({
            "server_address": MOCK_SERVER_ADDRESS,
            "server_url": MOCK_SERVER_URL,
            "public_key": MOCK_PUBLIC_KEY,
        })
        trusted = await added.wait_for_events()
        removed = await controller.untrust_server(trusted["serverId"])
        untrusted = await removed.wait_for_events()

        assert untrusted["serverId"] == trusted["serverId"]
        assert ledger.user_servers[MOCK_USER_ADDRESS] == []

    @pytest.mark.asyncio
    async def test_add_and_trust_url_mismatch(self):
        ledger = create_ledger_with_grantee()
        ledger.register_server(MOCK_SERVER_ADDRESS, "https://old.example.com")
        controller = create_controller(ledger)

        with pytest.raises(ServerUrlMismatchError) as exc_info:
            await controller.add_and_trust_server({
                "server_address": MOCK_SERVER_ADDRESS,
                "server_url": MOCK_SERVER_URL,
                "public_key": MOCK_PUBLIC_KEY,
            })
        assert exc_info.value.existing_url == "https://old.example.com"
        assert exc_info.value.provided_url == MOCK_SERVER_URL

    @pytest.mark.asyncio
    async def test_server_files_and_permissions(self):
        ledger = create_ledger_with_grantee()
        store = MemoryBlobStore()
        controller = create_controller(ledger, blob_store=store)

        tx = await controller.submit_server_files_and_permissions(create_server_files_params())
        event = await tx.wait_for_events()

        assert tx.function_name == "addServerFilesAndPermissions"
        assert len(event["fileIds"]) == 2
        assert len(store.uploads) == 1
        assert ledger.user_servers[MOCK_USER_ADDRESS] == [1]

    @pytest.mark.asyncio
    async def test_server_files_length_mismatch(self):
        controller = create_controller()

        with pytest.raises(SerializationError, match="schemaIds array length"):
            await controller.submit_server_files_and_permissions(create_server_files_params(schema_ids=[0]))


class TestReads:

    @pytest.mark.asyncio
    async def test_trusted_servers_with_details(self):
        ledger = create_ledger_with_grantee()
        for i in range(3):
            server_id = ledger.register_server("0x" + f"{i + 1:02x}" * 20, f"https://s{i}.example.com")
            ledger.user_servers.setdefault(MOCK_USER_ADDRESS, []).append(server_id)
        controller = create_controller(ledger)

        page = await controller.get_trusted_servers(limit=2)
        everything = await controller.get_all_trusted_servers()
        details = await controller.get_server_info_batch(everything.items)

        assert page.items == [1, 2]
        assert page.has_more is True
        assert everything.items == [1, 2, 3]
        assert [s.url for s in details.items] == [f"https://s{i}.example.com" for i in range(3)]

    @pytest.mark.asyncio
    async def test_user_permissions(self):
        ledger = create_ledger_with_grantee()
        ledger.add_user_permission(MOCK_USER_ADDRESS)
        ledger.add_user_permission(MOCK_USER_ADDRESS, end_block=777)
        controller = create_controller(ledger)

        ids = await controller.get_user_permission_ids()
        permissions = await controller.get_user_permissions()

        assert ids.items == [1, 2]
        assert [p.end_block for p in permissions.items] == [0, 777]
        assert permissions.failed == []

    @pytest.mark.asyncio
    async def test_grantee_lookup(self):
        controller = create_controller()

        grantee = await controller.get_grantee_by_address(MOCK_GRANTEE_ADDRESS.lower())
        missing = await controller.get_grantee_by_address(MOCK_UNREGISTERED_ADDRESS)
        page = await controller.get_grantees()

        assert grantee.id == 1
        assert grantee.address == MOCK_GRANTEE_ADDRESS
        assert missing is None
        assert page.total_count == 1

    @pytest.mark.asyncio
    async def test_grantee_details_by_id(self):
        ledger = create_ledger_with_grantee()
        ledger.register_grantee(MOCK_UNREGISTERED_ADDRESS)
        controller = create_controller(ledger)

        result = await controller.get_grantee_info_batch([1, 99, 2])

        assert [g.id for g in result.items] == [1, 2]
        assert [g.address for g in result.items] == [MOCK_GRANTEE_ADDRESS, MOCK_UNREGISTERED_ADDRESS]
        assert result.failed == [99]

    @pytest.mark.asyncio
    async def test_read_errors_surface_unwrapped(self):
        ledger = create_ledger_with_grantee()
        ledger.fail_read("granteeAddressToId", MOCK_GRANTEE_ADDRESS)
        controller = create_controller(ledger)

        with pytest.raises(BlockchainError, match="execution reverted") as exc_info:
            await controller.get_grantee_by_address(MOCK_GRANTEE_ADDRESS)
        assert exc_info.value.__cause__ is None

    @pytest.mark.asyncio
    async def test_close_clears_signature_cache(self):
        controller = create_controller()
        await controller.grant(create_grant_params())
        assert len(controller.signer.cache) == 1

        await controller.close()

        assert len(controller.signer.cache) == 0

    @pytest.mark.asyncio
    async def test_close_disconnects_owned_ledger(self, monkeypatch):
        controller = PermissionsController.from_config(create_mock_config(), private_key=MOCK_USER_PRIVATE_KEY)
        disconnect = AsyncMock()
        monkeypatch.setattr(controller.ledger.web3.provider, "disconnect", disconnect)

        async with controller:
            pass

        disconnect.assert_awaited_once()

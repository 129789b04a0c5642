"""
Typed message composition.

Each ``compose_*`` coroutine reads a fresh nonce for the signer, maps the
operation parameters onto the contract's struct layout and resolves
cross-references the contract stores by numeric id (grantee account ->
grantee id).

Composing twice without submitting in between yields two messages carrying
the same nonce; at most one of them can ever be accepted on-chain.
"""

from typing import Callable, List

from web3 import AsyncWeb3

from ..adapters.bases import LedgerClient
from ..adapters.evm.abis import get_grantees_abi
from ..config import DATA_PORTABILITY_GRANTEES, DATA_PORTABILITY_PERMISSIONS, DATA_PORTABILITY_SERVERS
from ..grants.grant_files import warn_if_gateway_url
from ..schemas.bases import NonceFamily
from ..schemas.permissions import AddAndTrustServerParams, ServerFilesAndPermissionParams
from ..schemas.typed_data import OperationKind, TypedMessage
from .exceptions import BlockchainError
from .nonces import NonceSource


class MessageComposer:
    """
    Builds ``TypedMessage`` instances for every signed operation.

    Args:
        ledger: Chain access, used for grantee id lookups.
        nonce_source: Replay counter reader.
        chain_id: Chain id embedded in every domain separator.
        address_of: Resolves a contract name to its address.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        nonce_source: NonceSource,
        chain_id: int,
        address_of: Callable[[str], str],
    ):
        self._ledger = ledger
        self._nonces = nonce_source
        self.chain_id = chain_id
        self._address_of = address_of

    def _build(self, kind: OperationKind, contract_name: str, message: dict) -> TypedMessage:
        return TypedMessage.build(
            kind,
            chain_id=self.chain_id,
            verifying_contract=AsyncWeb3.to_checksum_address(self._address_of(contract_name)),
            message=message,
        )

    async def resolve_grantee_id(self, grantee: str) -> int:
        """
        Look up the registered grantee id for an account.

        Raises:
            BlockchainError: If the account is not a registered grantee.
        """
        grantee_id = await self._ledger.read_contract(
            self._address_of(DATA_PORTABILITY_GRANTEES),
            get_grantees_abi(),
            "granteeAddressToId",
            [AsyncWeb3.to_checksum_address(grantee)],
        )
        if not grantee_id:
            raise BlockchainError(f"Grantee {grantee} is not registered")
        return int(grantee_id)

    # -------------------------------------------------------------------------
    # Permissions family
    # -------------------------------------------------------------------------

    async def compose_grant(
        self,
        account: str,
        grantee: str,
        grant_url: str,
        file_ids: List[int],
    ) -> TypedMessage:
        warn_if_gateway_url(grant_url)
        nonce = await self._nonces.get_nonce(account, NonceFamily.PERMISSIONS)
        grantee_id = await self.resolve_grantee_id(grantee)
        return self._build(OperationKind.GRANT, DATA_PORTABILITY_PERMISSIONS, {
            "nonce": nonce,
            "granteeId": grantee_id,
            "grant": grant_url,
            "fileIds": [int(f) for f in file_ids],
        })

    async def compose_revoke(self, account: str, permission_id: int) -> TypedMessage:
        nonce = await self._nonces.get_nonce(account, NonceFamily.PERMISSIONS)
        return self._build(OperationKind.REVOKE, DATA_PORTABILITY_PERMISSIONS, {
            "nonce": nonce,
            "permissionId": int(permission_id),
        })

    async def compose_server_files_and_permission(
        self,
        account: str,
        params: ServerFilesAndPermissionParams,
        grant_url: str,
    ) -> TypedMessage:
        warn_if_gateway_url(grant_url)
        nonce = await self._nonces.get_nonce(account, NonceFamily.PERMISSIONS)
        grantee_id = await self.resolve_grantee_id(params.grantee)
        return self._build(OperationKind.SERVER_FILES_AND_PERMISSION, DATA_PORTABILITY_PERMISSIONS, {
            "nonce": nonce,
            "granteeId": grantee_id,
            "grant": grant_url,
            "fileUrls": list(params.file_urls),
            "schemaIds": [int(s) for s in params.schema_ids],
            "serverAddress": params.server_address,
            "serverUrl": params.server_url,
            "serverPublicKey": params.server_public_key,
            "filePermissions": [
                [{"account": p.account, "key": p.key} for p in per_file]
                for per_file in params.file_permissions
            ],
        })

    # -------------------------------------------------------------------------
    # Servers family
    # -------------------------------------------------------------------------

    async def compose_trust_server(self, account: str, server_id: int) -> TypedMessage:
        nonce = await self._nonces.get_nonce(account, NonceFamily.SERVERS)
        return self._build(OperationKind.TRUST_SERVER, DATA_PORTABILITY_SERVERS, {
            "nonce": nonce,
            "serverId": int(server_id),
        })

    async def compose_untrust_server(self, account: str, server_id: int) -> TypedMessage:
        nonce = await self._nonces.get_nonce(account, NonceFamily.SERVERS)
        return self._build(OperationKind.UNTRUST_SERVER, DATA_PORTABILITY_SERVERS, {
            "nonce": nonce,
            "serverId": int(server_id),
        })

    async def compose_add_and_trust_server(self, account: str, params: AddAndTrustServerParams) -> TypedMessage:
        nonce = await self._nonces.get_nonce(account, NonceFamily.SERVERS)
        return self._build(OperationKind.ADD_AND_TRUST_SERVER, DATA_PORTABILITY_SERVERS, {
            "nonce": nonce,
            "serverAddress": params.server_address,
            "publicKey": params.public_key,
            "serverUrl": params.server_url,
        })

"""
Permissions Controller

Public entry point for permission grants, revocations, server trust and the
read-only queries over the permission registry.

Flow for every mutating operation:

    params -> (grant file -> storage) -> compose typed message (fresh nonce)
           -> sign (cached) -> dispatch (relayer or direct) -> TransactionResult

Operations for one account and nonce family must be submitted one at a time
by the caller: reading a nonce and submitting are not atomic.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from web3 import AsyncWeb3

from ..adapters.bases import BlobStore, LedgerClient, SigningCapability
from ..adapters.evm.abis import get_grantees_abi
from ..adapters.evm.ledger import Web3LedgerClient
from ..adapters.evm.signer import LocalAccountSigner
from ..adapters.storage import IpfsBlobStore, RelayerBlobStore
from ..clients.relayer_client import HttpRelayerClient
from ..config import DATA_PORTABILITY_GRANTEES, SDKConfig, get_private_key_from_env
from ..engine.composer import MessageComposer
from ..engine.dispatcher import Dispatcher, RelayCallback
from ..engine.exceptions import NoStorageAvailableError, NonceError, SerializationError, VanaError, reraise_or_wrap
from ..engine.nonces import NonceSource
from ..engine.poller import CancellationToken, ConfirmationPoller
from ..engine.results import TransactionResult
from ..engine.signer import SignatureCache, TypedDataSigner, resolve_signer_account
from ..grants.grant_files import GrantFileBuilder, retrieve_grant_file
from ..reads.batch_reader import BatchReader, CollectionKind, parse_grantee_info
from ..schemas.options import PollingOptions, TransactionOptions
from ..schemas.permissions import (
    AddAndTrustServerParams,
    BatchResult,
    GranteeInfo,
    GrantFile,
    GrantPermissionParams,
    PaginatedResult,
    RevokePermissionParams,
    ServerFilesAndPermissionParams,
    TrustServerParams,
    UntrustServerParams,
)
from ..schemas.typed_data import TypedMessage
from ..utils import logger


M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")


def _coerce(model: Type[M], params: Union[M, Dict[str, Any]]) -> M:
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(params)
    except ValidationError as e:
        raise SerializationError(f"Invalid {model.__name__}: {e}") from e


def _coerce_options(options: Union[TransactionOptions, Dict[str, Any], None]) -> Optional[TransactionOptions]:
    if options is None:
        return None
    return _coerce(TransactionOptions, options)


@dataclass
class SignedOperation:
    """A composed and signed message, ready for ``submit_signed_*``."""
    message: TypedMessage
    signature: str
    account: str
    grant_file: Optional[GrantFile] = None


@dataclass
class GrantPreview:
    """
    A validated grant that has not been stored, signed or submitted.

    Building a preview performs no wallet interaction and no storage upload.
    ``confirm()`` does both, once.
    """
    params: GrantPermissionParams
    grant_file: GrantFile
    _controller: "PermissionsController" = field(repr=False)

    @property
    def operation(self) -> str:
        return self.grant_file.operation

    @property
    def file_count(self) -> int:
        return len(self.params.files)

    @property
    def grantee(self) -> str:
        return self.grant_file.grantee

    async def confirm(
        self,
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        signed = await self._controller._sign_grant(self.params, self.grant_file)
        return await self._controller._submit(signed, options, polling, cancel)


class PermissionsController:
    """
    Grant, revoke and trust operations plus permission registry reads.

    Args:
        ledger: Chain access.
        signing: Signs typed messages for the acting account.
        config: Chain id, contract addresses, cache TTL and polling defaults.
        relayer: Relay callback; when set, submissions are gasless.
        relayer_store: Relayer-mediated grant file storage.
        blob_store: Direct grant file storage, used when no relayer store is set.
        user_address: Acting account; defaults to the signer's address.
        batch_size: Reads per multicall batch.

    Example:
        controller = PermissionsController.from_config(load_config_from_env())
        preview = await controller.prepare_grant({
            "grantee": "0x...",
            "operation": "llm_inference",
            "files": [1, 2, 3],
        })
        tx = await preview.confirm()
        event = await tx.wait_for_events()
    """

    def __init__(
        self,
        ledger: LedgerClient,
        signing: SigningCapability,
        config: Optional[SDKConfig] = None,
        relayer: Optional[RelayCallback] = None,
        relayer_store: Optional[BlobStore] = None,
        blob_store: Optional[BlobStore] = None,
        user_address: Optional[str] = None,
        batch_size: int = 100,
    ):
        self.config = config or SDKConfig()
        self.ledger = ledger
        self.signing = signing
        self.user_address = user_address
        self._owned_clients: List[Any] = []

        address_of = self.config.contract_address
        self.nonces = NonceSource(ledger, address_of)
        self.composer = MessageComposer(ledger, self.nonces, self.config.chain_id, address_of)
        self.signer = TypedDataSigner(signing, SignatureCache(ttl=self.config.signature_cache_ttl))
        poller = ConfirmationPoller(relayer, self.config.polling) if relayer is not None else None
        self.dispatcher = Dispatcher(ledger, address_of, relayer, poller)
        self.grant_files = GrantFileBuilder(relayer_store=relayer_store, blob_store=blob_store)
        self.reader = BatchReader(ledger, address_of, batch_size=batch_size)
        self._address_of = address_of

    @classmethod
    def from_config(
        cls,
        config: SDKConfig,
        private_key: Optional[str] = None,
        signing: Optional[SigningCapability] = None,
    ) -> "PermissionsController":
        """
        Wire the default adapters: ``Web3LedgerClient``, ``LocalAccountSigner``,
        and ``HttpRelayerClient`` / ``IpfsBlobStore`` when their URLs are set.
        """
        key = private_key or get_private_key_from_env()
        ledger = Web3LedgerClient(config.resolved_rpc_url(), private_key=key, request_timeout=config.request_timeout)
        signing = signing or LocalAccountSigner(key)

        relayer = None
        relayer_store = None
        if config.relayer_url:
            relayer = HttpRelayerClient(config.relayer_url, timeout=config.request_timeout)
            relayer_store = RelayerBlobStore(relayer)
        blob_store = None
        if config.ipfs_upload_url:
            blob_store = IpfsBlobStore(config.ipfs_upload_url, config.ipfs_api_key, timeout=config.request_timeout)

        controller = cls(
            ledger,
            signing,
            config=config,
            relayer=relayer,
            relayer_store=relayer_store,
            blob_store=blob_store,
        )
        controller._owned_clients.append(ledger)
        if relayer is not None:
            controller._owned_clients.append(relayer)
        return controller

    async def close(self) -> None:
        """Drop cached signatures and close the ledger and HTTP clients this controller created."""
        self.signer.cache.clear()
        for client in self._owned_clients:
            await client.aclose()
        self._owned_clients.clear()

    async def __aenter__(self) -> "PermissionsController":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # =========================================================================
    # Internal flow
    # =========================================================================

    async def _account(self) -> str:
        return await resolve_signer_account(self.signing, self.user_address)

    async def _compose(self, compose: Callable[[], Awaitable[TypedMessage]]) -> TypedMessage:
        """Compose with one fresh-nonce retry on a failed nonce read."""
        try:
            return await compose()
        except NonceError as e:
            logger.warning(f"Nonce read failed, retrying once: {e.message}")
            return await compose()

    async def _sign(self, account: str, message: TypedMessage, grant_file: Optional[GrantFile] = None) -> SignedOperation:
        signature = await self.signer.sign(account, message)
        return SignedOperation(message=message, signature=signature, account=account, grant_file=grant_file)

    async def _submit(
        self,
        signed: SignedOperation,
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        return await self.dispatcher.submit(
            signed.message,
            signed.signature,
            signed.account,
            _coerce_options(options),
            polling,
            cancel,
        )

    async def _sign_grant(self, params: GrantPermissionParams, grant_file: GrantFile) -> SignedOperation:
        grant_url = await self.grant_files.resolve_url(grant_file, params.grant_url)
        account = await self._account()
        message = await self._compose(
            lambda: self.composer.compose_grant(account, params.grantee, grant_url, params.files)
        )
        return await self._sign(account, message, grant_file)

    def _check_storage(self, grant_url: Optional[str]) -> None:
        if not grant_url and not self.grant_files.can_store():
            # fail before any signing or nonce read
            raise NoStorageAvailableError()

    # =========================================================================
    # Grants
    # =========================================================================

    async def prepare_grant(self, params: Union[GrantPermissionParams, Dict[str, Any]]) -> GrantPreview:
        """
        Validate a grant and build its grant file without side effects.

        Raises:
            SerializationError: Invalid parameters or grant file.
            NoStorageAvailableError: No grant URL given and nowhere to store one.
        """
        grant = _coerce(GrantPermissionParams, params)
        grant_file = self.grant_files.build(grant.grantee, grant.operation, grant.parameters, grant.expires_at)
        self._check_storage(grant.grant_url)
        return GrantPreview(params=grant, grant_file=grant_file, _controller=self)

    async def grant(
        self,
        params: Union[GrantPermissionParams, Dict[str, Any]],
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        """Store the grant file, sign and submit in one call."""
        preview = await self.prepare_grant(params)
        return await preview.confirm(options, polling, cancel)

    async def create_and_sign_grant(self, params: Union[GrantPermissionParams, Dict[str, Any]]) -> SignedOperation:
        """Store and sign a grant without submitting it."""
        preview = await self.prepare_grant(params)
        return await self._sign_grant(preview.params, preview.grant_file)

    async def submit_signed_grant(
        self,
        signed: SignedOperation,
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        return await self._submit(signed, options, polling, cancel)

    async def revoke(
        self,
        params: Union[RevokePermissionParams, Dict[str, Any], int],
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        """Revoke a permission by id. Expected event: ``PermissionRevoked``."""
        if isinstance(params, int):
            params = {"permission_id": params}
        revoke = _coerce(RevokePermissionParams, params)
        account = await self._account()
        message = await self._compose(lambda: self.composer.compose_revoke(account, revoke.permission_id))
        return await self._submit(await self._sign(account, message), options, polling, cancel)

    async def submit_server_files_and_permissions(
        self,
        params: Union[ServerFilesAndPermissionParams, Dict[str, Any]],
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        """
        Register files, trust a server and grant a permission with one
        signature. Expected event: ``PermissionAdded``.
        """
        sfap = _coerce(ServerFilesAndPermissionParams, params)
        grant_file = self.grant_files.build(sfap.grantee, sfap.operation, sfap.parameters, sfap.expires_at)
        self._check_storage(sfap.grant_url)
        grant_url = await self.grant_files.resolve_url(grant_file, sfap.grant_url)
        account = await self._account()
        message = await self._compose(
            lambda: self.composer.compose_server_files_and_permission(account, sfap, grant_url)
        )
        return await self._submit(await self._sign(account, message, grant_file), options, polling, cancel)

    # =========================================================================
    # Server trust
    # =========================================================================

    async def trust_server(
        self,
        params: Union[TrustServerParams, Dict[str, Any], int],
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        if isinstance(params, int):
            params = {"server_id": params}
        trust = _coerce(TrustServerParams, params)
        account = await self._account()
        message = await self._compose(lambda: self.composer.compose_trust_server(account, trust.server_id))
        return await self._submit(await self._sign(account, message), options, polling, cancel)

    async def untrust_server(
        self,
        params: Union[UntrustServerParams, Dict[str, Any], int],
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        if isinstance(params, int):
            params = {"server_id": params}
        untrust = _coerce(UntrustServerParams, params)
        account = await self._account()
        message = await self._compose(lambda: self.composer.compose_untrust_server(account, untrust.server_id))
        return await self._submit(await self._sign(account, message), options, polling, cancel)

    async def add_and_trust_server(
        self,
        params: Union[AddAndTrustServerParams, Dict[str, Any]],
        options: Union[TransactionOptions, Dict[str, Any], None] = None,
        polling: Optional[PollingOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TransactionResult:
        """
        Register a server and trust it.

        Raises:
            ServerUrlMismatchError: The server address is already registered
                with a different URL.
        """
        server = _coerce(AddAndTrustServerParams, params)
        account = await self._account()
        message = await self._compose(lambda: self.composer.compose_add_and_trust_server(account, server))
        return await self._submit(await self._sign(account, message), options, polling, cancel)

    # =========================================================================
    # Reads
    # =========================================================================

    async def _owner(self, user: Optional[str]) -> str:
        return AsyncWeb3.to_checksum_address(user) if user else await self._account()

    async def _read(self, context: str, coro: Awaitable[R]) -> R:
        try:
            return await coro
        except VanaError:
            raise
        except Exception as e:
            raise reraise_or_wrap(e, context) from e

    async def get_trusted_servers(
        self,
        user: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> PaginatedResult:
        """Trusted server ids of ``user`` (default: the acting account)."""
        owner = await self._owner(user)
        return await self._read(
            "Failed to read trusted servers",
            self.reader.read_paginated(CollectionKind.TRUSTED_SERVERS, owner, offset, limit),
        )

    async def get_all_trusted_servers(self, user: Optional[str] = None) -> PaginatedResult:
        owner = await self._owner(user)
        return await self._read(
            "Failed to read trusted servers",
            self.reader.fetch_all(CollectionKind.TRUSTED_SERVERS, owner),
        )

    async def get_server_info_batch(self, server_ids: List[int]) -> BatchResult:
        """Server records; ids that cannot be read are listed in ``failed``."""
        return await self._read("Failed to read servers", self.reader.get_server_info_batch(server_ids))

    async def get_grantees(self, offset: int = 0, limit: int = 50) -> PaginatedResult:
        return await self._read(
            "Failed to read grantees",
            self.reader.read_paginated(CollectionKind.GRANTEES, None, offset, limit),
        )

    async def get_grantee_info_batch(self, grantee_ids: List[int]) -> BatchResult:
        return await self._read("Failed to read grantees", self.reader.get_grantee_info_batch(grantee_ids))

    async def get_grantee_by_address(self, address: str) -> Optional[GranteeInfo]:
        """Registered grantee for ``address``, or None if it is not registered."""
        grantee = AsyncWeb3.to_checksum_address(address)
        contract = self._address_of(DATA_PORTABILITY_GRANTEES)

        async def _lookup() -> Optional[GranteeInfo]:
            grantee_id = await self.ledger.read_contract(contract, get_grantees_abi(), "granteeAddressToId", [grantee])
            if not grantee_id:
                return None
            record = await self.ledger.read_contract(contract, get_grantees_abi(), "granteeByAddress", [grantee])
            return parse_grantee_info(int(grantee_id), record)

        return await self._read(f"Failed to read grantee {grantee}", _lookup())

    async def get_user_permission_ids(
        self,
        user: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> PaginatedResult:
        owner = await self._owner(user)
        return await self._read(
            "Failed to read permission ids",
            self.reader.read_paginated(CollectionKind.PERMISSIONS, owner, offset, limit),
        )

    async def get_user_permissions(self, user: Optional[str] = None) -> BatchResult:
        """All permission records granted by ``user``, fetched in batches."""
        ids = await self.get_user_permission_ids(user)
        details = await self._read(
            "Failed to read permissions",
            self.reader.get_permission_info_batch(ids.items),
        )
        if ids.failed:
            logger.warning(f"Skipped {len(ids.failed)} unreadable permission id slots")
        return details

    async def get_grant_file(self, grant_url: str) -> GrantFile:
        """Fetch a stored grant file, falling back to public IPFS gateways."""
        return await retrieve_grant_file(grant_url, timeout=self.config.request_timeout)

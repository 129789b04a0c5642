from .exceptions import (
    VanaError,
    RelayerError,
    UserRejectedRequestError,
    InvalidConfigurationError,
    ContractNotFoundError,
    BlockchainError,
    SerializationError,
    SignatureError,
    NetworkError,
    NonceError,
    ServerUrlMismatchError,
    TransactionPendingError,
    PollingCancelledError,
    NoStorageAvailableError,
    GrantValidationError,
    GrantSchemaError,
    GrantExpiredError,
    GranteeMismatchError,
    OperationNotAllowedError,
    reraise_or_wrap,
)
from .nonces import NonceSource
from .signer import SignatureCache, TypedDataSigner, resolve_signer_account
from .poller import CancellationToken, ConfirmationPoller, PollOutcome
from .results import OPERATIONS, OperationSpec, TransactionResult, resolve_expected_event
from .composer import MessageComposer
from .dispatcher import Dispatcher, build_contract_args

__all__ = [
    "VanaError",
    "RelayerError",
    "UserRejectedRequestError",
    "InvalidConfigurationError",
    "ContractNotFoundError",
    "BlockchainError",
    "SerializationError",
    "SignatureError",
    "NetworkError",
    "NonceError",
    "ServerUrlMismatchError",
    "TransactionPendingError",
    "PollingCancelledError",
    "NoStorageAvailableError",
    "GrantValidationError",
    "GrantSchemaError",
    "GrantExpiredError",
    "GranteeMismatchError",
    "OperationNotAllowedError",
    "reraise_or_wrap",
    "NonceSource",
    "SignatureCache",
    "TypedDataSigner",
    "resolve_signer_account",
    "CancellationToken",
    "ConfirmationPoller",
    "PollOutcome",
    "OPERATIONS",
    "OperationSpec",
    "TransactionResult",
    "resolve_expected_event",
    "MessageComposer",
    "Dispatcher",
    "build_contract_args",
]

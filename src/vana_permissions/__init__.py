"""
vana_permissions

Signed permission grants and server trust for the Vana data portability
contracts, submitted directly or through a gas-sponsoring relayer.
"""

from .engine import (
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
    CancellationToken,
    TransactionResult,
)
from .config import SDKConfig, load_config_from_env, get_chain_config, get_contract_address
from .controllers import PermissionsController, GrantPreview, SignedOperation
from .utils import setup_logger

__version__ = "0.1.0"

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
    "CancellationToken",
    "TransactionResult",
    "SDKConfig",
    "load_config_from_env",
    "get_chain_config",
    "get_contract_address",
    "PermissionsController",
    "GrantPreview",
    "SignedOperation",
    "setup_logger",
]

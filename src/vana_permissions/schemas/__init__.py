from .bases import CanonicalModel, OperationStatus, NonceFamily
from .options import (
    Eip1559Pricing,
    LegacyPricing,
    UnspecifiedPricing,
    GasPricingStrategy,
    TransactionOptions,
    PollingOptions,
)
from .typed_data import EIP712Domain, OperationKind, TypedMessage
from .relayer import (
    SignedRelayerRequest,
    DirectRelayerRequest,
    StatusCheckRequest,
    SubmittedResponse,
    ConfirmedResponse,
    LegacySignedResponse,
    PendingResponse,
    ErrorResponse,
    DirectResponse,
    RelayerRequest,
    RelayerResponse,
    parse_relayer_response,
)
from .permissions import (
    GrantPermissionParams,
    RevokePermissionParams,
    TrustServerParams,
    UntrustServerParams,
    AddAndTrustServerParams,
    FilePermission,
    ServerFilesAndPermissionParams,
    GrantFile,
    ServerInfo,
    GranteeInfo,
    PermissionInfo,
    PaginatedResult,
    BatchResult,
)

__all__ = [
    "CanonicalModel",
    "OperationStatus",
    "NonceFamily",
    "Eip1559Pricing",
    "LegacyPricing",
    "UnspecifiedPricing",
    "GasPricingStrategy",
    "TransactionOptions",
    "PollingOptions",
    "EIP712Domain",
    "OperationKind",
    "TypedMessage",
    "SignedRelayerRequest",
    "DirectRelayerRequest",
    "StatusCheckRequest",
    "SubmittedResponse",
    "ConfirmedResponse",
    "LegacySignedResponse",
    "PendingResponse",
    "ErrorResponse",
    "DirectResponse",
    "RelayerRequest",
    "RelayerResponse",
    "parse_relayer_response",
    "GrantPermissionParams",
    "RevokePermissionParams",
    "TrustServerParams",
    "UntrustServerParams",
    "AddAndTrustServerParams",
    "FilePermission",
    "ServerFilesAndPermissionParams",
    "GrantFile",
    "ServerInfo",
    "GranteeInfo",
    "PermissionInfo",
    "PaginatedResult",
    "BatchResult",
]

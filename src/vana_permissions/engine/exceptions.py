"""
Exception and Error Definitions Module

Defines the exception hierarchy for permission grants, server trust
operations, relayer dispatch and blockchain interactions. Every exception
inherits from VanaError so callers can catch the whole family at once while
still branching on the concrete kind.

Exception Hierarchy:
    VanaError (root)
    ├── UserRejectedRequestError      terminal, never retried
    ├── SignatureError                may be retried
    ├── SerializationError            caller must fix input
    │   └── GrantValidationError
    │       ├── GrantSchemaError
    │       ├── GrantExpiredError
    │       ├── GranteeMismatchError
    │       └── OperationNotAllowedError
    ├── NonceError                    transient, refresh and retry
    ├── RelayerError                  never auto-retried
    ├── NetworkError                  safe to retry with backoff
    ├── BlockchainError               catch-all, wraps the cause
    ├── ServerUrlMismatchError        parsed contract revert
    ├── TransactionPendingError       poller budget exhausted, resumable
    ├── PollingCancelledError
    ├── NoStorageAvailableError
    ├── InvalidConfigurationError
    └── ContractNotFoundError
"""

from typing import Any, Dict, Optional


class VanaError(Exception):
    """
    Root exception class for all SDK exceptions.

    Attributes:
        code: Stable machine-readable error code (e.g. ``"RELAYER_ERROR"``).
    """

    code: str = "VANA_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class RelayerError(VanaError):
    """
    Raised when the relayer explicitly reports failure or answers with a
    response shape the dispatcher does not recognise.

    Never retried automatically: the relayer may already have submitted the
    transaction, so a blind retry could double-submit.

    Attributes:
        status_code: HTTP status when the relayer is reached over HTTP.
        response: Raw relayer payload for diagnostics.
    """

    code = "RELAYER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class UserRejectedRequestError(VanaError):
    """Raised when the signer declines a signing or transaction request."""

    code = "USER_REJECTED_REQUEST"

    def __init__(self, message: str = "User rejected the signature request") -> None:
        super().__init__(message)


class InvalidConfigurationError(VanaError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Unsupported chain id
    - Missing RPC URL
    - Conflicting gas pricing options
    """

    code = "INVALID_CONFIGURATION"


class ContractNotFoundError(VanaError):
    """Raised when no address is known for a contract on a chain."""

    code = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_name: str, chain_id: int) -> None:
        super().__init__(f"Contract {contract_name} not found on chain {chain_id}")
        self.contract_name = contract_name
        self.chain_id = chain_id


class BlockchainError(VanaError):
    """
    Catch-all for contract-level failures, missing expected events and
    unexpected exceptions.

    Attributes:
        original_error: The exception that caused this error, if any.
    """

    code = "BLOCKCHAIN_ERROR"

    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class SerializationError(VanaError):
    """Raised when a payload fails validation or cannot be canonicalized."""

    code = "SERIALIZATION_ERROR"


class SignatureError(VanaError):
    """Raised when signing fails for a reason other than user rejection."""

    code = "SIGNATURE_ERROR"

    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class NetworkError(VanaError):
    """Raised on transport failures talking to the relayer or storage."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class NonceError(VanaError):
    """Raised when the current replay counter cannot be read."""

    code = "NONCE_ERROR"

    def __init__(self, message: str, original_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_error = original_error


class ServerUrlMismatchError(VanaError):
    """
    Raised when a server is already registered with a different URL.

    Derived from the ``ServerUrlMismatch`` contract revert.

    Attributes:
        existing_url: URL currently stored on-chain.
        provided_url: URL the caller attempted to register.
        server_id: Server identifier (address or numeric id).
    """

    code = "SERVER_URL_MISMATCH"

    def __init__(self, existing_url: str, provided_url: str, server_id: str) -> None:
        super().__init__(
            f'Server {server_id} is already registered with URL "{existing_url}". '
            f'Cannot change to "{provided_url}".'
        )
        self.existing_url = existing_url
        self.provided_url = provided_url
        self.server_id = server_id


class TransactionPendingError(VanaError):
    """
    Raised when a relayer operation did not confirm within the polling budget.

    The operation is still pending on the relayer side. Callers may resume
    polling later with the same ``operation_id``.
    """

    code = "TRANSACTION_PENDING"

    def __init__(
        self,
        operation_id: str,
        message: str,
        last_status: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"Operation {operation_id} still pending: {message}")
        self.operation_id = operation_id
        self.last_status = last_status


class PollingCancelledError(VanaError):
    """Raised when a caller cancels polling through its cancellation token."""

    code = "POLLING_CANCELLED"

    def __init__(self, operation_id: str) -> None:
        super().__init__(f"Polling cancelled for operation {operation_id}")
        self.operation_id = operation_id


class NoStorageAvailableError(VanaError):
    """Raised when a grant file needs storing but no storage path is configured."""

    code = "NO_STORAGE"

    def __init__(
        self,
        message: str = (
            "No storage available. Provide a grant_url, configure a relayer, "
            "or provide a blob store."
        ),
    ) -> None:
        super().__init__(message)


class GrantValidationError(SerializationError):
    """
    Base class for grant file validation failures.

    Attributes:
        details: Structured information about the failure.
    """

    code = "GRANT_VALIDATION_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}


class GrantSchemaError(GrantValidationError):
    """Raised when a grant file does not match the grant file schema."""

    def __init__(self, message: str, schema_errors: list, invalid_data: Any) -> None:
        super().__init__(message, {"errors": schema_errors, "data": invalid_data})
        self.schema_errors = schema_errors
        self.invalid_data = invalid_data


class GrantExpiredError(GrantValidationError):
    """Raised when a grant file's ``expires`` timestamp has passed."""

    def __init__(self, message: str, expires: int, current_time: int) -> None:
        super().__init__(message, {"expires": expires, "current_time": current_time})
        self.expires = expires
        self.current_time = current_time


class GranteeMismatchError(GrantValidationError):
    """Raised when the requesting address is not the grant's grantee."""

    def __init__(self, message: str, grantee: str, requesting_address: str) -> None:
        super().__init__(message, {"grantee": grantee, "requesting_address": requesting_address})
        self.grantee = grantee
        self.requesting_address = requesting_address


class OperationNotAllowedError(GrantValidationError):
    """Raised when the requested operation differs from the granted one."""

    def __init__(self, message: str, granted_operation: str, requested_operation: str) -> None:
        super().__init__(
            message,
            {"granted_operation": granted_operation, "requested_operation": requested_operation},
        )
        self.granted_operation = granted_operation
        self.requested_operation = requested_operation


def reraise_or_wrap(error: BaseException, context: str) -> VanaError:
    """
    Apply the propagation policy to a caught exception.

    Known ``VanaError`` instances are returned unchanged so the caller can
    ``raise`` them as-is; anything else is wrapped exactly once in a
    ``BlockchainError`` that keeps the original cause.

    Args:
        error: The caught exception.
        context: Short description of the failing step, used as the
            message prefix for wrapped errors.

    Returns:
        The exception to raise.
    """
    if isinstance(error, VanaError):
        return error
    return BlockchainError(f"{context}: {error}", error)

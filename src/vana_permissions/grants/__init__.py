from .grant_files import (
    GrantFileBuilder,
    build_grant_file,
    get_grant_file_hash,
    serialize_grant_file,
    retrieve_grant_file,
    extract_ipfs_hash,
    is_gateway_url,
)
from .validation import (
    GrantValidationIssue,
    GrantValidationResult,
    validate_grant,
    validate_grant_file_schema,
    validate_grantee_access,
    validate_grant_expiry,
    validate_operation_access,
)

__all__ = [
    "GrantFileBuilder",
    "build_grant_file",
    "get_grant_file_hash",
    "serialize_grant_file",
    "retrieve_grant_file",
    "extract_ipfs_hash",
    "is_gateway_url",
    "GrantValidationIssue",
    "GrantValidationResult",
    "validate_grant",
    "validate_grant_file_schema",
    "validate_grantee_access",
    "validate_grant_expiry",
    "validate_operation_access",
]

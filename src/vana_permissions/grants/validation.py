"""
Grant File Validation

Schema validation of raw grant file payloads plus the business rules a
server applies before acting on a grant: the requester must be the grantee,
the grant must not have expired, and the requested operation must be the
granted one.

Validation runs schema checks first; business checks only run when the
schema is satisfied.
"""

import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from pydantic import ValidationError
from web3 import AsyncWeb3

from ..engine.exceptions import (
    GrantExpiredError,
    GrantSchemaError,
    GranteeMismatchError,
    GrantValidationError,
    OperationNotAllowedError,
)
from ..schemas.permissions import GrantFile


@dataclass
class GrantValidationIssue:
    """One failed check."""
    type: str  # "schema" or "business"
    message: str
    field: Optional[str] = None
    error: Optional[GrantValidationError] = None


@dataclass
class GrantValidationResult:
    """Outcome of ``validate_grant`` in non-throwing mode."""
    valid: bool
    errors: List[GrantValidationIssue] = field(default_factory=list)
    grant: Optional[GrantFile] = None


def validate_grant_file_schema(data: Any) -> GrantFile:
    """
    Validate a raw payload against the grant file schema.

    Raises:
        GrantSchemaError: With pydantic's error list and the offending data.
    """
    if isinstance(data, GrantFile):
        return data
    if not isinstance(data, dict):
        raise GrantSchemaError("Invalid grant file schema: expected an object", [], data)
    try:
        return GrantFile.model_validate(data)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise GrantSchemaError("Invalid grant file schema", errors, data) from e


def validate_grantee_access(grant_file: GrantFile, requesting_address: str) -> None:
    """
    Raises:
        GranteeMismatchError: If ``requesting_address`` is not the grantee.
    """
    try:
        matches = AsyncWeb3.to_checksum_address(grant_file.grantee) == AsyncWeb3.to_checksum_address(requesting_address)
    except (ValueError, TypeError):
        # malformed requesting address can never be the grantee
        matches = False
    if not matches:
        raise GranteeMismatchError(
            "Permission denied: requesting address does not match grantee",
            grant_file.grantee,
            requesting_address,
        )


def validate_grant_expiry(grant_file: GrantFile, current_time: Optional[int] = None) -> None:
    """
    Raises:
        GrantExpiredError: If ``current_time`` (default: now) is past ``expires``.
    """
    if grant_file.expires:
        now = current_time if current_time is not None else int(time.time())
        if now > grant_file.expires:
            raise GrantExpiredError("Permission denied: grant has expired", grant_file.expires, now)


def validate_operation_access(grant_file: GrantFile, requested_operation: str) -> None:
    """
    Raises:
        OperationNotAllowedError: If the operations differ.
    """
    if grant_file.operation != requested_operation:
        raise OperationNotAllowedError(
            "Permission denied: operation not allowed by grant",
            grant_file.operation,
            requested_operation,
        )


_FIELD_BY_ERROR = {
    GrantExpiredError: "expires",
    GranteeMismatchError: "grantee",
    OperationNotAllowedError: "operation",
}


def validate_grant(
    data: Any,
    grantee: Optional[str] = None,
    operation: Optional[str] = None,
    current_time: Optional[int] = None,
    throw_on_error: bool = True,
) -> Union[GrantFile, GrantValidationResult]:
    """
    Validate a grant file's schema and business rules.

    Args:
        data: Raw grant file payload (dict) or a ``GrantFile``.
        grantee: Requesting address; checked against the grant's grantee.
        operation: Requested operation; checked against the granted one.
        current_time: Unix timestamp override for the expiry check.
        throw_on_error: Raise the first failure (default) instead of
            returning a ``GrantValidationResult``.

    Returns:
        The validated ``GrantFile`` when ``throw_on_error`` is True, else a
        ``GrantValidationResult`` listing every failed check.

    Raises:
        GrantSchemaError, GranteeMismatchError, GrantExpiredError,
        OperationNotAllowedError: In throwing mode, the first failure.

    Example:
        grant = validate_grant(data, grantee="0x123...", operation="llm_inference")

        result = validate_grant(data, grantee="0x123...", throw_on_error=False)
        if not result.valid:
            print([e.message for e in result.errors])
    """
    issues: List[GrantValidationIssue] = []
    grant: Optional[GrantFile] = None

    try:
        grant = validate_grant_file_schema(data)
    except GrantSchemaError as e:
        issues.append(GrantValidationIssue(type="schema", message=e.message, error=e))

    if grant is not None:
        checks = []
        if grantee:
            checks.append(lambda g: validate_grantee_access(g, grantee))
        checks.append(lambda g: validate_grant_expiry(g, current_time))
        if operation:
            checks.append(lambda g: validate_operation_access(g, operation))

        for check in checks:
            try:
                check(grant)
            except GrantValidationError as e:
                issues.append(GrantValidationIssue(
                    type="business",
                    message=e.message,
                    field=_FIELD_BY_ERROR.get(type(e)),
                    error=e,
                ))

    if throw_on_error:
        if issues:
            raise issues[0].error
        return grant
    return GrantValidationResult(valid=not issues, errors=issues, grant=grant)

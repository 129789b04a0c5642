"""
Permission, server and grantee schemas.

Operation parameter models validate caller input before anything is signed.
Record models are read-only projections of on-chain state.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator, model_validator
from web3 import AsyncWeb3

from .bases import CanonicalModel


MAX_UINT256 = 2 ** 256 - 1

T = TypeVar("T")


def _checksum(value: str) -> str:
    if not AsyncWeb3.is_address(value):
        raise ValueError(f"Invalid EVM address: {value}")
    return AsyncWeb3.to_checksum_address(value)


# ---------------------------------------------------------------------------
# Operation parameters
# ---------------------------------------------------------------------------

class GrantPermissionParams(CanonicalModel):
    """
    Input for a permission grant.

    Only ``grant_url`` and the grant file hash ever reach the chain; the
    operation, parameters and expiry live in the off-chain grant file.

    Attributes:
        grantee: Account receiving access; resolved to its registered grantee id.
        operation: Operation tag the grantee may perform (e.g. ``"llm_inference"``).
        files: On-chain file ids covered by the grant.
        parameters: Operation-specific parameters stored in the grant file.
        grant_url: Pre-stored grant file URL; skips storage when set.
        expires_at: Optional unix timestamp written into the grant file.
    """
    grantee: str
    operation: str = Field(..., min_length=1)
    files: List[int] = Field(default_factory=list)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    grant_url: Optional[str] = None
    expires_at: Optional[int] = Field(default=None, ge=0)

    @field_validator("grantee")
    @classmethod
    def _validate_grantee(cls, v: str) -> str:
        return _checksum(v)

    @field_validator("files")
    @classmethod
    def _validate_files(cls, v: List[int]) -> List[int]:
        if any(f < 0 for f in v):
            raise ValueError("File ids must be non-negative")
        return v


class RevokePermissionParams(CanonicalModel):
    permission_id: int = Field(..., ge=0)


class TrustServerParams(CanonicalModel):
    server_id: int = Field(..., ge=0)


class UntrustServerParams(CanonicalModel):
    server_id: int = Field(..., ge=0)


class AddAndTrustServerParams(CanonicalModel):
    """Register a new server and trust it in one signed operation."""
    server_address: str
    server_url: str = Field(..., min_length=1)
    public_key: str = Field(..., min_length=1)

    @field_validator("server_address")
    @classmethod
    def _validate_address(cls, v: str) -> str:
        return _checksum(v)


class FilePermission(CanonicalModel):
    """Encrypted key share granting ``account`` access to one file."""
    account: str
    key: str

    @field_validator("account")
    @classmethod
    def _validate_account(cls, v: str) -> str:
        return _checksum(v)


class ServerFilesAndPermissionParams(CanonicalModel):
    """
    Register files, trust a server and grant a permission in one signature.

    ``schema_ids`` and ``file_permissions`` are parallel to ``file_urls``;
    use schema id 0 for files without a schema.
    """
    grantee: str
    operation: str = Field(..., min_length=1)
    file_urls: List[str]
    schema_ids: List[int]
    server_address: str
    server_url: str
    server_public_key: str
    file_permissions: List[List[FilePermission]]
    parameters: Dict[str, Any] = Field(default_factory=dict)
    grant_url: Optional[str] = None
    expires_at: Optional[int] = Field(default=None, ge=0)

    @field_validator("grantee", "server_address")
    @classmethod
    def _validate_addresses(cls, v: str) -> str:
        return _checksum(v)

    @model_validator(mode="after")
    def _check_parallel_arrays(self) -> "ServerFilesAndPermissionParams":
        if len(self.schema_ids) != len(self.file_urls):
            raise ValueError(
                f"schemaIds array length ({len(self.schema_ids)}) must match "
                f"fileUrls array length ({len(self.file_urls)})"
            )
        if len(self.file_permissions) != len(self.file_urls):
            raise ValueError(
                f"filePermissions array length ({len(self.file_permissions)}) must match "
                f"fileUrls array length ({len(self.file_urls)})"
            )
        return self


# ---------------------------------------------------------------------------
# Grant file
# ---------------------------------------------------------------------------

class GrantFile(CanonicalModel):
    """
    Off-chain grant payload. Its storage URL is the ``grant`` field of the
    signed message.
    """
    grantee: StrictStr = Field(..., pattern=r"^0x[a-fA-F0-9]{40}$")
    operation: StrictStr = Field(..., min_length=1)
    parameters: Dict[str, Any]
    expires: Optional[StrictInt] = Field(default=None, ge=0)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# On-chain records
# ---------------------------------------------------------------------------

class ServerInfo(CanonicalModel):
    id: int
    owner: str
    server_address: str
    public_key: str
    url: str


class GranteeInfo(CanonicalModel):
    id: int
    owner: str
    address: str
    public_key: str
    permission_ids: List[int] = Field(default_factory=list)


class PermissionInfo(CanonicalModel):
    """
    On-chain permission record.

    ``is_active`` means "has no expiration" (``end_block`` is 0 or max
    uint256). It is not compared with the current block height: any finite
    ``end_block`` reports inactive, past or future. Callers needing
    "currently valid" compare ``end_block`` with the chain head themselves.
    """
    id: int
    grantor: str
    nonce: int
    grantee_id: int
    grant: str
    start_block: int
    end_block: int
    file_ids: List[int] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.end_block in (0, MAX_UINT256)


class PaginatedResult(BaseModel, Generic[T]):
    """One page of a collection plus the collection size."""
    items: List[T]
    total_count: int
    offset: int
    limit: int
    has_more: bool
    failed: List[int] = Field(default_factory=list, description="Indexes whose read failed")


class BatchResult(BaseModel, Generic[T]):
    """Fan-out read outcome with per-item failure isolation."""
    items: List[T] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list, description="Ids whose read failed")

"""
Grant File Builder

Builds the off-chain grant payload, computes its content hash, stores it,
and fetches it back from IPFS or HTTP storage.

Only the storage URL of a grant file is recorded on-chain; its parameters
never are.
"""

import json
import re
from typing import Any, Dict, Optional

import httpx
from eth_utils import keccak

from ..adapters.bases import BlobStore
from ..engine.exceptions import GrantValidationError, NetworkError, NoStorageAvailableError
from ..schemas.permissions import GrantFile
from ..utils import logger
from .validation import validate_grant_file_schema


IPFS_GATEWAYS = (
    "https://gateway.pinata.cloud/ipfs/",
    "https://ipfs.io/ipfs/",
    "https://dweb.link/ipfs/",
)

_IPFS_HASH_PATTERN = re.compile(r"(?:^ipfs://|/ipfs/)([A-Za-z0-9]+)")


def build_grant_file(
    grantee: str,
    operation: str,
    parameters: Dict[str, Any],
    expires: Optional[int] = None,
) -> GrantFile:
    """
    Assemble and validate a grant file.

    Raises:
        GrantSchemaError: If any field is missing or malformed.
    """
    data: Dict[str, Any] = {"grantee": grantee, "operation": operation, "parameters": parameters}
    if expires is not None:
        data["expires"] = expires
    return validate_grant_file_schema(data)


def _sort_keys(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _sort_keys(obj[k]) for k in sorted(obj)}
    if isinstance(obj, list):
        return [_sort_keys(item) for item in obj]
    return obj


def get_grant_file_hash(grant_file: GrantFile) -> str:
    """
    Content hash of a grant file for integrity checks.

    The hashed JSON keeps the field order ``grantee, operation, parameters,
    expires`` with ``parameters`` keys sorted recursively, compact separators.

    Returns:
        str: 0x-prefixed keccak256 hex digest.
    """
    stable: Dict[str, Any] = {
        "grantee": grant_file.grantee,
        "operation": grant_file.operation,
        "parameters": _sort_keys(grant_file.parameters),
    }
    if grant_file.expires is not None:
        stable["expires"] = grant_file.expires
    payload = json.dumps(stable, separators=(",", ":"), ensure_ascii=False)
    return "0x" + keccak(text=payload).hex()


def serialize_grant_file(grant_file: GrantFile) -> bytes:
    """JSON bytes uploaded to storage."""
    return json.dumps(grant_file.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")


def is_gateway_url(url: str) -> bool:
    return url.startswith("http") and "/ipfs/" in url


def warn_if_gateway_url(url: str) -> None:
    if is_gateway_url(url):
        logger.warning(
            f"Grant URL uses HTTP gateway format instead of ipfs:// protocol. "
            f"Found: {url}. Consider using ipfs:// format for protocol-agnostic storage."
        )


def extract_ipfs_hash(url: str) -> Optional[str]:
    match = _IPFS_HASH_PATTERN.search(url)
    return match.group(1) if match else None


async def _fetch_grant_file(client: httpx.AsyncClient, url: str) -> Optional[GrantFile]:
    try:
        response = await client.get(url)
        if response.status_code >= 400:
            logger.warning(f"Fetching grant file from {url} returned HTTP {response.status_code}")
            return None
        return validate_grant_file_schema(response.json())
    except (httpx.HTTPError, ValueError, GrantValidationError) as e:
        logger.warning(f"Fetching grant file from {url} failed: {e}")
        return None


async def retrieve_grant_file(
    grant_url: str,
    timeout: float = 10.0,
    client: Optional[httpx.AsyncClient] = None,
) -> GrantFile:
    """
    Fetch and validate a grant file.

    HTTP(S) URLs are fetched directly first. IPFS URLs (``ipfs://<cid>`` or
    a gateway URL) then fall back through public gateways in order.

    Raises:
        NetworkError: When every attempt fails.
    """
    warn_if_gateway_url(grant_url)
    ipfs_hash = extract_ipfs_hash(grant_url)

    candidates = []
    if grant_url.startswith("http"):
        candidates.append(grant_url)
    if ipfs_hash:
        candidates.extend(f"{gateway}{ipfs_hash}" for gateway in IPFS_GATEWAYS)

    async def _try_all(http: httpx.AsyncClient) -> Optional[GrantFile]:
        for url in candidates:
            grant_file = await _fetch_grant_file(http, url)
            if grant_file is not None:
                return grant_file
        return None

    if client is not None:
        result = await _try_all(client)
    else:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as http:
            result = await _try_all(http)

    if result is None:
        raise NetworkError(
            f"Failed to retrieve grant file from {grant_url}. "
            f"Tried direct fetch{' and IPFS gateways' if ipfs_hash else ''}."
        )
    return result


class GrantFileBuilder:
    """
    Builds grant files and resolves where they are stored.

    Storage resolution order:
        1. a caller-supplied grant URL (nothing is uploaded)
        2. relayer-mediated storage
        3. a direct blob store
        4. otherwise ``NoStorageAvailableError``
    """

    def __init__(
        self,
        relayer_store: Optional[BlobStore] = None,
        blob_store: Optional[BlobStore] = None,
    ):
        self.relayer_store = relayer_store
        self.blob_store = blob_store

    def build(
        self,
        grantee: str,
        operation: str,
        parameters: Dict[str, Any],
        expires: Optional[int] = None,
    ) -> GrantFile:
        return build_grant_file(grantee, operation, parameters, expires)

    def can_store(self) -> bool:
        return self.relayer_store is not None or self.blob_store is not None

    async def resolve_url(self, grant_file: GrantFile, grant_url: Optional[str] = None) -> str:
        """
        Return the URL the signed message will reference, uploading if needed.

        Raises:
            NoStorageAvailableError: No URL was given and no storage is configured.
            NetworkError: The upload failed or returned no URL.
        """
        if grant_url:
            warn_if_gateway_url(grant_url)
            return grant_url

        store = self.relayer_store or self.blob_store
        if store is None:
            raise NoStorageAvailableError()

        url = await store.upload(serialize_grant_file(grant_file), "grant-file.json")
        if not url:
            raise NetworkError("Grant file storage returned an empty URL")
        warn_if_gateway_url(url)
        logger.debug(f"Stored grant file {get_grant_file_hash(grant_file)} at {url}")
        return url

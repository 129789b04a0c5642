"""
Grant file storage backends.

``IpfsBlobStore`` uploads straight to an IPFS pinning endpoint;
``RelayerBlobStore`` delegates to the relayer's upload route.
"""

from typing import Optional

import httpx

from .bases import BlobStore
from ..clients.relayer_client import HttpRelayerClient
from ..engine.exceptions import NetworkError
from ..utils import logger


class IpfsBlobStore(BlobStore):
    """
    Upload to an IPFS pinning service with a multipart ``file`` field.

    The reply is expected to carry the CID under one of ``IpfsHash``
    (Pinata), ``Hash`` (Kubo ``/api/v0/add``) or ``cid``, or a ready ``url``.
    """

    def __init__(
        self,
        upload_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.upload_url = upload_url
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    async def upload(self, data: bytes, filename: str) -> str:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        files = {"file": (filename, data, "application/json")}
        try:
            if self._client is not None:
                response = await self._client.post(self.upload_url, files=files, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.upload_url, files=files, headers=headers)
        except httpx.TransportError as e:
            raise NetworkError(f"IPFS upload failed: {e}", e) from e

        if response.status_code >= 400:
            raise NetworkError(f"IPFS upload failed: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkError("IPFS upload returned a non-JSON body", e) from e

        if body.get("url"):
            return body["url"]
        cid = body.get("IpfsHash") or body.get("Hash") or body.get("cid")
        if not cid:
            raise NetworkError("IPFS upload response did not include a CID")
        logger.debug(f"Uploaded {filename} to IPFS: {cid}")
        return f"ipfs://{cid}"


class RelayerBlobStore(BlobStore):
    """Store grant files through ``{relayer_url}/api/ipfs/upload``."""

    def __init__(self, relayer: HttpRelayerClient):
        self._relayer = relayer

    async def upload(self, data: bytes, filename: str) -> str:
        return await self._relayer.upload_grant_file(data, filename)

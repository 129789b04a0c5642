"""
HTTP Relayer Client

An ``httpx.AsyncClient`` that speaks the relayer's JSON protocol. An
instance is itself the ``relay(request) -> response`` callback expected by
the dispatcher, and also offers relayer-mediated grant file storage.
"""

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..engine.exceptions import NetworkError, RelayerError
from ..schemas.relayer import parse_relayer_response
from ..utils import logger


class HttpRelayerClient(httpx.AsyncClient):
    """
    Relayer callback over HTTP.

    Endpoints (relative to ``relayer_url``):
        - ``POST /api/relay``: body is a RelayerRequest, reply is a RelayerResponse
        - ``POST /api/ipfs/upload``: multipart ``file``, reply ``{success, url, error}``

    Fully compatible with httpx.AsyncClient and usable as an async context
    manager.

    Usage:
        ```python
        async with HttpRelayerClient("https://relayer.example.com") as relayer:
            controller = PermissionsController(ledger, signer, relayer=relayer)
        ```
    """

    def __init__(self, relayer_url: str, **kwargs):
        """
        Args:
            relayer_url: Relayer base URL; a trailing slash is ignored.
            **kwargs: All standard httpx.AsyncClient arguments (timeout, headers, etc.)
        """
        kwargs.setdefault("timeout", 30.0)
        super().__init__(**kwargs)
        self.relayer_url = relayer_url.rstrip("/")

    # =========================================================================
    # Relay
    # =========================================================================

    async def relay(self, request: Any) -> Any:
        """
        Send a relayer request and parse the tagged reply.

        Args:
            request: A RelayerRequest model or an equivalent dict.

        Returns:
            The RelayerResponse variant selected by the reply's ``type``.

        Raises:
            NetworkError: On transport failures (connection, timeout).
            RelayerError: On non-2xx replies or unrecognized reply shapes.
        """
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True) \
            if hasattr(request, "model_dump") else request
        url = f"{self.relayer_url}/api/relay"
        logger.debug(f"POST {url} type={payload.get('type')}")

        try:
            response = await self.post(url, json=payload)
        except httpx.TransportError as e:
            raise NetworkError(f"Relayer request failed: {e}", e) from e

        body = self._json_or_none(response)
        if response.status_code >= 400:
            message = (body or {}).get("error") if isinstance(body, dict) else None
            raise RelayerError(
                message or f"Relayer returned HTTP {response.status_code}",
                status_code=response.status_code,
                response=body if body is not None else response.text,
            )

        try:
            return parse_relayer_response(body)
        except ValidationError as e:
            raise RelayerError(
                "Unexpected relayer response shape",
                status_code=response.status_code,
                response=body,
            ) from e

    async def __call__(self, request: Any) -> Any:
        return await self.relay(request)

    # =========================================================================
    # Storage
    # =========================================================================

    async def upload_grant_file(self, data: bytes, filename: str = "grant-file.json") -> str:
        """
        Store grant file bytes through the relayer's IPFS endpoint.

        Returns:
            str: URL reported by the relayer (typically ``ipfs://<cid>``).

        Raises:
            NetworkError: On transport failure, non-2xx, or ``success: false``.
        """
        url = f"{self.relayer_url}/api/ipfs/upload"
        try:
            response = await self.post(url, files={"file": (filename, data, "application/json")})
        except httpx.TransportError as e:
            raise NetworkError(f"Network error while storing grant file: {e}", e) from e

        if response.status_code >= 400:
            raise NetworkError(f"Failed to store grant file: HTTP {response.status_code}")

        body = self._json_or_none(response)
        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            raise NetworkError(error or "Failed to store grant file")
        if not body.get("url"):
            raise NetworkError("Relayer upload succeeded without returning a URL")
        return body["url"]

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Optional[Any]:
        try:
            return response.json()
        except ValueError:
            return None

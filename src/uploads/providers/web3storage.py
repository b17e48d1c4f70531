"""
web3.storage secondary provider.

Stateless: every call opens its own HTTP client, no session survives
between uploads. Single files are posted as the raw request body so the
returned CID addresses the file itself (no wrapping directory);
multi-file uploads are posted as multipart and come back as one
directory CID.
"""

import logging
from typing import Optional, Sequence
from urllib.parse import quote

import httpx

from ..models import (
    DirectoryUploadResult,
    ProviderKind,
    UploadRequest,
    UploadResult,
    gateway_url,
)
from .base import ProviderAdapter, response_error_message

logger = logging.getLogger(__name__)


class Web3StorageAdapter(ProviderAdapter):
    """Secondary provider adapter (web3.storage HTTP API)."""

    kind = ProviderKind.SECONDARY
    supports_directories = True

    def __init__(
        self,
        token: str,
        endpoint: str = "https://api.web3.storage",
        gateway_host: str = "ipfs.w3s.link",
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            token: web3.storage API token
            endpoint: API base URL
            gateway_host: Subdomain gateway host for public URLs
            timeout: HTTP timeout in seconds (None = no client-side timeout)
            transport: Optional httpx transport (tests)
        """
        if not token:
            raise ValueError("web3.storage token is required")
        self.token = token
        self.endpoint = endpoint.rstrip("/")
        self.gateway_host = gateway_host
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.endpoint,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.token}"},
        )

    async def _post_upload(self, action: str, **kwargs) -> str:
        try:
            async with self._client() as client:
                response = await client.post("/upload", **kwargs)
        except httpx.HTTPError as e:
            raise self.error(f"{action} failed", e) from e

        if response.is_error:
            raise self.error(f"{action} failed: {response_error_message(response)}")

        try:
            cid = response.json()["cid"]
        except (ValueError, KeyError, TypeError) as e:
            raise self.error(f"{action} returned an unexpected response", e) from e
        return str(cid)

    async def store(self, request: UploadRequest) -> UploadResult:
        logger.info("Trying Web3Storage upload...")
        cid = await self._post_upload(
            "Web3Storage upload",
            content=request.data,
            headers={
                "Content-Type": request.content_type,
                "X-Name": quote(request.filename),
            },
        )

        logger.info(f"Web3Storage upload successful: {cid}")
        return UploadResult(
            cid=cid,
            url=gateway_url(cid, self.gateway_host, request.filename),
            size=request.size,
            name=request.filename,
            type=request.content_type,
            provider_used=self.kind,
        )

    async def store_many(self, requests: Sequence[UploadRequest]) -> DirectoryUploadResult:
        if not requests:
            raise self.error("Files list is required and must not be empty")

        logger.info(f"Trying Web3Storage directory upload ({len(requests)} files)...")
        cid = await self._post_upload(
            "Web3Storage directory upload",
            files=[("file", (r.filename, r.data, r.content_type)) for r in requests],
        )

        logger.info(f"Web3Storage directory upload successful: {cid}")
        return DirectoryUploadResult(
            cid=cid,
            url=gateway_url(cid, self.gateway_host),
            files=[r.filename for r in requests],
            provider_used=self.kind,
        )

"""
Storacha (w3up) primary provider.

Two layers:
- StorachaAgent: capability interface of a w3up agent session
  (spaces, proofs, uploads). HttpStorachaAgent is the production
  implementation talking to a w3up HTTP bridge; tests use fakes.
- StorachaAdapter: the ProviderAdapter, driven by the session that
  PrimaryLifecycleManager keeps ready.

Bridge endpoints (relative to STORACHA_ENDPOINT):
    POST   /agent                   create agent session -> {"did", "session"}
    GET    /spaces                  spaces the agent can access
    POST   /proofs                  import a delegation proof
    PUT    /spaces/current          select current space
    POST   /upload                  single file (raw body) -> {"root"}
    POST   /upload/directory        multipart files -> {"root"}
    GET    /uploads                 capability upload/list
    DELETE /uploads/{cid}           capability upload/remove
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..errors import InitError
from ..models import (
    DirectoryUploadResult,
    ProviderKind,
    UploadRecord,
    UploadRequest,
    UploadResult,
    gateway_url,
    isoformat_now,
)
from .base import ProviderAdapter, response_error_message

logger = logging.getLogger(__name__)

FileTuple = Tuple[bytes, str, str]  # (data, filename, content_type)


class StorachaAgent(ABC):
    """Capabilities of one w3up agent session."""

    @property
    @abstractmethod
    def did(self) -> str:
        """Agent DID."""
        pass

    @abstractmethod
    async def spaces(self) -> List[str]:
        """DIDs of spaces this agent can access directly."""
        pass

    @abstractmethod
    async def add_proof(self, proof: str) -> None:
        """Import a delegation proof granting access to a space."""
        pass

    @abstractmethod
    async def set_current_space(self, space_did: str) -> None:
        pass

    @abstractmethod
    def current_space(self) -> Optional[str]:
        pass

    @abstractmethod
    async def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        """Upload one file, return its root CID."""
        pass

    @abstractmethod
    async def upload_directory(self, files: Sequence[FileTuple]) -> str:
        """Upload files as a directory, return the directory CID."""
        pass

    @abstractmethod
    async def list_uploads(self) -> List[Dict[str, Any]]:
        """Raw upload/list results: {"root", "insertedAt", "shards"}."""
        pass

    @abstractmethod
    async def remove_upload(self, cid: str) -> None:
        pass

    async def close(self) -> None:
        pass


class HttpStorachaAgent(StorachaAgent):
    """
    w3up agent backed by an HTTP bridge.

    Example:
        agent = await HttpStorachaAgent.create("http://w3up-bridge:8787")
        await agent.set_current_space("did:key:z6Mk...")
        cid = await agent.upload_file(b"...", "a.png", "image/png")
    """

    def __init__(self, client: httpx.AsyncClient, did: str, session: str):
        self._client = client
        self._did = did
        self._session = session
        self._current_space: Optional[str] = None

    @classmethod
    async def create(
        cls,
        endpoint: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "HttpStorachaAgent":
        """Create a new agent session on the bridge."""
        client = httpx.AsyncClient(
            base_url=endpoint.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )
        try:
            response = await client.post("/agent")
            payload = _json_or_raise(response, "Agent creation failed")
        except BaseException:
            await client.aclose()
            raise
        return cls(client, did=payload["did"], session=payload["session"])

    @property
    def did(self) -> str:
        return self._did

    def _headers(self) -> Dict[str, str]:
        headers = {"X-Agent-Session": self._session}
        if self._current_space:
            headers["X-Space"] = self._current_space
        return headers

    async def spaces(self) -> List[str]:
        response = await self._client.get("/spaces", headers=self._headers())
        payload = _json_or_raise(response, "Listing spaces failed")
        return [space["did"] for space in payload.get("spaces", [])]

    async def add_proof(self, proof: str) -> None:
        response = await self._client.post(
            "/proofs", json={"proof": proof}, headers=self._headers()
        )
        _json_or_raise(response, "Adding delegation proof failed")

    async def set_current_space(self, space_did: str) -> None:
        response = await self._client.put(
            "/spaces/current", json={"did": space_did}, headers=self._headers()
        )
        _json_or_raise(response, f"Selecting space {space_did} failed")
        self._current_space = space_did

    def current_space(self) -> Optional[str]:
        return self._current_space

    async def upload_file(self, data: bytes, filename: str, content_type: str) -> str:
        headers = self._headers()
        headers["X-Name"] = filename
        headers["Content-Type"] = content_type
        response = await self._client.post("/upload", content=data, headers=headers)
        return str(_json_or_raise(response, "Upload failed")["root"])

    async def upload_directory(self, files: Sequence[FileTuple]) -> str:
        multipart = [("file", (name, data, ctype)) for data, name, ctype in files]
        response = await self._client.post(
            "/upload/directory", files=multipart, headers=self._headers()
        )
        return str(_json_or_raise(response, "Directory upload failed")["root"])

    async def list_uploads(self) -> List[Dict[str, Any]]:
        response = await self._client.get("/uploads", headers=self._headers())
        return list(_json_or_raise(response, "Listing uploads failed").get("results", []))

    async def remove_upload(self, cid: str) -> None:
        response = await self._client.delete(f"/uploads/{cid}", headers=self._headers())
        _json_or_raise(response, f"Removing upload {cid} failed")

    async def close(self) -> None:
        await self._client.aclose()


def _json_or_raise(response: httpx.Response, action: str) -> Dict[str, Any]:
    if response.is_error:
        raise httpx.HTTPStatusError(
            f"{action}: {response_error_message(response)}",
            request=response.request,
            response=response,
        )
    if not response.content:
        return {}
    return response.json()


def _to_record(raw: Dict[str, Any]) -> UploadRecord:
    return UploadRecord(
        cid=str(raw["root"]),
        uploaded_at=raw.get("insertedAt") or isoformat_now(),
        shards=[str(s) for s in raw.get("shards") or []],
    )


# =============================================================================
# Adapter
# =============================================================================


class StorachaAdapter(ProviderAdapter):
    """
    Primary provider adapter.

    Requires the lifecycle manager to be ready; it never initializes
    the session itself, so a store call cannot trigger setup mid-upload.
    """

    kind = ProviderKind.PRIMARY
    supports_directories = True

    def __init__(self, manager, gateway_host: str = "ipfs.w3s.link"):
        """
        Args:
            manager: PrimaryLifecycleManager owning the agent session
            gateway_host: Subdomain gateway host for public URLs
        """
        self.manager = manager
        self.gateway_host = gateway_host

    def _agent(self) -> StorachaAgent:
        if not self.manager.is_ready():
            raise self.error("Storacha client is not initialized")
        return self.manager.client

    async def store(self, request: UploadRequest) -> UploadResult:
        agent = self._agent()
        logger.info(f"Uploading file: {request.filename} ({request.content_type})")
        try:
            cid = await agent.upload_file(request.data, request.filename, request.content_type)
        except Exception as e:
            raise self.error("Upload failed", e) from e

        logger.info(f"Storacha upload successful: {cid}")
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
        agent = self._agent()
        logger.info(f"Uploading directory with {len(requests)} files")
        try:
            cid = await agent.upload_directory(
                [(r.data, r.filename, r.content_type) for r in requests]
            )
        except Exception as e:
            raise self.error("Directory upload failed", e) from e

        logger.info(f"Storacha directory upload successful: {cid}")
        return DirectoryUploadResult(
            cid=cid,
            url=gateway_url(cid, self.gateway_host),
            files=[r.filename for r in requests],
            provider_used=self.kind,
        )

    # =========================================================================
    # Upload management (capability API)
    # =========================================================================

    async def _ensure_agent(self) -> StorachaAgent:
        try:
            await self.manager.ensure_ready()
        except InitError as e:
            raise self.error("Storacha client is not initialized", e) from e
        return self.manager.client

    async def list_uploads(self) -> List[UploadRecord]:
        agent = await self._ensure_agent()
        try:
            raw = await agent.list_uploads()
            return [_to_record(item) for item in raw]
        except Exception as e:
            raise self.error("Listing uploads failed", e) from e

    async def get_upload_info(self, cid: str) -> Optional[UploadRecord]:
        if not cid:
            raise self.error("CID is required")
        for record in await self.list_uploads():
            if record.cid == cid:
                return record
        return None

    async def remove_upload(self, cid: str) -> None:
        if not cid:
            raise self.error("CID is required")
        agent = await self._ensure_agent()
        try:
            await agent.remove_upload(cid)
        except Exception as e:
            raise self.error(f"Failed to remove upload {cid}", e) from e
        logger.info(f"Upload removed: {cid}")

"""
Upload Models — Pydantic models for the upload pipeline.

This module provides:
- UploadRequest: validated, immutable input of one resolution
- UploadResult / DirectoryUploadResult: what callers persist on documents
- UploadRecord: entry of the primary provider's upload listing
- Helpers for gateway URLs and local fallback names
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field


class ProviderKind(str, Enum):
    """Storage backends, in fallback order."""
    PRIMARY = "primary"      # Storacha (w3up)
    SECONDARY = "secondary"  # web3.storage
    LOCAL = "local"          # uploads/ directory, development only


FALLBACK_CHAIN = (ProviderKind.PRIMARY, ProviderKind.SECONDARY, ProviderKind.LOCAL)


class UploadRequest(BaseModel):
    """
    One in-memory file payload.

    Created by the caller, never retained by the pipeline after the call.
    Zero-byte payloads are valid; an empty filename is rejected at
    construction.
    """

    model_config = ConfigDict(frozen=True)

    data: bytes = Field(..., description="File content")
    filename: str = Field(..., min_length=1, description="Original filename")
    content_type: str = Field(
        default="application/octet-stream",
        min_length=1,
        description="MIME type"
    )

    @property
    def size(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return (
            f"UploadRequest(filename={self.filename!r}, "
            f"content_type={self.content_type!r}, size={self.size})"
        )


class UploadResult(BaseModel):
    """Stored single file."""
    cid: str = Field(..., min_length=1, description="Content identifier")
    url: str = Field(..., min_length=1, description="Public (or local) URL")
    size: int = Field(..., ge=0, description="Size in bytes")
    name: str = Field(..., description="Original filename")
    type: str = Field(..., description="MIME type")
    provider_used: ProviderKind


class DirectoryUploadResult(BaseModel):
    """Stored set of files under one directory CID."""
    cid: str = Field(..., min_length=1, description="Directory content identifier")
    url: str = Field(..., min_length=1, description="Directory gateway URL")
    files: List[str] = Field(default_factory=list, description="Filenames in upload order")
    provider_used: ProviderKind


class UploadRecord(BaseModel):
    """Upload known to the primary provider's space."""
    cid: str
    uploaded_at: str
    shards: List[str] = Field(default_factory=list)


# =============================================================================
# Helper Functions
# =============================================================================


def gateway_url(cid: str, gateway_host: str, filename: Optional[str] = None) -> str:
    """
    Build the public subdomain-gateway URL for a CID.

    Format: https://{cid}.{gateway_host}/[{escaped filename}]
    """
    url = f"https://{cid}.{gateway_host}/"
    if filename:
        url += quote(filename, safe="!*'()")
    return url


def unix_millis() -> int:
    """Current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def local_file_name(filename: str, millis: int) -> str:
    """
    Name used by the local fallback.

    Format: {unix-millis}-{original filename}
    """
    return f"{millis}-{filename}"


def isoformat_now() -> str:
    return datetime.now(timezone.utc).isoformat()

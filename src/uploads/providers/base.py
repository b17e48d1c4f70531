"""
Base Provider Adapter.

Every storage backend sits behind the same contract:

    await adapter.store(request)            -> UploadResult
    await adapter.store_many(requests)      -> DirectoryUploadResult

Adapters never let backend exception types escape: any failure is raised
as ProviderError carrying the original exception as ``cause``.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from ..errors import ProviderError
from ..models import DirectoryUploadResult, ProviderKind, UploadRequest, UploadResult


class ProviderAdapter(ABC):
    """
    Base class for storage provider adapters.

    Subclasses must implement:
        - store(request) -> UploadResult

    Subclasses with directory semantics override store_many and set
    supports_directories = True.
    """

    kind: ProviderKind
    supports_directories: bool = False

    @abstractmethod
    async def store(self, request: UploadRequest) -> UploadResult:
        """Store one file."""
        pass

    async def store_many(self, requests: Sequence[UploadRequest]) -> DirectoryUploadResult:
        """Store several files under one directory CID."""
        raise ProviderError(self.kind.value, "Directory uploads are not supported")

    def error(self, message: str, cause: BaseException = None) -> ProviderError:
        """Build a ProviderError for this adapter."""
        if cause is not None:
            message = f"{message}: {cause}"
        return ProviderError(self.kind.value, message, cause)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value})"


def response_error_message(response) -> str:
    """
    Extract a readable error from an HTTP error response.

    Prefers JSON ``message``/``error`` fields, then the raw body,
    then the reason phrase.
    """
    text = response.text
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if message:
            return str(message)
    return text or response.reason_phrase or f"HTTP {response.status_code}"

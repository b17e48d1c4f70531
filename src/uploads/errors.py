"""
Upload pipeline errors.

Hierarchy:
    StorageError
    ├── InitError                 primary session/space setup failed (fallback continues)
    ├── ProviderError             one adapter's store/store_many failed (fallback continues)
    ├── AllProvidersFailedError   terminal, crosses the resolver boundary
    └── UploadTooLargeError       payload rejected before any provider is tried
"""

from typing import List, Optional


class StorageError(Exception):
    """Base class for upload pipeline errors."""


class InitError(StorageError):
    """Primary provider session could not be established."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ProviderError(StorageError):
    """
    A single provider failed to store a payload.

    Attributes:
        provider: Provider kind value ("primary", "secondary", "local")
        message: Human-readable reason
        cause: Original backend exception, kept for logging
    """

    def __init__(self, provider: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"[{provider}] {message}")
        self.provider = provider
        self.message = message
        self.cause = cause


class AllProvidersFailedError(StorageError):
    """Every eligible provider failed, or none was eligible."""

    def __init__(self, failures: Optional[List[StorageError]] = None):
        self.failures: List[StorageError] = list(failures or [])
        if self.failures:
            detail = "; ".join(str(f) for f in self.failures)
        else:
            detail = "no storage provider is configured"
        super().__init__(
            f"All storage methods failed. Please check your storage configuration. ({detail})"
        )


class UploadTooLargeError(StorageError):
    """Payload exceeds the configured upload ceiling."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Upload of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit

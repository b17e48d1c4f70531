"""
Upload storage for the course marketplace backend.

Components:
- models: Pydantic models for upload requests and results
- providers: Storacha (primary), web3.storage (secondary), local disk adapters
- lifecycle: Primary provider session management
- resolver: Fallback chain, the only entry point for callers

Ready-Made Solutions:
- httpx: Async HTTP for both content-addressed providers
- fsspec: File system abstraction for the local fallback
- Pydantic: Data validation
"""

from .config import StorageConfig
from .errors import (
    AllProvidersFailedError,
    InitError,
    ProviderError,
    StorageError,
    UploadTooLargeError,
)
from .lifecycle import PrimaryLifecycleManager
from .models import (
    FALLBACK_CHAIN,
    DirectoryUploadResult,
    ProviderKind,
    UploadRecord,
    UploadRequest,
    UploadResult,
)
from .resolver import StorageResolver, build_resolver, upload_asset

__all__ = [
    # Config
    "StorageConfig",
    # Errors
    "StorageError",
    "InitError",
    "ProviderError",
    "AllProvidersFailedError",
    "UploadTooLargeError",
    # Models
    "ProviderKind",
    "FALLBACK_CHAIN",
    "UploadRequest",
    "UploadResult",
    "DirectoryUploadResult",
    "UploadRecord",
    # Lifecycle & resolver
    "PrimaryLifecycleManager",
    "StorageResolver",
    "build_resolver",
    "upload_asset",
]

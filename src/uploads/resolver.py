"""
Storage Resolver — the single entry point for file uploads.

Resolution flow (fixed order, first success wins):
1. Primary (Storacha): initialize the session if needed; an InitError is
   logged and the chain moves on
2. Secondary (web3.storage)
3. Local disk, only outside production
4. Nothing left: AllProvidersFailedError carrying every failure

Each provider gets exactly one attempt per call, bounded by the
configured per-provider timeout. Provider errors are logged here and
never leave the resolver individually.

Example:
    resolver = build_resolver(StorageConfig.from_env())
    await resolver.warm_up()
    result = await resolver.resolve_upload(data, "a.png", "image/png")
    course.thumbnail = result.url
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .config import StorageConfig
from .errors import (
    AllProvidersFailedError,
    InitError,
    ProviderError,
    StorageError,
    UploadTooLargeError,
)
from .lifecycle import AgentFactory, PrimaryLifecycleManager
from .models import (
    DirectoryUploadResult,
    ProviderKind,
    UploadRecord,
    UploadRequest,
    UploadResult,
)
from .providers import LocalDiskAdapter, ProviderAdapter, StorachaAdapter, Web3StorageAdapter

logger = logging.getLogger(__name__)

FileSpec = Tuple[bytes, str, str]  # (data, filename, content_type)


class StorageResolver:
    """
    Fallback chain over the three provider adapters.

    Owns its adapters and the primary lifecycle manager; pass the
    resolver to whoever needs uploads instead of sharing module globals.
    """

    def __init__(
        self,
        primary: Optional[ProviderAdapter] = None,
        secondary: Optional[ProviderAdapter] = None,
        local: Optional[ProviderAdapter] = None,
        manager: Optional[PrimaryLifecycleManager] = None,
        environment: str = "development",
        provider_timeout_seconds: Optional[float] = None,
        max_upload_bytes: Optional[int] = None,
    ):
        """
        Args:
            primary: Primary adapter (None = not configured)
            secondary: Secondary adapter (None = not configured)
            local: Local fallback adapter (used only outside production)
            manager: Primary lifecycle manager; defaults to primary.manager
            environment: Runtime mode ("production" disables local fallback)
            provider_timeout_seconds: Per-attempt timeout (None/0 = unbounded)
            max_upload_bytes: Total payload ceiling per call (None = unbounded)
        """
        self.primary = primary
        self.secondary = secondary
        self.local = local
        self.manager = manager if manager is not None else getattr(primary, "manager", None)
        self.environment = environment
        self.provider_timeout = provider_timeout_seconds or None
        self.max_upload_bytes = max_upload_bytes

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def local_fallback_enabled(self) -> bool:
        return self.local is not None and not self.is_production

    # =========================================================================
    # Public contract
    # =========================================================================

    async def resolve_upload(
        self,
        data: bytes,
        filename: str,
        content_type: str = "application/octet-stream",
    ) -> UploadResult:
        """
        Store one file with the first provider that accepts it.

        Raises:
            pydantic.ValidationError: missing payload or empty filename
            UploadTooLargeError: payload above max_upload_bytes
            AllProvidersFailedError: every eligible provider failed
        """
        request = UploadRequest(data=data, filename=filename, content_type=content_type)
        return await self.resolve(request)

    async def resolve(self, request: UploadRequest) -> UploadResult:
        self._check_size(request.size)
        logger.info(f"Attempting to upload: {request.filename} ({request.content_type})")

        return await self._run_chain(
            "upload",
            lambda adapter: adapter.store(request),
            [
                (ProviderKind.PRIMARY, self.primary),
                (ProviderKind.SECONDARY, self.secondary),
                (ProviderKind.LOCAL, self.local if self.local_fallback_enabled else None),
            ],
        )

    async def resolve_upload_many(self, files: Iterable[FileSpec]) -> DirectoryUploadResult:
        """
        Store several files under one directory CID.

        Only content-addressed providers take part; there is no local
        directory fallback.

        Raises:
            pydantic.ValidationError: an entry has no payload or an empty filename
            ValueError: no files given
            UploadTooLargeError: combined payload above max_upload_bytes
            AllProvidersFailedError: every eligible provider failed
        """
        requests = [
            UploadRequest(data=data, filename=filename, content_type=content_type)
            for data, filename, content_type in files
        ]
        if not requests:
            raise ValueError("Files list is required and must not be empty")
        return await self.resolve_many(requests)

    async def resolve_many(self, requests: Sequence[UploadRequest]) -> DirectoryUploadResult:
        self._check_size(sum(r.size for r in requests))
        logger.info(f"Attempting directory upload with {len(requests)} files")

        candidates = [
            (kind, adapter if adapter is not None and adapter.supports_directories else None)
            for kind, adapter in (
                (ProviderKind.PRIMARY, self.primary),
                (ProviderKind.SECONDARY, self.secondary),
            )
        ]
        return await self._run_chain(
            "directory upload",
            lambda adapter: adapter.store_many(requests),
            candidates,
        )

    # =========================================================================
    # Chain
    # =========================================================================

    def _check_size(self, size: int) -> None:
        if self.max_upload_bytes is not None and size > self.max_upload_bytes:
            raise UploadTooLargeError(size, self.max_upload_bytes)

    async def _run_chain(
        self,
        action: str,
        call: Callable[[ProviderAdapter], Awaitable[Any]],
        candidates: List[Tuple[ProviderKind, Optional[ProviderAdapter]]],
    ):
        failures: List[StorageError] = []

        for kind, adapter in candidates:
            if adapter is None:
                continue

            if kind is ProviderKind.PRIMARY:
                try:
                    await self._prepare_primary()
                except InitError as e:
                    logger.warning(f"Storacha unavailable, skipping: {e}")
                    failures.append(e)
                    continue

            try:
                return await self._attempt(adapter, call)
            except ProviderError as e:
                logger.warning(f"{adapter.kind.value} {action} failed: {e.message}")
                failures.append(e)

        error = AllProvidersFailedError(failures)
        logger.error(f"{action.capitalize()} failed: {error}")
        raise error

    async def _prepare_primary(self) -> None:
        if self.manager is None or self.manager.is_ready():
            return
        try:
            await self._with_timeout(self.manager.ensure_ready())
        except asyncio.TimeoutError as e:
            raise InitError(
                f"Storacha initialization timed out after {self.provider_timeout}s", e
            ) from e

    async def _attempt(
        self,
        adapter: ProviderAdapter,
        call: Callable[[ProviderAdapter], Awaitable[Any]],
    ):
        try:
            return await self._with_timeout(call(adapter))
        except ProviderError:
            raise
        except asyncio.TimeoutError as e:
            raise adapter.error(f"Timed out after {self.provider_timeout}s") from e
        except Exception as e:
            raise adapter.error("Unexpected provider failure", e) from e

    async def _with_timeout(self, awaitable: Awaitable[Any]):
        if self.provider_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.provider_timeout)

    # =========================================================================
    # Lifecycle & status
    # =========================================================================

    async def warm_up(self) -> bool:
        """
        Try to initialize the primary session ahead of the first upload.

        Never raises; returns whether the primary provider is ready.
        """
        if self.manager is None:
            logger.info("STORACHA_TOKEN not provided, Storacha client will not be available")
            return False
        try:
            await self._prepare_primary()
        except InitError as e:
            logger.error(f"Storacha warm-up failed, will retry on first upload: {e}")
            return False
        return True

    def status(self) -> Dict[str, str]:
        """Storage section of the health report."""
        primary_ready = self.primary is not None and (
            self.manager is None or self.manager.is_ready()
        )
        return {
            "storacha": "ready" if primary_ready else "unavailable",
            "web3storage": "available" if self.secondary is not None else "unavailable",
            "fallback": "local filesystem" if self.local_fallback_enabled else "none",
            "environment": self.environment,
        }

    async def aclose(self) -> None:
        if self.manager is not None:
            await self.manager.close()

    async def __aenter__(self) -> "StorageResolver":
        await self.warm_up()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # =========================================================================
    # Primary upload management
    # =========================================================================

    def _storacha(self) -> StorachaAdapter:
        if not isinstance(self.primary, StorachaAdapter):
            raise ProviderError(ProviderKind.PRIMARY.value, "Storacha client is not configured")
        return self.primary

    async def list_uploads(self) -> List[UploadRecord]:
        return await self._storacha().list_uploads()

    async def get_upload_info(self, cid: str) -> Optional[UploadRecord]:
        return await self._storacha().get_upload_info(cid)

    async def remove_upload(self, cid: str) -> None:
        await self._storacha().remove_upload(cid)


# =============================================================================
# Construction & caller helpers
# =============================================================================


def build_resolver(
    config: Optional[StorageConfig] = None,
    agent_factory: Optional[AgentFactory] = None,
) -> StorageResolver:
    """
    Build a resolver from configuration.

    Args:
        config: StorageConfig (default: from environment)
        agent_factory: Override for creating Storacha agent sessions
    """
    config = config or StorageConfig.from_env()
    timeout = config.provider_timeout_seconds or None

    primary = None
    if config.storacha_space_did and not config.storacha_endpoint:
        logger.error(
            "STORACHA_TOKEN is set but STORACHA_ENDPOINT is not; "
            "Storacha is disabled until the w3up bridge endpoint is configured"
        )
    if config.primary_enabled:
        if agent_factory is not None:
            manager = PrimaryLifecycleManager(
                config.storacha_space_did,
                agent_factory,
                delegation_proof=config.storacha_delegation_proof,
            )
        else:
            manager = PrimaryLifecycleManager.from_config(config, timeout=timeout)
        primary = StorachaAdapter(manager, gateway_host=config.gateway_host)

    secondary = None
    if config.secondary_enabled:
        secondary = Web3StorageAdapter(
            config.web3storage_token,
            endpoint=config.web3storage_endpoint,
            gateway_host=config.gateway_host,
            timeout=timeout,
        )

    local = LocalDiskAdapter(config.uploads_dir, config.uploads_url_prefix)

    logger.info(
        f"StorageResolver configured: storacha={'on' if primary else 'off'}, "
        f"web3storage={'on' if secondary else 'off'}, environment={config.environment}"
    )
    return StorageResolver(
        primary=primary,
        secondary=secondary,
        local=local,
        environment=config.environment,
        provider_timeout_seconds=config.provider_timeout_seconds,
        max_upload_bytes=config.max_upload_bytes,
    )


async def upload_asset(
    resolver: StorageResolver,
    data: Optional[bytes],
    filename: Optional[str],
    content_type: str,
    required: bool = False,
) -> Optional[UploadResult]:
    """
    Upload an asset attached to a document (thumbnail, lesson video).

    Optional assets that are missing or fail to upload yield None so the
    document is saved without them. Required assets raise: ValueError when
    the input is missing, AllProvidersFailedError when storage failed.
    """
    if data is None or not filename:
        if required:
            raise ValueError("Required file is missing")
        return None

    try:
        return await resolver.resolve_upload(data, filename, content_type)
    except AllProvidersFailedError:
        if required:
            raise
        logger.warning(f"Proceeding without asset {filename}: storage unavailable")
        return None

"""
Tests for StorageResolver.

Covers the fallback chain (primary -> secondary -> local), the
production gate on the local fallback, short-circuiting, timeouts,
directory uploads and the caller-side asset policy.
"""

import asyncio
import logging
import re

import pytest
from pydantic import ValidationError

from fakes import SPACE_DID, FakeAdapter, FakeAgent, agent_factory
from uploads.config import StorageConfig
from uploads.errors import AllProvidersFailedError, InitError, ProviderError, UploadTooLargeError
from uploads.lifecycle import PrimaryLifecycleManager
from uploads.models import ProviderKind
from uploads.providers import LocalDiskAdapter, StorachaAdapter, Web3StorageAdapter
from uploads.resolver import StorageResolver, build_resolver, upload_asset

PAYLOAD = b"0123456789"


def failing_primary() -> StorachaAdapter:
    """Primary whose session can never be initialized."""
    factory = agent_factory(error=OSError("bridge unreachable"))
    return StorachaAdapter(PrimaryLifecycleManager(SPACE_DID, factory))


def healthy_primary(agent: FakeAgent = None):
    agent = agent or FakeAgent()
    factory = agent_factory(agent)
    return StorachaAdapter(PrimaryLifecycleManager(SPACE_DID, factory)), factory


# =============================================================================
# Chain order & short-circuit
# =============================================================================

class TestFallbackChain:
    """Tests for provider ordering."""

    @pytest.mark.asyncio
    async def test_healthy_primary_short_circuits(self, tmp_path):
        primary, factory = healthy_primary()
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        local = FakeAdapter(ProviderKind.LOCAL)
        resolver = StorageResolver(primary=primary, secondary=secondary, local=local)

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.PRIMARY
        assert result.size == len(PAYLOAD)
        assert factory.calls == 1
        assert secondary.store_calls == 0
        assert local.store_calls == 0

    @pytest.mark.asyncio
    async def test_unconfigured_primary_uses_secondary(self):
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        local = FakeAdapter(ProviderKind.LOCAL)
        resolver = StorageResolver(secondary=secondary, local=local)

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.SECONDARY
        assert secondary.store_calls == 1
        assert local.store_calls == 0

    @pytest.mark.asyncio
    async def test_primary_init_failure_falls_through(self):
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(primary=failing_primary(), secondary=secondary)

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.SECONDARY
        assert result.size == len(PAYLOAD)

    @pytest.mark.asyncio
    async def test_primary_store_failure_is_not_retried(self):
        """A blip after init is one failed attempt, then the chain moves on."""
        agent = FakeAgent(fail_upload=True)
        primary, factory = healthy_primary(agent)
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(primary=primary, secondary=secondary)

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.SECONDARY
        assert agent.uploaded == []
        assert factory.calls == 1
        assert secondary.store_calls == 1

    @pytest.mark.asyncio
    async def test_unexpected_adapter_exception_is_contained(self):
        primary = FakeAdapter(ProviderKind.PRIMARY, raw_error=RuntimeError("bug"))
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(primary=primary, secondary=secondary)

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.SECONDARY

    @pytest.mark.asyncio
    async def test_failed_init_is_retried_on_next_upload(self):
        broken = FakeAgent(spaces=[], fail_set_space=True)
        factory = agent_factory(broken, FakeAgent())
        primary = StorachaAdapter(PrimaryLifecycleManager(SPACE_DID, factory))
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(primary=primary, secondary=secondary)

        first = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")
        second = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert first.provider_used == ProviderKind.SECONDARY
        assert second.provider_used == ProviderKind.PRIMARY
        assert factory.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_uploads_share_one_session(self):
        agent = FakeAgent()
        factory = agent_factory(agent, delay=0.01)
        primary = StorachaAdapter(PrimaryLifecycleManager(SPACE_DID, factory))
        resolver = StorageResolver(primary=primary)

        results = await asyncio.gather(*(
            resolver.resolve_upload(PAYLOAD, f"{i}.png", "image/png") for i in range(5)
        ))

        assert factory.calls == 1
        assert all(r.provider_used == ProviderKind.PRIMARY for r in results)
        assert len(agent.uploaded) == 5


# =============================================================================
# Local fallback & production gate
# =============================================================================

class TestLocalFallback:
    """Tests for the development-only local fallback."""

    @pytest.mark.asyncio
    async def test_development_falls_back_to_local_disk(self, tmp_path):
        """10-byte a.png, primary and secondary failing, development mode."""
        uploads_dir = tmp_path / "uploads"
        resolver = StorageResolver(
            primary=failing_primary(),
            secondary=FakeAdapter(ProviderKind.SECONDARY, fail=True),
            local=LocalDiskAdapter(str(uploads_dir)),
            environment="development",
        )

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        match = re.fullmatch(r"local-(\d+)", result.cid)
        assert match is not None
        assert result.url == f"/uploads/{match.group(1)}-a.png"
        assert result.size == 10
        assert result.provider_used == ProviderKind.LOCAL
        assert (uploads_dir / f"{match.group(1)}-a.png").read_bytes() == PAYLOAD

    @pytest.mark.asyncio
    async def test_production_never_writes_locally(self, tmp_path):
        """Same input in production: terminal failure, no filesystem writes."""
        uploads_dir = tmp_path / "uploads"
        resolver = StorageResolver(
            primary=failing_primary(),
            secondary=FakeAdapter(ProviderKind.SECONDARY, fail=True),
            local=LocalDiskAdapter(str(uploads_dir)),
            environment="production",
        )

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert not uploads_dir.exists()
        failures = exc_info.value.failures
        assert isinstance(failures[0], InitError)
        assert isinstance(failures[1], ProviderError)
        assert len(failures) == 2

    @pytest.mark.asyncio
    async def test_production_local_adapter_not_called(self):
        local = FakeAdapter(ProviderKind.LOCAL)
        resolver = StorageResolver(
            secondary=FakeAdapter(ProviderKind.SECONDARY, fail=True),
            local=local,
            environment="production",
        )

        with pytest.raises(AllProvidersFailedError):
            await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert local.store_calls == 0

    @pytest.mark.asyncio
    async def test_nothing_configured(self):
        resolver = StorageResolver(environment="production")

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert exc_info.value.failures == []

    @pytest.mark.asyncio
    async def test_local_failure_is_terminal(self):
        resolver = StorageResolver(local=FakeAdapter(ProviderKind.LOCAL, fail=True))

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert exc_info.value.failures[0].provider == "local"


# =============================================================================
# Large payloads, validation, timeouts
# =============================================================================

class TestLimits:
    """Tests for payload limits and per-provider timeouts."""

    @pytest.mark.asyncio
    async def test_large_video_uses_primary_only(self):
        """500MB video.mp4 with a healthy primary never touches the fallbacks."""
        primary = FakeAdapter(ProviderKind.PRIMARY)
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        local = FakeAdapter(ProviderKind.LOCAL)
        resolver = StorageResolver(
            primary=primary, secondary=secondary, local=local,
            max_upload_bytes=500 * 1024 * 1024,
        )
        video = bytes(500 * 1024 * 1024)

        result = await resolver.resolve_upload(video, "video.mp4", "video/mp4")

        assert result.provider_used == ProviderKind.PRIMARY
        assert result.size == len(video)
        assert primary.store_calls == 1
        assert secondary.store_calls == 0
        assert local.store_calls == 0

    @pytest.mark.asyncio
    async def test_oversized_payload_rejected_before_chain(self):
        primary = FakeAdapter(ProviderKind.PRIMARY)
        resolver = StorageResolver(primary=primary, max_upload_bytes=5)

        with pytest.raises(UploadTooLargeError):
            await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert primary.store_calls == 0

    @pytest.mark.asyncio
    async def test_empty_filename_is_validation_error(self):
        primary = FakeAdapter(ProviderKind.PRIMARY)
        resolver = StorageResolver(primary=primary)

        with pytest.raises(ValidationError):
            await resolver.resolve_upload(PAYLOAD, "", "image/png")

        assert primary.store_calls == 0

    @pytest.mark.asyncio
    async def test_zero_byte_payload_is_stored(self, tmp_path):
        """size equals input length for empty files too."""
        resolver = StorageResolver(local=LocalDiskAdapter(str(tmp_path / "uploads")))

        result = await resolver.resolve_upload(b"", "empty.txt", "text/plain")

        assert result.size == 0
        assert result.provider_used == ProviderKind.LOCAL

    @pytest.mark.asyncio
    async def test_slow_provider_times_out_and_falls_through(self):
        slow = FakeAdapter(ProviderKind.PRIMARY, delay=5)
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(
            primary=slow, secondary=secondary, provider_timeout_seconds=0.05
        )

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.SECONDARY

    @pytest.mark.asyncio
    async def test_slow_initialization_times_out(self):
        factory = agent_factory(FakeAgent(), delay=5)
        primary = StorachaAdapter(PrimaryLifecycleManager(SPACE_DID, factory))
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(
            primary=primary, secondary=secondary, provider_timeout_seconds=0.05
        )

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.SECONDARY
        assert not primary.manager.is_ready()

    @pytest.mark.asyncio
    async def test_timed_out_setup_releases_session(self):
        """Timeout after the session exists: chain moves on, session is closed."""
        agent = FakeAgent(spaces_delay=5)
        primary = StorachaAdapter(PrimaryLifecycleManager(SPACE_DID, agent_factory(agent)))
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(
            primary=primary, secondary=secondary, provider_timeout_seconds=0.05
        )

        result = await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")

        assert result.provider_used == ProviderKind.SECONDARY
        assert agent.closed
        assert primary.manager.client is None


# =============================================================================
# Directory uploads
# =============================================================================

class TestDirectoryUploads:
    """Tests for resolve_upload_many."""

    FILES = [(b"body{}", "a.css", "text/css"), (b"x=1", "b.js", "text/javascript")]

    @pytest.mark.asyncio
    async def test_primary_directory(self):
        agent = FakeAgent()
        primary, _ = healthy_primary(agent)
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(primary=primary, secondary=secondary)

        result = await resolver.resolve_upload_many(self.FILES)

        assert result.cid == "bafyprimarydir"
        assert result.files == ["a.css", "b.js"]
        assert secondary.store_many_calls == 0

    @pytest.mark.asyncio
    async def test_directory_falls_back_to_secondary(self):
        secondary = FakeAdapter(ProviderKind.SECONDARY)
        resolver = StorageResolver(primary=failing_primary(), secondary=secondary)

        result = await resolver.resolve_upload_many(self.FILES)

        assert result.provider_used == ProviderKind.SECONDARY

    @pytest.mark.asyncio
    async def test_directory_never_uses_local(self, tmp_path):
        resolver = StorageResolver(
            secondary=FakeAdapter(ProviderKind.SECONDARY, fail=True),
            local=LocalDiskAdapter(str(tmp_path / "uploads")),
        )

        with pytest.raises(AllProvidersFailedError):
            await resolver.resolve_upload_many(self.FILES)

        assert not (tmp_path / "uploads").exists()

    @pytest.mark.asyncio
    async def test_empty_directory_rejected(self):
        resolver = StorageResolver(secondary=FakeAdapter(ProviderKind.SECONDARY))
        with pytest.raises(ValueError):
            await resolver.resolve_upload_many([])

    @pytest.mark.asyncio
    async def test_combined_size_limit(self):
        resolver = StorageResolver(
            secondary=FakeAdapter(ProviderKind.SECONDARY), max_upload_bytes=8
        )
        with pytest.raises(UploadTooLargeError):
            await resolver.resolve_upload_many(self.FILES)


# =============================================================================
# Status, warm-up, management, construction
# =============================================================================

class TestResolverLifecycle:
    """Tests for warm-up, status and upload management."""

    @pytest.mark.asyncio
    async def test_warm_up_initializes_primary(self):
        primary, factory = healthy_primary()
        resolver = StorageResolver(primary=primary)

        assert resolver.status()["storacha"] == "unavailable"
        assert await resolver.warm_up() is True
        assert resolver.status()["storacha"] == "ready"

        await resolver.resolve_upload(PAYLOAD, "a.png", "image/png")
        assert factory.calls == 1

    @pytest.mark.asyncio
    async def test_warm_up_failure_does_not_raise(self):
        resolver = StorageResolver(primary=failing_primary())
        assert await resolver.warm_up() is False

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self):
        agent = FakeAgent()
        primary, _ = healthy_primary(agent)

        async with StorageResolver(primary=primary) as resolver:
            assert resolver.manager.is_ready()

        assert agent.closed

    def test_status_report(self):
        resolver = StorageResolver(
            secondary=FakeAdapter(ProviderKind.SECONDARY),
            local=FakeAdapter(ProviderKind.LOCAL),
            environment="development",
        )
        assert resolver.status() == {
            "storacha": "unavailable",
            "web3storage": "available",
            "fallback": "local filesystem",
            "environment": "development",
        }

    def test_status_production_has_no_fallback(self):
        resolver = StorageResolver(local=FakeAdapter(ProviderKind.LOCAL), environment="production")
        assert resolver.status()["fallback"] == "none"

    @pytest.mark.asyncio
    async def test_management_delegates_to_primary(self):
        agent = FakeAgent(uploads=[{"root": "bafyone"}])
        primary, _ = healthy_primary(agent)
        resolver = StorageResolver(primary=primary)

        assert [r.cid for r in await resolver.list_uploads()] == ["bafyone"]
        assert (await resolver.get_upload_info("bafyone")).cid == "bafyone"
        await resolver.remove_upload("bafyone")
        assert agent.removed == ["bafyone"]

    @pytest.mark.asyncio
    async def test_management_without_primary(self):
        resolver = StorageResolver(secondary=FakeAdapter(ProviderKind.SECONDARY))
        with pytest.raises(ProviderError):
            await resolver.list_uploads()

    def test_build_resolver_from_config(self, tmp_path):
        config = StorageConfig(
            storacha_space_did=SPACE_DID,
            storacha_endpoint="http://w3up-bridge:8787",
            web3storage_token="w3-token",
            environment="production",
            uploads_dir=str(tmp_path / "uploads"),
        )

        resolver = build_resolver(config, agent_factory=agent_factory(FakeAgent()))

        assert isinstance(resolver.primary, StorachaAdapter)
        assert isinstance(resolver.secondary, Web3StorageAdapter)
        assert isinstance(resolver.local, LocalDiskAdapter)
        assert resolver.manager is resolver.primary.manager
        assert resolver.is_production
        assert not resolver.local_fallback_enabled

    def test_build_resolver_space_without_endpoint(self, tmp_path, caplog):
        config = StorageConfig(
            storacha_space_did=SPACE_DID,
            uploads_dir=str(tmp_path / "uploads"),
        )

        with caplog.at_level(logging.ERROR, logger="uploads.resolver"):
            resolver = build_resolver(config)

        assert resolver.primary is None
        assert "STORACHA_ENDPOINT" in caplog.text

    def test_build_resolver_without_credentials(self, tmp_path):
        resolver = build_resolver(StorageConfig(uploads_dir=str(tmp_path / "uploads")))

        assert resolver.primary is None
        assert resolver.secondary is None
        assert resolver.manager is None
        assert resolver.local_fallback_enabled


# =============================================================================
# Caller policy
# =============================================================================

class TestUploadAsset:
    """Tests for optional vs. required asset uploads."""

    @pytest.mark.asyncio
    async def test_optional_asset_failure_returns_none(self):
        resolver = StorageResolver(environment="production")
        assert await upload_asset(resolver, PAYLOAD, "thumb.png", "image/png") is None

    @pytest.mark.asyncio
    async def test_optional_asset_missing_returns_none(self):
        resolver = StorageResolver(secondary=FakeAdapter(ProviderKind.SECONDARY))
        assert await upload_asset(resolver, None, None, "image/png") is None

    @pytest.mark.asyncio
    async def test_optional_empty_file_is_uploaded(self):
        resolver = StorageResolver(secondary=FakeAdapter(ProviderKind.SECONDARY))
        result = await upload_asset(resolver, b"", "empty.txt", "text/plain")
        assert result.size == 0

    @pytest.mark.asyncio
    async def test_required_asset_missing_is_input_error(self):
        resolver = StorageResolver(secondary=FakeAdapter(ProviderKind.SECONDARY))
        with pytest.raises(ValueError):
            await upload_asset(resolver, None, "video.mp4", "video/mp4", required=True)

    @pytest.mark.asyncio
    async def test_required_asset_failure_is_storage_error(self):
        resolver = StorageResolver(environment="production")
        with pytest.raises(AllProvidersFailedError):
            await upload_asset(resolver, PAYLOAD, "video.mp4", "video/mp4", required=True)

    @pytest.mark.asyncio
    async def test_asset_success(self):
        resolver = StorageResolver(secondary=FakeAdapter(ProviderKind.SECONDARY))
        result = await upload_asset(resolver, PAYLOAD, "thumb.png", "image/png")
        assert result.provider_used == ProviderKind.SECONDARY

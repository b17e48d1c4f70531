"""
Primary Provider Lifecycle Manager.

Owns the process-wide Storacha agent session:
1. Create the agent session (lazily, on first use)
2. Select the configured space if the agent lists it
3. Otherwise fall back to delegation: import the proof (if any) and
   force-select the space
4. Mark the session initialized only once a current space is confirmed

A failed attempt leaves nothing cached; the next ensure_ready() call
starts over. Concurrent callers wait on one lock, so a successful
initialization happens once per process.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import InitError
from .providers.storacha import HttpStorachaAgent, StorachaAgent

logger = logging.getLogger(__name__)

AgentFactory = Callable[[], Awaitable[StorachaAgent]]


class PrimaryLifecycleManager:
    """
    Lazily creates and memoizes the primary provider session.

    Example:
        manager = PrimaryLifecycleManager("did:key:z6Mk...", agent_factory)
        await manager.ensure_ready()
        assert manager.is_ready()
    """

    def __init__(
        self,
        space_did: str,
        agent_factory: AgentFactory,
        delegation_proof: Optional[str] = None,
    ):
        """
        Args:
            space_did: Pre-authorized space the uploads go to
            agent_factory: Coroutine function creating a fresh agent session
            delegation_proof: Optional delegation proof for the space
        """
        if not space_did:
            raise ValueError("Space DID is required")

        self.space_did = space_did
        self._agent_factory = agent_factory
        self._delegation_proof = delegation_proof

        self.initialized = False
        self.client: Optional[StorachaAgent] = None
        self._lock = asyncio.Lock()
        self.init_attempts = 0

    @classmethod
    def from_config(cls, config, timeout: Optional[float] = None) -> "PrimaryLifecycleManager":
        """Build a manager creating HttpStorachaAgent sessions from StorageConfig."""

        async def factory() -> StorachaAgent:
            return await HttpStorachaAgent.create(config.storacha_endpoint, timeout=timeout)

        return cls(
            space_did=config.storacha_space_did,
            agent_factory=factory,
            delegation_proof=config.storacha_delegation_proof,
        )

    # =========================================================================
    # Readiness
    # =========================================================================

    def is_ready(self) -> bool:
        """True iff initialized and a current space is set."""
        return (
            self.initialized
            and self.client is not None
            and bool(self.client.current_space())
        )

    def current_space(self) -> Optional[str]:
        if self.client is None:
            return None
        return self.client.current_space()

    async def ensure_ready(self) -> None:
        """
        Initialize the session once.

        Raises:
            InitError: session creation or space selection failed
        """
        if self.is_ready():
            return

        async with self._lock:
            # Another caller may have finished while we waited
            if self.is_ready():
                return
            await self._initialize()

    async def _initialize(self) -> None:
        self.init_attempts += 1
        self.initialized = False
        agent: Optional[StorachaAgent] = None

        try:
            logger.info("Creating Storacha agent...")
            agent = await self._agent_factory()
            logger.info(f"Storacha agent created: {agent.did}")

            await self._setup_space(agent)
        except InitError as e:
            await self._discard(agent)
            logger.error(f"Failed to initialize Storacha client: {e}")
            raise
        except Exception as e:
            await self._discard(agent)
            logger.error(f"Failed to initialize Storacha client: {e}")
            raise InitError(f"Storacha initialization failed: {e}", e) from e
        except BaseException:
            # Cancelled (e.g. timed out) mid-setup
            await self._discard(agent)
            raise

        self.client = agent
        self.initialized = True
        logger.info(f"Storacha client initialized, current space: {agent.current_space()}")

    async def _setup_space(self, agent: StorachaAgent) -> None:
        """Select the target space directly, or through delegation."""
        try:
            spaces = await agent.spaces()
        except Exception as e:
            raise InitError(f"Space setup failed: {e}", e) from e

        if self.space_did in spaces:
            try:
                await agent.set_current_space(self.space_did)
            except Exception as e:
                raise InitError(f"Space setup failed: {e}", e) from e
            logger.info(f"Using authenticated space: {self.space_did}")
        else:
            logger.info("Setting up space delegation...")
            await self._setup_delegation(agent)

        if agent.current_space() != self.space_did:
            raise InitError(
                f"Space setup failed: current space is {agent.current_space()!r}, "
                f"expected {self.space_did}"
            )

    async def _setup_delegation(self, agent: StorachaAgent) -> None:
        try:
            if self._delegation_proof:
                await agent.add_proof(self._delegation_proof)
            await agent.set_current_space(self.space_did)
        except Exception as e:
            raise InitError(
                "Unable to access space. Please ensure proper delegation is set up.", e
            ) from e
        logger.info("Space delegation setup complete")

    async def _discard(self, agent: Optional[StorachaAgent]) -> None:
        if agent is None:
            return
        try:
            await agent.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing failed agent: {e}")

    async def close(self) -> None:
        """Release the session (process shutdown)."""
        async with self._lock:
            await self._discard(self.client)
            self.client = None
            self.initialized = False

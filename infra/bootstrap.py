"""
Relay process bootstrap.

Singleton holding the process-wide pieces shared by every request: the
cancellation controller, an optional upstream override, and the registry of
in-flight relay sessions so shutdown can abort them explicitly.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from inference import UpstreamBackend
from streaming import CancellationController, CancellationToken

from .config import RelayConfig, RelayProfile, get_config

logger = logging.getLogger(__name__)

UpstreamFactory = Callable[[RelayConfig, RelayProfile], UpstreamBackend]


class RelayBootstrap:
    """
    Bootstrap relay infrastructure.

    Singleton pattern - single instance per process.
    """

    _instance: Optional["RelayBootstrap"] = None

    def __init__(self, upstream_factory: Optional[UpstreamFactory] = None):
        """Initialize bootstrap with an optional upstream factory override."""
        self.controller = CancellationController()
        self.upstream_factory = upstream_factory
        self._tokens: Set[CancellationToken] = set()
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def get_instance(cls, upstream_factory: Optional[UpstreamFactory] = None) -> "RelayBootstrap":
        """
        Get singleton instance.

        Args:
            upstream_factory: Optional factory override (only used first time)

        Returns:
            Singleton RelayBootstrap instance
        """
        if cls._instance is None:
            cls._instance = cls(upstream_factory)
        return cls._instance

    @classmethod
    def reset(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def get_config(self) -> RelayConfig:
        return get_config()

    def create_upstream(self, config: RelayConfig, profile: RelayProfile) -> UpstreamBackend:
        if self.upstream_factory is not None:
            return self.upstream_factory(config, profile)
        return config.create_upstream(profile)

    def track(self, token: CancellationToken, task: asyncio.Task) -> None:
        """Register a live relay session until its task finishes."""
        self._tokens.add(token)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tokens.discard(token)
            self._tasks.discard(finished)
            token.disarm()

        task.add_done_callback(_done)

    @property
    def active_sessions(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Abort every in-flight session and wait for the relays to unwind."""
        if not self._tasks:
            return
        logger.info(f"Aborting {len(self._tasks)} in-flight relay session(s)")
        for token in list(self._tokens):
            self.controller.fire(token)
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def __repr__(self) -> str:
        override = "custom" if self.upstream_factory else "config"
        return f"RelayBootstrap(upstream={override}, active={self.active_sessions})"


def bootstrap_relay(upstream_factory: Optional[UpstreamFactory] = None) -> RelayBootstrap:
    """
    Bootstrap relay infrastructure.

    Args:
        upstream_factory: Optional upstream factory override

    Returns:
        RelayBootstrap instance
    """
    return RelayBootstrap.get_instance(upstream_factory)

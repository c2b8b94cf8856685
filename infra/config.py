"""
Relay configuration.

Each streaming entry point runs with its own RelayProfile. The two ceilings
and budgets differ on purpose: they mirror different upstream deployment
limits and are never merged.

Everything here is read from the environment on every request so rotated
credentials take effect without a restart.
"""

import os
from dataclasses import dataclass
from typing import Literal, Optional

from inference import DEFAULT_UPSTREAM_URL, FireworksUpstream, StubUpstream, UpstreamBackend
from streaming.relay import RelayMode


UpstreamBackendType = Literal["fireworks", "stub"]
ProfileName = Literal["proxy", "edge"]

PROXY_MAX_TOKENS = 40000
PROXY_BUDGET_S = 120.0
EDGE_MAX_TOKENS = 8192
EDGE_BUDGET_S = 25.0


@dataclass
class RelayProfile:
    """Limits for one entry point."""

    name: str
    provider_max_tokens: int
    budget_s: float
    mode: RelayMode
    connect_timeout_s: float = 10.0


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass
class RelayConfig:
    """Relay configuration from environment."""

    api_key: Optional[str]
    upstream_url: str
    upstream_backend: UpstreamBackendType
    proxy: RelayProfile
    edge: RelayProfile

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """
        Load configuration from environment variables.

        Defaults:
        - proxy: 40000 token ceiling, 120 s budget, raw passthrough
        - edge:  8192 token ceiling, 25 s budget, line reassembly
        """
        connect_timeout = _float_env("UPSTREAM_CONNECT_TIMEOUT_S", 10.0)
        return cls(
            api_key=os.getenv("FIREWORKS_API_KEY") or None,
            upstream_url=os.getenv("UPSTREAM_URL", DEFAULT_UPSTREAM_URL),
            upstream_backend=os.getenv("UPSTREAM_BACKEND", "fireworks"),  # type: ignore
            proxy=RelayProfile(
                name="proxy",
                provider_max_tokens=_int_env("PROXY_MAX_TOKENS", PROXY_MAX_TOKENS),
                budget_s=_float_env("PROXY_BUDGET_S", PROXY_BUDGET_S),
                mode=os.getenv("PROXY_RELAY_MODE", "raw"),  # type: ignore
                connect_timeout_s=connect_timeout,
            ),
            edge=RelayProfile(
                name="edge",
                provider_max_tokens=_int_env("EDGE_MAX_TOKENS", EDGE_MAX_TOKENS),
                budget_s=_float_env("EDGE_BUDGET_S", EDGE_BUDGET_S),
                mode=os.getenv("EDGE_RELAY_MODE", "lines"),  # type: ignore
                connect_timeout_s=connect_timeout,
            ),
        )

    def profile(self, name: ProfileName) -> RelayProfile:
        if name == "proxy":
            return self.proxy
        if name == "edge":
            return self.edge
        raise ValueError(f"Unknown relay profile: {name}")

    def create_upstream(self, profile: RelayProfile) -> UpstreamBackend:
        """
        Create the upstream backend for one session.

        Raises:
            ConfigurationMissing: fireworks backend selected without an API key
        """
        if self.upstream_backend == "stub":
            return StubUpstream()
        return FireworksUpstream(
            api_key=self.api_key or "",
            url=self.upstream_url,
            read_timeout_s=profile.budget_s,
            connect_timeout_s=profile.connect_timeout_s,
        )


def get_config() -> RelayConfig:
    """Get relay configuration (fresh from the environment)."""
    return RelayConfig.from_env()

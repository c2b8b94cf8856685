"""
Infrastructure module exports.

Relay profiles, configuration and the process bootstrap.
"""

from .config import (
    RelayConfig,
    RelayProfile,
    get_config,
    UpstreamBackendType,
    ProfileName,
    PROXY_MAX_TOKENS,
    PROXY_BUDGET_S,
    EDGE_MAX_TOKENS,
    EDGE_BUDGET_S,
)
from .bootstrap import RelayBootstrap, bootstrap_relay

__all__ = [
    "RelayConfig",
    "RelayProfile",
    "get_config",
    "UpstreamBackendType",
    "ProfileName",
    "PROXY_MAX_TOKENS",
    "PROXY_BUDGET_S",
    "EDGE_MAX_TOKENS",
    "EDGE_BUDGET_S",
    "RelayBootstrap",
    "bootstrap_relay",
]

"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infra import RelayBootstrap  # noqa: E402


@pytest.fixture(autouse=True)
def reset_bootstrap():
    """Each test gets a fresh process bootstrap."""
    RelayBootstrap.reset()
    yield
    RelayBootstrap.reset()

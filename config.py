"""
Configuration management for the stream relay.

Loads environment variables from .env file and provides typed access to
application-level settings. Per-request relay settings (credentials, budgets,
ceilings) live in infra.config and are re-read on every request.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)


class Config:
    """Configuration class for the relay service."""

    # Service
    RELAY_PORT = int(os.getenv("RELAY_PORT", "8000"))
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Upstream
    FIREWORKS_API_KEY = os.getenv("FIREWORKS_API_KEY")
    UPSTREAM_BACKEND = os.getenv("UPSTREAM_BACKEND", "fireworks")
    UPSTREAM_URL = os.getenv(
        "UPSTREAM_URL", "https://api.fireworks.ai/inference/v1/chat/completions"
    )

    @classmethod
    def validate(cls) -> bool:
        """Validate that required configuration is set."""
        if os.getenv("UPSTREAM_BACKEND", cls.UPSTREAM_BACKEND) == "stub":
            return True
        return bool(os.getenv("FIREWORKS_API_KEY"))


if __name__ == "__main__":
    print("Configuration loaded:")
    print(f"  Fireworks API key: {'✓ Set' if os.getenv('FIREWORKS_API_KEY') else '✗ Missing'}")
    print(f"  Upstream: {Config.UPSTREAM_BACKEND} ({Config.UPSTREAM_URL})")
    print(f"  Relay Port: {Config.RELAY_PORT}")
    print(f"  Environment: {Config.ENVIRONMENT}")
    print(f"\n  Validation: {'✓ PASSED' if Config.validate() else '✗ FAILED'}")

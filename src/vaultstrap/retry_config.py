"""Configuration for retry and readiness-poll behavior.

Sensible defaults, overridable through environment variables so operators
can stretch the vault readiness wait in slow regions without code changes.
"""

import os
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Retry configuration settings."""

    # Read-only Azure CLI queries
    azure_cli_max_attempts: int = 3
    azure_cli_initial_delay: float = 1.0
    azure_cli_max_delay: float = 30.0

    # Vault readiness poll
    readiness_max_attempts: int = 10
    readiness_initial_delay: float = 2.0
    readiness_max_delay: float = 30.0

    jitter_enabled: bool = True

    @classmethod
    def from_environment(cls) -> "RetryConfig":
        """Load retry configuration from environment variables.

        Environment variables (all optional):
            VAULTSTRAP_RETRY_MAX_ATTEMPTS: Default max attempts for az queries (default: 3)
            VAULTSTRAP_RETRY_INITIAL_DELAY: Default initial delay in seconds (default: 1.0)
            VAULTSTRAP_RETRY_MAX_DELAY: Default max delay in seconds (default: 30.0)
            VAULTSTRAP_READINESS_MAX_ATTEMPTS: Vault readiness probes (default: 10)
            VAULTSTRAP_READINESS_INITIAL_DELAY: First readiness delay (default: 2.0)
            VAULTSTRAP_READINESS_MAX_DELAY: Readiness delay cap (default: 30.0)
            VAULTSTRAP_RETRY_JITTER_ENABLED: Enable jitter (default: true)

        Returns:
            RetryConfig with values from environment or defaults
        """
        return cls(
            azure_cli_max_attempts=int(os.getenv("VAULTSTRAP_RETRY_MAX_ATTEMPTS", "3")),
            azure_cli_initial_delay=float(os.getenv("VAULTSTRAP_RETRY_INITIAL_DELAY", "1.0")),
            azure_cli_max_delay=float(os.getenv("VAULTSTRAP_RETRY_MAX_DELAY", "30.0")),
            readiness_max_attempts=int(os.getenv("VAULTSTRAP_READINESS_MAX_ATTEMPTS", "10")),
            readiness_initial_delay=float(
                os.getenv("VAULTSTRAP_READINESS_INITIAL_DELAY", "2.0")
            ),
            readiness_max_delay=float(os.getenv("VAULTSTRAP_READINESS_MAX_DELAY", "30.0")),
            jitter_enabled=os.getenv("VAULTSTRAP_RETRY_JITTER_ENABLED", "true").lower() == "true",
        )


# Global configuration instance (lazily loaded)
_config: RetryConfig | None = None


def get_retry_config() -> RetryConfig:
    """Get global retry configuration (loaded from environment on first access)."""
    global _config
    if _config is None:
        _config = RetryConfig.from_environment()
    return _config


def reset_retry_config() -> None:
    """Reset global retry configuration.

    Forces reload from environment on next access.
    """
    global _config
    _config = None


__all__ = ["RetryConfig", "get_retry_config", "reset_retry_config"]

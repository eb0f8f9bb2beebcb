"""
Shared test fixtures and configuration for vaultstrap tests.

This module provides common fixtures used across all test types:
- An in-memory CloudClient
- Isolated config files (never touches ~/.vaultstrap)
- Fast readiness pollers and retry settings
- Sample provisioning requests
"""

import threading

import pytest
from mocks.fake_cloud_client import FakeCloudClient

from vaultstrap.config_manager import ConfigManager
from vaultstrap.models import IdentityInfo, IdentityRequest, ProvisionRequest
from vaultstrap.readiness import VaultReadinessPoller
from vaultstrap.retry_config import reset_retry_config

# ============================================================================
# ISOLATION FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the default config file into tmp_path.

    Tests must never read or write the real ~/.vaultstrap/config.toml.
    """
    config_dir = tmp_path / ".vaultstrap"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_dir / "config.toml")
    return config_dir


@pytest.fixture(autouse=True)
def fresh_retry_config(monkeypatch):
    """Reload retry settings from a clean environment for each test."""
    for name in (
        "VAULTSTRAP_RETRY_MAX_ATTEMPTS",
        "VAULTSTRAP_RETRY_INITIAL_DELAY",
        "VAULTSTRAP_RETRY_MAX_DELAY",
        "VAULTSTRAP_READINESS_MAX_ATTEMPTS",
        "VAULTSTRAP_READINESS_INITIAL_DELAY",
        "VAULTSTRAP_READINESS_MAX_DELAY",
        "VAULTSTRAP_RETRY_JITTER_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)
    # No real waiting in the readiness poll
    monkeypatch.setenv("VAULTSTRAP_READINESS_INITIAL_DELAY", "0")
    monkeypatch.setenv("VAULTSTRAP_READINESS_MAX_DELAY", "0")
    reset_retry_config()
    yield
    reset_retry_config()


# ============================================================================
# CLOUD CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def make_client():
    """Factory for FakeCloudClient instances.

    Example:
        def test_existing_vault(make_client):
            client = make_client(vaults={"SpinnakerVault"})
    """
    return FakeCloudClient


@pytest.fixture
def fake_client():
    """A logged-in subscription with nothing provisioned yet."""
    return FakeCloudClient(
        identities=[IdentityInfo(app_id="spn-app-0001", display_name="spinnaker-sp")]
    )


@pytest.fixture
def cancel_event():
    return threading.Event()


@pytest.fixture
def fast_poller_factory(cancel_event):
    """Build a readiness poller that never sleeps."""

    def _factory(client, max_attempts: int = 5):
        return VaultReadinessPoller(
            client,
            max_attempts=max_attempts,
            initial_delay=0,
            max_delay=0,
            cancel_event=cancel_event,
        )

    return _factory


# ============================================================================
# SAMPLE DATA FIXTURES
# ============================================================================


@pytest.fixture
def provision_request() -> ProvisionRequest:
    """Request granting access by service principal name."""
    return ProvisionRequest(
        vm_username="azureuser",
        vm_password="Sup3r-Secret-Pa55!",  # noqa: S106 - test fixture, not a real credential
        identity_name="spinnaker-sp",
    )


@pytest.fixture
def identity_request() -> IdentityRequest:
    return IdentityRequest(app_name="spinnaker")

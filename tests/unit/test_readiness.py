"""Tests for VaultReadinessPoller."""

import threading
from unittest.mock import patch

import pytest

from vaultstrap.errors import CancelledError, ProvisionTimeoutError
from vaultstrap.readiness import VaultReadinessPoller


class TestVaultReadinessPoller:
    """Tests for VaultReadinessPoller.wait()."""

    def test_ready_on_first_probe(self, make_client, fast_poller_factory):
        client = make_client(vaults={"v"})
        poller = fast_poller_factory(client)

        info = poller.wait("v")

        assert info.name == "v"
        assert poller.attempts == 1

    def test_ready_after_failed_probes(self, make_client, fast_poller_factory):
        client = make_client(vaults={"v"}, not_ready_probes=3)
        poller = fast_poller_factory(client, max_attempts=5)

        poller.wait("v")

        assert poller.attempts == 4
        assert client.operations().count("get_vault") == 4

    def test_probe_errors_count_as_not_ready(self, make_client, fast_poller_factory):
        client = make_client(vaults={"v"})
        client.fail("get_vault")
        poller = fast_poller_factory(client, max_attempts=3)

        with pytest.raises(ProvisionTimeoutError):
            poller.wait("v")

        assert client.operations().count("get_vault") == 3

    def test_times_out_after_max_attempts(self, make_client, fast_poller_factory):
        client = make_client(vaults={"v"}, not_ready_probes=100)
        poller = fast_poller_factory(client, max_attempts=4)

        with pytest.raises(ProvisionTimeoutError) as exc_info:
            poller.wait("v")

        assert exc_info.value.exit_code == 13
        assert exc_info.value.attempts == 4
        assert client.operations().count("get_vault") == 4

    def test_backoff_delays(self, make_client):
        client = make_client(vaults={"v"}, not_ready_probes=3)
        event = threading.Event()
        poller = VaultReadinessPoller(
            client, max_attempts=5, initial_delay=2.0, max_delay=5.0, cancel_event=event
        )

        with patch.object(event, "wait", return_value=False) as mock_wait:
            poller.wait("v")

        assert [c.args[0] for c in mock_wait.call_args_list] == [2.0, 4.0, 5.0]

    def test_no_delay_after_last_probe(self, make_client):
        client = make_client(vaults={"v"}, not_ready_probes=100)
        event = threading.Event()
        poller = VaultReadinessPoller(client, max_attempts=2, initial_delay=1.0, cancel_event=event)

        with patch.object(event, "wait", return_value=False) as mock_wait:
            with pytest.raises(ProvisionTimeoutError):
                poller.wait("v")

        assert mock_wait.call_count == 1

    def test_cancelled_before_first_probe(self, make_client, fast_poller_factory, cancel_event):
        client = make_client(vaults={"v"})
        cancel_event.set()

        with pytest.raises(CancelledError) as exc_info:
            fast_poller_factory(client).wait("v")

        assert exc_info.value.exit_code == 130
        assert client.operations() == []

    def test_cancelled_while_waiting(self, make_client):
        client = make_client(vaults={"v"}, not_ready_probes=100)
        event = threading.Event()
        poller = VaultReadinessPoller(client, max_attempts=10, initial_delay=1.0, cancel_event=event)

        # Event.wait returns True once the event is set
        with patch.object(event, "wait", return_value=True):
            with pytest.raises(CancelledError):
                poller.wait("v")

        assert client.operations().count("get_vault") == 1

    def test_defaults_from_retry_config(self, make_client, monkeypatch):
        from vaultstrap.retry_config import reset_retry_config

        monkeypatch.setenv("VAULTSTRAP_READINESS_MAX_ATTEMPTS", "6")
        reset_retry_config()

        poller = VaultReadinessPoller(make_client())

        assert poller.max_attempts == 6
        assert poller.initial_delay == 0.0

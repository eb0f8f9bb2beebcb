"""Tests for azure_cli_executor module.

Tests the run_az_command helper that wraps subprocess.run with retry logic
for Azure CLI calls.
"""

import logging
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from vaultstrap.azure_cli_executor import run_az_command


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("vaultstrap.retry_handler.time.sleep") as mock_sleep:
        yield mock_sleep


class TestRunAzCommand:
    """Test run_az_command helper function."""

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_success_returns_completed_process(self, mock_run: MagicMock) -> None:
        """Successful az command returns CompletedProcess."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["az", "keyvault", "list"], returncode=0, stdout='[{"name": "v1"}]', stderr=""
        )

        result = run_az_command(["az", "keyvault", "list"])

        assert result.returncode == 0
        assert result.stdout == '[{"name": "v1"}]'
        mock_run.assert_called_once()

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_passes_default_kwargs(self, mock_run: MagicMock) -> None:
        """Verifies default capture_output, text, check, timeout are passed."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["az", "account", "show"], returncode=0, stdout="{}", stderr=""
        )

        run_az_command(["az", "account", "show"])

        _, kwargs = mock_run.call_args
        assert kwargs["capture_output"] is True
        assert kwargs["text"] is True
        assert kwargs["check"] is True
        assert kwargs["timeout"] == 60

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_custom_timeout_and_check(self, mock_run: MagicMock) -> None:
        """Custom timeout and check=False are forwarded to subprocess.run."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["az", "keyvault", "show"], returncode=3, stdout="", stderr="not found"
        )

        result = run_az_command(["az", "keyvault", "show"], timeout=300, check=False)

        _, kwargs = mock_run.call_args
        assert kwargs["timeout"] == 300
        assert kwargs["check"] is False
        assert result.returncode == 3

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_retries_on_called_process_error(self, mock_run: MagicMock) -> None:
        """Retries on CalledProcessError (transient Azure failure)."""
        mock_run.side_effect = [
            subprocess.CalledProcessError(1, "az", stderr="ServiceUnavailable"),
            subprocess.CompletedProcess(
                args=["az", "keyvault", "list"], returncode=0, stdout="[]", stderr=""
            ),
        ]

        result = run_az_command(["az", "keyvault", "list"], max_attempts=3)

        assert result.returncode == 0
        assert mock_run.call_count == 2

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_retries_on_timeout(self, mock_run: MagicMock) -> None:
        """Retries on TimeoutExpired."""
        mock_run.side_effect = [
            subprocess.TimeoutExpired("az", 60),
            subprocess.CompletedProcess(args=["az"], returncode=0, stdout="{}", stderr=""),
        ]

        result = run_az_command(["az", "group", "show"], max_attempts=2)

        assert result.returncode == 0
        assert mock_run.call_count == 2

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_raises_after_max_attempts(self, mock_run: MagicMock) -> None:
        """Raises CalledProcessError after exhausting retry attempts."""
        mock_run.side_effect = subprocess.CalledProcessError(1, "az", stderr="InternalError")

        with pytest.raises(subprocess.CalledProcessError):
            run_az_command(["az", "keyvault", "list"], max_attempts=2)

        assert mock_run.call_count == 2

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_no_retry_runs_once(self, mock_run: MagicMock, no_sleep: MagicMock) -> None:
        """retry=False never repeats a failed command and never waits."""
        mock_run.side_effect = subprocess.CalledProcessError(1, "az", stderr="Conflict")

        with pytest.raises(subprocess.CalledProcessError):
            run_az_command(["az", "keyvault", "create", "--name", "v"], retry=False)

        mock_run.assert_called_once()
        no_sleep.assert_not_called()

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_no_retry_ignores_max_attempts(self, mock_run: MagicMock) -> None:
        """retry=False wins over an explicit attempt count."""
        mock_run.side_effect = subprocess.TimeoutExpired("az", 60)

        with pytest.raises(subprocess.TimeoutExpired):
            run_az_command(["az", "account", "show"], retry=False, max_attempts=5)

        mock_run.assert_called_once()

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_no_retry_forwards_check(self, mock_run: MagicMock) -> None:
        """A single-attempt command still honours check=False."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["az"], returncode=3, stdout="", stderr="not found"
        )

        result = run_az_command(["az", "keyvault", "show"], retry=False, check=False)

        assert result.returncode == 3
        assert mock_run.call_args.kwargs["check"] is False

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_default_attempts_from_environment(self, mock_run: MagicMock, monkeypatch) -> None:
        """Attempt count defaults to VAULTSTRAP_RETRY_MAX_ATTEMPTS."""
        from vaultstrap.retry_config import reset_retry_config

        monkeypatch.setenv("VAULTSTRAP_RETRY_MAX_ATTEMPTS", "4")
        reset_retry_config()
        mock_run.side_effect = subprocess.CalledProcessError(1, "az", stderr="InternalError")

        with pytest.raises(subprocess.CalledProcessError):
            run_az_command(["az", "group", "exists", "--name", "rg"])

        assert mock_run.call_count == 4

    @patch("vaultstrap.azure_cli_executor.subprocess.run")
    def test_debug_log_redacts_secret_arguments(self, mock_run: MagicMock, caplog) -> None:
        """The executed command is logged with secret values redacted."""
        mock_run.return_value = subprocess.CompletedProcess(
            args=["az"], returncode=0, stdout="{}", stderr=""
        )

        with caplog.at_level(logging.DEBUG, logger="vaultstrap.azure_cli_executor"):
            run_az_command(["az", "ad", "app", "create", "--password", "hunter2"])

        assert "hunter2" not in caplog.text
        assert "[REDACTED]" in caplog.text

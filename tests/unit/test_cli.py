"""Tests for the vaultstrap command-line interface.

AzureCliClient is replaced by the in-memory fake so every command runs
end to end without touching Azure.
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from vaultstrap import __version__
from vaultstrap.cli import main
from vaultstrap.config_manager import ConfigManager
from vaultstrap.models import IdentityInfo

KEYVAULT_ARGS = ["keyvault", "-s", "spinnaker-sp", "-u", "azureuser", "-p", "Sup3r-Secret!"]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_client(fake_client):
    with patch("vaultstrap.cli.AzureCliClient", return_value=fake_client) as mock_cls:
        yield mock_cls


class TestMainGroup:
    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_short_flag(self, runner):
        result = runner.invoke(main, ["-h"])

        assert result.exit_code == 0
        assert "keyvault" in result.output
        assert "init" in result.output


class TestKeyvaultCommand:
    """Tests for `vaultstrap keyvault`."""

    def test_success(self, runner, cli_client, fake_client):
        result = runner.invoke(main, KEYVAULT_ARGS)

        assert result.exit_code == 0, result.output
        assert "Key Vault setup complete" in result.output
        assert ("SpinnakerVault", "VMPassword") in fake_client.secrets
        assert ("SpinnakerVault", "spn-app-0001") in fake_client.policies

    def test_password_not_echoed_without_debug(self, runner, cli_client):
        result = runner.invoke(main, KEYVAULT_ARGS)

        assert "Sup3r-Secret!" not in result.output

    def test_debug_echoes_inputs(self, runner, cli_client):
        result = runner.invoke(main, [*KEYVAULT_ARGS, "--debug"])

        assert result.exit_code == 0, result.output
        assert "Service Principal Name: spinnaker-sp" in result.output
        assert "VM Password: Sup3r-Secret!" in result.output

    def test_missing_password(self, runner, cli_client):
        result = runner.invoke(main, ["keyvault", "-s", "spinnaker-sp", "-u", "azureuser"])

        assert result.exit_code == 2
        assert "USERNAME AND PASSWORD" in result.output
        cli_client.assert_not_called()

    def test_missing_identity(self, runner, cli_client):
        result = runner.invoke(main, ["keyvault", "-u", "azureuser", "-p", "pw"])

        assert result.exit_code == 2
        assert "Service Principal Name or the Application ID" in result.output

    def test_not_logged_in(self, runner, make_client):
        client = make_client(logged_in=False)
        with patch("vaultstrap.cli.AzureCliClient", return_value=client):
            result = runner.invoke(main, KEYVAULT_ARGS)

        assert result.exit_code == 10
        assert "NotLoggedIn" in result.output
        assert client.mutating_operations() == []

    def test_step_failure_exit_code(self, runner, cli_client, fake_client):
        fake_client.fail("set_vault_access_policy")

        result = runner.invoke(main, KEYVAULT_ARGS)

        assert result.exit_code == 16
        assert "AccessPolicyStep failed [GrantFailed]" in result.output

    def test_options_forwarded(self, runner, cli_client, fake_client):
        result = runner.invoke(
            main,
            [
                *KEYVAULT_ARGS,
                "--rg",
                "team-rg",
                "--vault-name",
                "TeamVault",
                "--region",
                "westus2",
                "--timeout",
                "120",
            ],
        )

        assert result.exit_code == 0, result.output
        assert fake_client.groups == {"team-rg": "westus2"}
        assert fake_client.vaults == {"TeamVault"}
        cli_client.assert_called_once_with(timeout=120)

    def test_config_defaults_used(self, runner, cli_client, fake_client):
        ConfigManager.set_value("default_vault_name", "ConfiguredVault")
        ConfigManager.set_value("az_timeout", "30")

        result = runner.invoke(main, KEYVAULT_ARGS)

        assert result.exit_code == 0, result.output
        assert fake_client.vaults == {"ConfiguredVault"}
        cli_client.assert_called_once_with(timeout=30)

    def test_app_id_wins_over_name(self, runner, cli_client, fake_client):
        result = runner.invoke(main, [*KEYVAULT_ARGS, "-a", "explicit-app"])

        assert result.exit_code == 0, result.output
        assert "find_identity" not in fake_client.operations()
        assert ("SpinnakerVault", "explicit-app") in fake_client.policies


class TestInitCommand:
    """Tests for `vaultstrap init`."""

    INIT_ARGS = [
        "init",
        "--app-name",
        "spinnaker",
        "--homepage",
        "http://spinnaker.example",
        "-i",
        "https://spinnaker.example/app",
        "-u",
        "azureuser",
        "-p",
        "Sup3r-Secret!",
    ]

    def test_success_prints_identity(self, runner, cli_client, fake_client):
        result = runner.invoke(main, self.INIT_ARGS)

        assert result.exit_code == 0, result.output
        assert "Tenant ID: tenant-0001" in result.output
        assert "Subscription ID: sub-0001" in result.output
        assert "Client ID: app-0001" in result.output
        assert "Object ID: sp-object-0001" in result.output
        assert "Display name: spinnaker" in result.output
        assert "Client secret: generated-client-secret" in result.output
        assert "Azure setup complete" in result.output
        assert ("SpinnakerVault", "app-0001") in fake_client.policies

    def test_prompts_for_missing_values(self, runner, cli_client, fake_client):
        result = runner.invoke(main, ["init"], input="\n\n\nazureuser\npw\npw\n")

        assert result.exit_code == 0, result.output
        assert fake_client.calls[1] == (
            "create_application",
            "ExampleApp",
            "http://www.contosorg.org",
            "https://www.contosorg.org/example",
        )
        assert fake_client.secrets[("SpinnakerVault", "VMPassword")] == "pw"

    def test_identity_failure(self, runner, cli_client, fake_client):
        fake_client.fail("create_role_assignment")

        result = runner.invoke(main, self.INIT_ARGS)

        assert result.exit_code == 17
        assert "IdentityStep failed [IdentityCreateFailed]" in result.output
        assert "get_resource_group" not in fake_client.operations()

    def test_vault_failure_still_shows_identity(self, runner, cli_client, fake_client):
        fake_client.fail("register_provider")

        result = runner.invoke(main, self.INIT_ARGS)

        assert result.exit_code == 12
        assert "Client ID: app-0001" in result.output


class TestConfigCommands:
    def test_show_defaults(self, runner):
        result = runner.invoke(main, ["config", "show"])

        assert result.exit_code == 0
        assert "default_vault_name" in result.output
        assert "SpinnakerVault" in result.output

    def test_set_then_show(self, runner):
        set_result = runner.invoke(main, ["config", "set", "default_region", "westus2"])
        show_result = runner.invoke(main, ["config", "show"])

        assert set_result.exit_code == 0
        assert "westus2" in show_result.output

    def test_set_unknown_key(self, runner):
        result = runner.invoke(main, ["config", "set", "nope", "x"])

        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    def test_missing_custom_config(self, runner, tmp_path):
        result = runner.invoke(main, ["config", "show", "--config", str(tmp_path / "none.toml")])

        assert result.exit_code == 2
        assert "Config file not found" in result.output


def test_identity_search_uses_display_name(runner, make_client):
    client = make_client(identities=[IdentityInfo(app_id="found-app", display_name="team-sp")])
    with patch("vaultstrap.cli.AzureCliClient", return_value=client):
        result = runner.invoke(main, ["keyvault", "-s", "team-sp", "-u", "u", "-p", "p"])

    assert result.exit_code == 0, result.output
    assert ("find_identity", "team-sp") in client.calls

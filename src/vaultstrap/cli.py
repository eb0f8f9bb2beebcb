"""vaultstrap command-line interface.

Commands:
    keyvault    Provision the resource group, vault and bootstrap secrets
    init        Create a service identity, then run keyvault for it
    config      Show or change stored defaults
"""

import contextlib
import logging
import signal
import sys
import threading
from collections.abc import Iterator

import click
from rich.console import Console
from rich.table import Table

from vaultstrap import __version__
from vaultstrap.cloud_client import AzureCliClient
from vaultstrap.config_manager import ConfigManager, VaultstrapConfig
from vaultstrap.config_resolver import ConfigResolver
from vaultstrap.errors import ConfigError
from vaultstrap.orchestrator import BootstrapOrchestrator, OrchestrationResult, Orchestrator

logger = logging.getLogger(__name__)

__all__ = ["main"]


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


def _load_config(config_path: str | None) -> VaultstrapConfig:
    try:
        return ConfigManager.load_config(config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)


@contextlib.contextmanager
def _cancellation() -> Iterator[threading.Event]:
    """Turn SIGINT/SIGTERM into a cancel event for the duration of a run."""
    event = threading.Event()

    def _handler(signum, frame):
        logger.warning("Cancellation requested, stopping after the current call...")
        event.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # Not in the main thread (e.g. under a test runner); no handler
            pass
    try:
        yield event
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _print_steps(result: OrchestrationResult, console: Console) -> None:
    table = Table(title="Key Vault setup", show_header=True, header_style="bold")
    table.add_column("Step")
    table.add_column("Result")
    table.add_column("Detail", overflow="fold")
    for step_name, step_result in result.steps:
        status = "[green]OK[/green]" if step_result.ok else f"[red]FAILED ({step_result.code})[/red]"
        table.add_row(step_name, status, step_result.message)
    console.print(table)


def _report_failure(step: str | None, error) -> None:
    click.echo(f"Error: {step} failed [{error.kind}]: {error}", err=True)


@click.group(context_settings={"help_option_names": ["--help", "-h"]})
@click.version_option(version=__version__)
def main() -> None:
    """vaultstrap - Azure Key Vault bootstrap for Spinnaker.

    Creates a resource group, registers the Key Vault provider, creates a
    vault, stores the default VM credentials as secrets and grants a service
    principal read access to them. Every step is safe to re-run.

    \b
    Examples:
        vaultstrap keyvault -s my-spn -u azureuser -p 'S3cret!'
        vaultstrap keyvault -a 11111111-2222-3333-4444-555555555555 -u admin -p 'p@ss'
        vaultstrap init --app-name spinnaker

    \b
    CONFIGURATION:
        Config file: ~/.vaultstrap/config.toml
        Set defaults: vaultstrap config set default_region westus2
    """


@main.command(name="keyvault")
@click.option("--spn", "-s", "identity_name", help="Service principal name to grant access")
@click.option("--app-id", "-a", "app_id", help="Application (client) id to grant access")
@click.option("--username", "-u", "vm_username", help="Default VM username")
@click.option("--password", "-p", "vm_password", help="Default VM password")
@click.option("--resource-group", "--rg", help="Resource group (default: SpinnakerDefault)")
@click.option("--vault-name", help="Key Vault name (default: SpinnakerVault)")
@click.option("--region", help="Azure region (default: eastus)")
@click.option("--timeout", type=int, help="Timeout in seconds for each az call")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
@click.option("--debug", "-d", is_flag=True, help="Verbose output, echoes inputs")
def keyvault(
    identity_name: str | None,
    app_id: str | None,
    vm_username: str | None,
    vm_password: str | None,
    resource_group: str | None,
    vault_name: str | None,
    region: str | None,
    timeout: int | None,
    config_path: str | None,
    debug: bool,
):
    """Provision the Key Vault and grant a service principal access.

    Requires -u and -p, and one of -s or -a. When both -s and -a are
    given the application id is used and no search is made.

    \b
    Examples:
        vaultstrap keyvault -s spinnaker-sp -u azureuser -p 'S3cret!'
        vaultstrap keyvault -a <app-id> -u azureuser -p 'S3cret!' --region westus2
    """
    _configure_logging(debug)
    config = _load_config(config_path)

    if debug:
        click.echo(f"Service Principal Name: {identity_name or ''}")
        click.echo(f"VM Username: {vm_username or ''}")
        click.echo(f"VM Password: {vm_password or ''}")
        click.echo(f"App ID: {app_id or ''}")

    try:
        request = ConfigResolver(config).resolve(
            vm_username=vm_username,
            vm_password=vm_password,
            identity_name=identity_name,
            app_id=app_id,
            resource_group=resource_group,
            vault_name=vault_name,
            region=region,
            debug=debug,
        )
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        click.echo(
            'Usage: vaultstrap keyvault -s "<service_principal_name>" -u "<VM_username>" '
            '-p "<VM_Password>" [-a <AppID>]',
            err=True,
        )
        sys.exit(e.exit_code)

    client = AzureCliClient(timeout=timeout or config.az_timeout)
    with _cancellation() as cancel_event:
        result = Orchestrator(client, cancel_event=cancel_event).run(request)

    _print_steps(result, Console())

    if not result.succeeded:
        _report_failure(result.failed_step, result.error)
        sys.exit(result.exit_code)

    click.echo("Key Vault setup complete")


@main.command(name="init")
@click.option("--app-name", "-a", help="Application display name")
@click.option("--homepage", help="Application homepage URL")
@click.option("--identifier-uris", "-i", help="Application identifier URI")
@click.option("--role", help="Role assigned on the subscription (default: Contributor)")
@click.option("--username", "-u", "vm_username", help="Default VM username")
@click.option("--password", "-p", "vm_password", help="Default VM password")
@click.option("--resource-group", "--rg", help="Resource group (default: SpinnakerDefault)")
@click.option("--vault-name", help="Key Vault name (default: SpinnakerVault)")
@click.option("--region", help="Azure region (default: eastus)")
@click.option("--timeout", type=int, help="Timeout in seconds for each az call")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
@click.option("--debug", "-d", is_flag=True, help="Verbose output, echoes inputs")
def init(
    app_name: str | None,
    homepage: str | None,
    identifier_uris: str | None,
    role: str | None,
    vm_username: str | None,
    vm_password: str | None,
    resource_group: str | None,
    vault_name: str | None,
    region: str | None,
    timeout: int | None,
    config_path: str | None,
    debug: bool,
):
    """Create a service identity and a Key Vault it can read.

    Creates an application registration with a client secret, its service
    principal and a role assignment on the current subscription, then runs
    the keyvault setup for the new application. Missing values are prompted.
    """
    _configure_logging(debug)
    config = _load_config(config_path)

    if app_name is None:
        app_name = click.prompt("Specify app name", default=config.default_app_name)
    if homepage is None:
        homepage = click.prompt("Specify homepage", default=config.default_homepage)
    if identifier_uris is None:
        identifier_uris = click.prompt(
            "Specify identifier-uris", default=config.default_identifier_uris
        )
    if vm_username is None:
        vm_username = click.prompt("Specify VM username")
    if vm_password is None:
        vm_password = click.prompt("Specify VM password", hide_input=True, confirmation_prompt=True)

    if debug:
        click.echo(f"App Name: {app_name}")
        click.echo(f"Homepage: {homepage}")
        click.echo(f"Identifier URIs: {identifier_uris}")
        click.echo(f"VM Username: {vm_username}")
        click.echo(f"VM Password: {vm_password}")

    resolver = ConfigResolver(config)
    try:
        identity_request = resolver.resolve_identity(
            app_name=app_name, homepage=homepage, identifier_uris=identifier_uris, role=role
        )
        request = resolver.resolve(
            vm_username=vm_username,
            vm_password=vm_password,
            resource_group=resource_group,
            vault_name=vault_name,
            region=region,
            debug=debug,
            require_identity=False,
        )
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)

    client = AzureCliClient(timeout=timeout or config.az_timeout)
    with _cancellation() as cancel_event:
        result = BootstrapOrchestrator(client, cancel_event=cancel_event).run(
            identity_request, request
        )

    if result.vault_result is not None:
        _print_steps(result.vault_result, Console())

    if result.identity is not None:
        if result.session is not None:
            click.echo(f"Tenant ID: {result.session.tenant_id}")
            click.echo(f"Subscription ID: {result.session.subscription_id}")
        click.echo(f"Client ID: {result.identity.app_id}")
        click.echo(f"Object ID: {result.identity.object_id}")
        click.echo(f"Display name: {result.identity.display_name}")
        click.echo(f"Client secret: {result.identity.password}")
        click.echo("Store the client secret now; it cannot be retrieved again.")

    if not result.succeeded:
        _report_failure(result.failed_step, result.error)
        sys.exit(result.exit_code)

    click.echo("Azure setup complete")


@main.group(name="config")
def config_group():
    """Show or change stored defaults."""


@config_group.command(name="show")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def config_show(config_path: str | None):
    """Show the effective configuration."""
    config = _load_config(config_path)
    table = Table(show_header=True, header_style="bold")
    table.add_column("Key")
    table.add_column("Value")
    for key, value in config.to_dict().items():
        table.add_row(key, str(value))
    Console().print(table)


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
@click.option("--config", "config_path", help="Config file path", type=click.Path())
def config_set(key: str, value: str, config_path: str | None):
    """Set a default, e.g. `vaultstrap config set default_region westus2`."""
    try:
        path = ConfigManager.set_value(key, value, config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    click.echo(f"Set {key} = {value} in {path}")


if __name__ == "__main__":
    main()

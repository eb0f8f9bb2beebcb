"""Cloud control-plane boundary.

CloudClient is the protocol every provisioning step talks to. AzureCliClient
is the production implementation: control-plane calls go through the Azure
CLI via run_az_command, secret writes go through the Key Vault data-plane
SDK with the CLI's own login (AzureCliCredential).

Every response is parsed into a typed model here, once. Steps never look at
raw JSON.

Example:
    >>> client = AzureCliClient(timeout=60)
    >>> session = client.account_info()
    >>> client.bind_session(session)
    >>> client.get_resource_group("SpinnakerDefault")
"""

import json
import logging
import subprocess
from typing import Any, Protocol, runtime_checkable

from azure.core.exceptions import AzureError
from azure.identity import AzureCliCredential
from azure.keyvault.secrets import SecretClient

from vaultstrap.azure_cli_executor import run_az_command
from vaultstrap.errors import CloudClientError
from vaultstrap.log_sanitizer import LogSanitizer
from vaultstrap.models import (
    ApplicationCredential,
    IdentityInfo,
    ProvisioningState,
    ResourceGroupInfo,
    SecretAttributes,
    ServicePrincipal,
    Session,
    VaultInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60
CREATE_TIMEOUT = 300

NOT_FOUND_MARKERS = ("not found", "notfound", "could not be found", "does not exist")


@runtime_checkable
class CloudClient(Protocol):
    """Remote control-plane operations needed to bootstrap a vault."""

    def bind_session(self, session: Session) -> None: ...

    def account_info(self) -> Session: ...

    def get_resource_group(self, name: str) -> ResourceGroupInfo | None: ...

    def create_resource_group(self, name: str, region: str) -> ProvisioningState: ...

    def register_provider(self, namespace: str) -> None: ...

    def list_vaults(self) -> list[VaultInfo]: ...

    def get_vault(self, name: str) -> VaultInfo | None: ...

    def create_vault(self, name: str, group: str, region: str) -> ProvisioningState: ...

    def set_secret(self, vault: str, name: str, value: str) -> SecretAttributes: ...

    def find_identity(self, name_query: str) -> list[IdentityInfo]: ...

    def set_vault_access_policy(
        self, vault: str, principal_id: str, permissions: frozenset[str]
    ) -> None: ...

    def create_application(
        self, name: str, homepage: str, identifier_uris: str
    ) -> IdentityInfo: ...

    def add_application_password(self, app_id: str) -> ApplicationCredential: ...

    def create_service_principal(self, app_id: str) -> ServicePrincipal: ...

    def create_role_assignment(self, object_id: str, role: str, scope: str) -> None: ...


def _is_not_found(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in NOT_FOUND_MARKERS)


class AzureCliClient:
    """CloudClient backed by the Azure CLI and the Key Vault secrets SDK.

    Read-only queries are retried with exponential backoff; mutating calls
    and the session check run exactly once. All calls share the
    caller-supplied timeout.
    """

    def __init__(self, timeout: int = DEFAULT_TIMEOUT, credential: Any | None = None):
        """Initialize the client.

        Args:
            timeout: Per-command timeout in seconds for az calls
            credential: Token credential for data-plane calls (default: AzureCliCredential)
        """
        self.timeout = timeout
        self.session: Session | None = None
        self._credential = credential
        self._secret_clients: dict[str, SecretClient] = {}

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def bind_session(self, session: Session) -> None:
        """Scope subsequent subscription-level calls to the verified session."""
        self.session = session
        logger.debug(f"Bound session for subscription {session.subscription_id}")

    def _scoped(self, cmd: list[str]) -> list[str]:
        if self.session and self.session.subscription_id:
            return [*cmd, "--subscription", self.session.subscription_id]
        return cmd

    def _run(
        self,
        cmd: list[str],
        *,
        retry: bool = True,
        timeout: int | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run an az command, converting failures to CloudClientError.

        Args:
            retry: False for mutating calls and the session check (single attempt)
        """
        operation = LogSanitizer.sanitize_command(cmd)
        try:
            return run_az_command(
                cmd,
                timeout=timeout or self.timeout,
                retry=retry,
            )
        except subprocess.CalledProcessError as e:
            raise CloudClientError(
                operation, e.returncode, LogSanitizer.truncate(LogSanitizer.sanitize(e.stderr or ""))
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CloudClientError(operation, None, f"timed out after {e.timeout}s") from e
        except FileNotFoundError as e:
            raise CloudClientError(operation, None, "Azure CLI (az) is not installed") from e

    def _run_json(self, cmd: list[str], **kwargs: Any) -> Any:
        result = self._run([*cmd, "--output", "json"], **kwargs)
        return self._parse_json(cmd, result.stdout)

    @staticmethod
    def _parse_json(cmd: list[str], stdout: str) -> Any:
        if not stdout or not stdout.strip():
            return None
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            raise CloudClientError(
                LogSanitizer.sanitize_command(cmd), None, f"invalid JSON response: {e}"
            ) from e

    def _probe(self, cmd: list[str]) -> Any | None:
        """Single-attempt read that maps a not-found response to None."""
        full_cmd = [*cmd, "--output", "json"]
        operation = LogSanitizer.sanitize_command(full_cmd)
        try:
            result = run_az_command(full_cmd, timeout=self.timeout, retry=False, check=False)
        except subprocess.TimeoutExpired as e:
            raise CloudClientError(operation, None, f"timed out after {e.timeout}s") from e
        except FileNotFoundError as e:
            raise CloudClientError(operation, None, "Azure CLI (az) is not installed") from e

        if result.returncode != 0:
            if _is_not_found(result.stderr or ""):
                return None
            raise CloudClientError(
                operation,
                result.returncode,
                LogSanitizer.truncate(LogSanitizer.sanitize(result.stderr or "")),
            )
        return self._parse_json(cmd, result.stdout)

    @staticmethod
    def _provisioning_state(data: Any) -> ProvisioningState:
        if not isinstance(data, dict):
            return ProvisioningState.UNKNOWN
        properties = data.get("properties") or {}
        return ProvisioningState.parse(properties.get("provisioningState"))

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def account_info(self) -> Session:
        data = self._run_json(["az", "account", "show"], retry=False)
        if not isinstance(data, dict):
            raise CloudClientError("az account show", None, "unexpected response format")
        return Session(
            tenant_id=data.get("tenantId") or "",
            subscription_id=data.get("id") or "",
        )

    # ------------------------------------------------------------------
    # Resource groups and providers
    # ------------------------------------------------------------------

    def get_resource_group(self, name: str) -> ResourceGroupInfo | None:
        exists = self._run_json(self._scoped(["az", "group", "exists", "--name", name]))
        if exists is not True:
            return None

        data = self._run_json(self._scoped(["az", "group", "show", "--name", name]))
        if not isinstance(data, dict):
            return None
        return ResourceGroupInfo(
            name=data.get("name", name),
            location=data.get("location", ""),
            provisioning_state=self._provisioning_state(data),
        )

    def create_resource_group(self, name: str, region: str) -> ProvisioningState:
        data = self._run_json(
            self._scoped(["az", "group", "create", "--name", name, "--location", region]),
            retry=False,
        )
        return self._provisioning_state(data)

    def register_provider(self, namespace: str) -> None:
        self._run(
            self._scoped(["az", "provider", "register", "--namespace", namespace, "--wait"]),
            retry=False,
            timeout=CREATE_TIMEOUT,
        )

    # ------------------------------------------------------------------
    # Vaults and secrets
    # ------------------------------------------------------------------

    @staticmethod
    def _vault_info(data: dict) -> VaultInfo:
        properties = data.get("properties") or {}
        return VaultInfo(
            name=data.get("name", ""),
            location=data.get("location"),
            resource_group=data.get("resourceGroup"),
            vault_uri=properties.get("vaultUri"),
        )

    def list_vaults(self) -> list[VaultInfo]:
        data = self._run_json(self._scoped(["az", "keyvault", "list", "--resource-type", "vault"]))
        if not isinstance(data, list):
            raise CloudClientError("az keyvault list", None, "unexpected response format")
        return [self._vault_info(item) for item in data if isinstance(item, dict)]

    def get_vault(self, name: str) -> VaultInfo | None:
        data = self._probe(self._scoped(["az", "keyvault", "show", "--name", name]))
        if not isinstance(data, dict):
            return None
        return self._vault_info(data)

    def create_vault(self, name: str, group: str, region: str) -> ProvisioningState:
        data = self._run_json(
            self._scoped(
                [
                    "az",
                    "keyvault",
                    "create",
                    "--name",
                    name,
                    "--resource-group",
                    group,
                    "--location",
                    region,
                    "--enabled-for-deployment",
                    "true",
                    "--enable-rbac-authorization",
                    "false",
                ]
            ),
            retry=False,
            timeout=CREATE_TIMEOUT,
        )
        return self._provisioning_state(data)

    def _secret_client(self, vault: str) -> SecretClient:
        if vault not in self._secret_clients:
            if self._credential is None:
                self._credential = AzureCliCredential(process_timeout=self.timeout)
            self._secret_clients[vault] = SecretClient(
                vault_url=f"https://{vault}.vault.azure.net", credential=self._credential
            )
            logger.debug(f"Created SecretClient for vault: {vault}")
        return self._secret_clients[vault]

    def set_secret(self, vault: str, name: str, value: str) -> SecretAttributes:
        try:
            secret = self._secret_client(vault).set_secret(name, value)
        except AzureError as e:
            raise CloudClientError(
                f"set secret {name} in {vault}",
                getattr(e, "status_code", None),
                LogSanitizer.truncate(LogSanitizer.sanitize(str(e))),
            ) from e
        return SecretAttributes(name=secret.name or name, enabled=secret.properties.enabled is True)

    # ------------------------------------------------------------------
    # Identities and access
    # ------------------------------------------------------------------

    def find_identity(self, name_query: str) -> list[IdentityInfo]:
        data = self._run_json(["az", "ad", "sp", "list", "--display-name", name_query])
        if not isinstance(data, list):
            return []
        return [
            IdentityInfo(app_id=item["appId"], display_name=item.get("displayName"))
            for item in data
            if isinstance(item, dict) and item.get("appId")
        ]

    def set_vault_access_policy(
        self, vault: str, principal_id: str, permissions: frozenset[str]
    ) -> None:
        self._run(
            self._scoped(
                [
                    "az",
                    "keyvault",
                    "set-policy",
                    "--name",
                    vault,
                    "--spn",
                    principal_id,
                    "--secret-permissions",
                    *sorted(permissions),
                    "--output",
                    "none",
                ]
            ),
            retry=False,
        )

    def create_application(self, name: str, homepage: str, identifier_uris: str) -> IdentityInfo:
        data = self._run_json(
            [
                "az",
                "ad",
                "app",
                "create",
                "--display-name",
                name,
                "--web-home-page-url",
                homepage,
                "--identifier-uris",
                identifier_uris,
            ],
            retry=False,
        )
        if not isinstance(data, dict) or not data.get("appId"):
            raise CloudClientError("az ad app create", None, "response did not include an appId")
        return IdentityInfo(app_id=data["appId"], display_name=data.get("displayName", name))

    def add_application_password(self, app_id: str) -> ApplicationCredential:
        data = self._run_json(
            [
                "az",
                "ad",
                "app",
                "credential",
                "reset",
                "--id",
                app_id,
                "--append",
                "--display-name",
                "vaultstrap",
            ],
            retry=False,
        )
        if not isinstance(data, dict) or not data.get("password"):
            raise CloudClientError(
                "az ad app credential reset", None, "response did not include a password"
            )
        return ApplicationCredential(app_id=app_id, password=data["password"])

    def create_service_principal(self, app_id: str) -> ServicePrincipal:
        data = self._run_json(["az", "ad", "sp", "create", "--id", app_id], retry=False)
        object_id = None
        if isinstance(data, dict):
            object_id = data.get("id") or data.get("objectId")
        if not object_id:
            raise CloudClientError("az ad sp create", None, "response did not include an object id")
        return ServicePrincipal(app_id=app_id, object_id=object_id)

    def create_role_assignment(self, object_id: str, role: str, scope: str) -> None:
        self._run(
            [
                "az",
                "role",
                "assignment",
                "create",
                "--assignee-object-id",
                object_id,
                "--assignee-principal-type",
                "ServicePrincipal",
                "--role",
                role,
                "--scope",
                scope,
                "--output",
                "none",
            ],
            retry=False,
        )


__all__ = ["AzureCliClient", "CloudClient"]

"""Provisioning steps.

Each step wraps one remote concern and is safe to re-run: resources that
already exist are reused, never recreated. A step either returns its typed
result or raises the ProvisionError subclass for its failure kind, with the
remote diagnostic attached as ``detail``.
"""

import logging

from vaultstrap.cloud_client import CloudClient
from vaultstrap.errors import (
    CloudClientError,
    CreateFailedError,
    GrantFailedError,
    IdentityNotFoundError,
    RegisterFailedError,
    SecretWriteFailedError,
)
from vaultstrap.models import (
    KEYVAULT_PROVIDER,
    SECRET_READ_PERMISSIONS,
    VM_PASSWORD_SECRET,
    VM_USERNAME_SECRET,
    AccessGrant,
    ProvisioningState,
    RemoteResourceRef,
    ResourceState,
)

logger = logging.getLogger(__name__)

# Transitional states (Creating, Accepted, ...) are left to the readiness poll
VAULT_CREATE_FATAL_STATES = frozenset(
    {ProvisioningState.FAILED, ProvisioningState.CANCELED, ProvisioningState.DELETING}
)


class ResourceGroupStep:
    """Ensure the target resource group exists."""

    name = "ResourceGroupStep"

    def __init__(self, client: CloudClient):
        self.client = client

    def ensure(self, name: str, region: str) -> RemoteResourceRef:
        """Return the named group, creating it in ``region`` if missing.

        Raises:
            CreateFailedError: If the lookup or create call fails, or the
                group's provisioning state is not Succeeded
        """
        try:
            existing = self.client.get_resource_group(name)
        except CloudClientError as e:
            raise CreateFailedError("group", name, e.diagnostic) from e

        if existing is not None:
            logger.info(f"Using existing resource group {name}")
            return RemoteResourceRef(kind="group", name=name, state=ResourceState.READY)

        logger.info(f"Creating resource group {name} in region {region}")
        try:
            state = self.client.create_resource_group(name, region)
        except CloudClientError as e:
            raise CreateFailedError("group", name, e.diagnostic) from e

        if not state.succeeded:
            raise CreateFailedError("group", name, f"Provisioning State: {state.value}")

        return RemoteResourceRef(kind="group", name=name, state=ResourceState.READY, created=True)


class ProviderRegistrationStep:
    """Register the Key Vault resource provider for the subscription.

    Registration is idempotent remotely, so there is no existence check.
    """

    name = "ProviderRegistrationStep"

    def __init__(self, client: CloudClient):
        self.client = client

    def ensure(self, provider: str = KEYVAULT_PROVIDER) -> None:
        logger.info(f"Registering {provider} provider")
        try:
            self.client.register_provider(provider)
        except CloudClientError as e:
            raise RegisterFailedError(provider, e.diagnostic) from e


class VaultStep:
    """Ensure the vault exists.

    Name matching is exact and case-sensitive so a similarly named vault in
    another environment is never mistaken for ours.
    """

    name = "VaultStep"

    def __init__(self, client: CloudClient):
        self.client = client

    def ensure(self, vault_name: str, group_name: str, region: str) -> RemoteResourceRef:
        """Return the vault, creating it if no vault has exactly this name.

        A newly created vault is returned in state CREATING; callers wait for
        readiness before using it.

        Raises:
            CreateFailedError: If listing or creating fails
        """
        logger.info(f"Checking for {vault_name}")
        try:
            vaults = self.client.list_vaults()
        except CloudClientError as e:
            raise CreateFailedError("vault", vault_name, e.diagnostic) from e

        if any(vault.name == vault_name for vault in vaults):
            logger.info(f"Using existing Key Vault {vault_name}")
            return RemoteResourceRef(kind="vault", name=vault_name, state=ResourceState.READY)

        logger.info(f'Creating Key Vault "{vault_name}" in resource group "{group_name}"')
        try:
            state = self.client.create_vault(vault_name, group_name, region)
        except CloudClientError as e:
            raise CreateFailedError("vault", vault_name, e.diagnostic) from e

        if state in VAULT_CREATE_FATAL_STATES:
            raise CreateFailedError("vault", vault_name, f"Provisioning State: {state.value}")

        return RemoteResourceRef(
            kind="vault", name=vault_name, state=ResourceState.CREATING, created=True
        )


class SecretWriteStep:
    """Write the VM bootstrap credentials into a ready vault."""

    name = "SecretWriteStep"

    def __init__(self, client: CloudClient):
        self.client = client

    def write_secret(self, vault_name: str, secret_name: str, value: str) -> None:
        """Write one secret; the stored secret must come back enabled.

        Raises:
            SecretWriteFailedError: If the write fails or the secret is disabled
        """
        logger.info(f'Create secret "{secret_name}" in KeyVault "{vault_name}"')
        try:
            attributes = self.client.set_secret(vault_name, secret_name, value)
        except CloudClientError as e:
            raise SecretWriteFailedError(secret_name, e.diagnostic) from e

        if attributes.enabled is not True:
            raise SecretWriteFailedError(secret_name, "Enabled: false")

    def write_bootstrap_secrets(self, vault_name: str, username: str, password: str) -> None:
        logger.info("Inserting secrets into KeyVault")
        self.write_secret(vault_name, VM_USERNAME_SECRET, username)
        self.write_secret(vault_name, VM_PASSWORD_SECRET, password)


class AccessPolicyStep:
    """Resolve the service principal and grant it read access to secrets."""

    name = "AccessPolicyStep"

    def __init__(self, client: CloudClient):
        self.client = client

    def resolve_principal_id(self, identity_name: str | None, app_id: str | None) -> str:
        """Return the principal id to grant.

        An explicit application id always wins and no search is issued.
        Otherwise the first service principal matching ``identity_name`` is used.

        Raises:
            IdentityNotFoundError: If the search finds nothing
        """
        if app_id:
            return app_id

        query = identity_name or ""
        try:
            matches = self.client.find_identity(query)
        except CloudClientError as e:
            logger.debug(f"Identity search failed: {e.diagnostic}")
            raise IdentityNotFoundError(query) from e

        if not matches:
            raise IdentityNotFoundError(query)

        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} service principals match '{query}', using {matches[0].app_id}"
            )
        return matches[0].app_id

    def grant(
        self,
        vault_name: str,
        principal_id: str,
        permissions: frozenset[str] = SECRET_READ_PERMISSIONS,
    ) -> AccessGrant:
        """Grant ``permissions`` on the vault's secrets.

        Raises:
            GrantFailedError: If the policy update fails
        """
        logger.info(f'Grant access to "{principal_id}" to KeyVault secrets')
        try:
            self.client.set_vault_access_policy(vault_name, principal_id, permissions)
        except CloudClientError as e:
            raise GrantFailedError(vault_name, principal_id, e.diagnostic) from e
        return AccessGrant(vault_name=vault_name, principal_id=principal_id, permissions=permissions)


__all__ = [
    "AccessPolicyStep",
    "ProviderRegistrationStep",
    "ResourceGroupStep",
    "SecretWriteStep",
    "VaultStep",
]

"""Data model for the vault provisioning pipeline.

Remote responses are parsed into these types once, at the CloudClient
boundary; steps and the orchestrator only ever see typed values.
"""

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_RESOURCE_GROUP = "SpinnakerDefault"
DEFAULT_VAULT_NAME = "SpinnakerVault"
DEFAULT_REGION = "eastus"
KEYVAULT_PROVIDER = "Microsoft.KeyVault"

VM_USERNAME_SECRET = "VMUsername"  # noqa: S105
VM_PASSWORD_SECRET = "VMPassword"  # noqa: S105

SECRET_READ_PERMISSIONS = frozenset({"get"})


class ResourceState(Enum):
    """Readiness of a remote resource as seen by this run."""

    ABSENT = "absent"
    CREATING = "creating"
    READY = "ready"
    FAILED = "failed"


class ProvisioningState(Enum):
    """Azure Resource Manager provisioningState values."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"
    CREATING = "Creating"
    ACCEPTED = "Accepted"
    UPDATING = "Updating"
    DELETING = "Deleting"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str | None) -> "ProvisioningState":
        """Parse a provisioningState string (case-insensitive); unknown values map to UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        for state in cls:
            if state.value.lower() == value.strip().lower():
                return state
        return cls.UNKNOWN

    @property
    def succeeded(self) -> bool:
        return self is ProvisioningState.SUCCEEDED


@dataclass(frozen=True)
class Session:
    """An authenticated Azure CLI session."""

    tenant_id: str
    subscription_id: str


@dataclass(frozen=True)
class ProvisionRequest:
    """Validated input for one vault provisioning run.

    Built by ConfigResolver; the orchestrator never sees an invalid request.
    """

    vm_username: str
    vm_password: str = field(repr=False)
    identity_name: str | None = None
    app_id: str | None = None
    resource_group: str = DEFAULT_RESOURCE_GROUP
    vault_name: str = DEFAULT_VAULT_NAME
    region: str = DEFAULT_REGION
    debug: bool = False


@dataclass(frozen=True)
class IdentityRequest:
    """Input for the service identity bootstrap."""

    app_name: str = "ExampleApp"
    homepage: str = "http://www.contosorg.org"
    identifier_uris: str = "https://www.contosorg.org/example"
    role: str = "Contributor"


@dataclass(frozen=True)
class RemoteResourceRef:
    """Name and readiness of a resource group or vault."""

    kind: str
    name: str
    state: ResourceState
    created: bool = False

    def with_state(self, state: ResourceState) -> "RemoteResourceRef":
        return RemoteResourceRef(kind=self.kind, name=self.name, state=state, created=self.created)


@dataclass(frozen=True)
class ResourceGroupInfo:
    name: str
    location: str
    provisioning_state: ProvisioningState = ProvisioningState.UNKNOWN


@dataclass(frozen=True)
class VaultInfo:
    name: str
    location: str | None = None
    resource_group: str | None = None
    vault_uri: str | None = None


@dataclass(frozen=True)
class SecretAttributes:
    name: str
    enabled: bool


@dataclass(frozen=True)
class IdentityInfo:
    app_id: str
    display_name: str | None = None


@dataclass(frozen=True)
class ServicePrincipal:
    app_id: str
    object_id: str


@dataclass(frozen=True)
class ApplicationCredential:
    app_id: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class ServiceIdentity:
    """Result of the identity bootstrap."""

    app_id: str
    object_id: str
    display_name: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class AccessGrant:
    """A principal's permissions on a vault's secrets."""

    vault_name: str
    principal_id: str
    permissions: frozenset[str] = SECRET_READ_PERMISSIONS


@dataclass(frozen=True)
class StepResult:
    """Outcome of one orchestration step."""

    ok: bool
    code: int = 0
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> "StepResult":
        return cls(ok=True, code=0, message=message)

    @classmethod
    def failure(cls, code: int, message: str) -> "StepResult":
        return cls(ok=False, code=code, message=message)


__all__ = [
    "DEFAULT_REGION",
    "DEFAULT_RESOURCE_GROUP",
    "DEFAULT_VAULT_NAME",
    "KEYVAULT_PROVIDER",
    "SECRET_READ_PERMISSIONS",
    "VM_PASSWORD_SECRET",
    "VM_USERNAME_SECRET",
    "AccessGrant",
    "ApplicationCredential",
    "IdentityInfo",
    "IdentityRequest",
    "ProvisionRequest",
    "ProvisioningState",
    "RemoteResourceRef",
    "ResourceGroupInfo",
    "ResourceState",
    "Session",
    "SecretAttributes",
    "ServiceIdentity",
    "ServicePrincipal",
    "StepResult",
    "VaultInfo",
]

"""Provisioning orchestrator.

Runs the vault bootstrap as a strictly ordered state machine:

    Init -> SessionVerified -> GroupReady -> ProviderRegistered -> VaultReady
         -> SecretsWritten -> AccessGranted -> Done

Any step failure moves the run to Failed and stops it. Nothing is rolled
back: every step checks for existing resources first, so re-running after a
failure only redoes the work that did not complete.
"""

import dataclasses
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from vaultstrap.cloud_client import CloudClient
from vaultstrap.errors import EXIT_SUCCESS, CancelledError, NotLoggedInError, VaultstrapError
from vaultstrap.identity import IdentityStep
from vaultstrap.log_sanitizer import LogSanitizer
from vaultstrap.models import (
    AccessGrant,
    IdentityRequest,
    ProvisionRequest,
    RemoteResourceRef,
    ResourceState,
    ServiceIdentity,
    Session,
    StepResult,
)
from vaultstrap.readiness import VaultReadinessPoller
from vaultstrap.session_guard import SessionGuard
from vaultstrap.steps import (
    AccessPolicyStep,
    ProviderRegistrationStep,
    ResourceGroupStep,
    SecretWriteStep,
    VaultStep,
)

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    INIT = "Init"
    SESSION_VERIFIED = "SessionVerified"
    GROUP_READY = "GroupReady"
    PROVIDER_REGISTERED = "ProviderRegistered"
    VAULT_READY = "VaultReady"
    SECRETS_WRITTEN = "SecretsWritten"
    ACCESS_GRANTED = "AccessGranted"
    DONE = "Done"
    FAILED = "Failed"


@dataclass
class OrchestrationResult:
    """Outcome of one pipeline run."""

    state: PipelineState = PipelineState.INIT
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.INIT])
    steps: list[tuple[str, StepResult]] = field(default_factory=list)
    session: Session | None = None
    resource_group: RemoteResourceRef | None = None
    vault: RemoteResourceRef | None = None
    principal_id: str | None = None
    grant: AccessGrant | None = None
    failed_step: str | None = None
    error: VaultstrapError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is PipelineState.DONE

    @property
    def exit_code(self) -> int:
        if self.error is not None:
            return self.error.exit_code
        return EXIT_SUCCESS

    def advance(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)

    def record_success(self, step_name: str, next_state: PipelineState | None) -> None:
        self.steps.append((step_name, StepResult.success()))
        if next_state is not None:
            self.advance(next_state)

    def record_failure(self, step_name: str, error: VaultstrapError) -> None:
        message = LogSanitizer.sanitize(str(error))
        self.steps.append((step_name, StepResult.failure(error.exit_code, message)))
        self.failed_step = step_name
        self.error = error
        self.advance(PipelineState.FAILED)


Stage = tuple[str, PipelineState | None, Callable[[], None]]


def _run_stages(
    stages: list[Stage],
    result: OrchestrationResult,
    cancel_event: threading.Event,
) -> bool:
    """Run stages in order, recording each outcome. Returns False on the first failure."""
    for step_name, next_state, action in stages:
        if cancel_event.is_set():
            result.record_failure(step_name, CancelledError(f"before {step_name}"))
            logger.error(f"{step_name} cancelled")
            return False
        try:
            action()
        except VaultstrapError as e:
            result.record_failure(step_name, e)
            logger.error(f"{step_name} failed [{e.kind}]: {LogSanitizer.sanitize(str(e))}")
            return False
        result.record_success(step_name, next_state)
    return True


class Orchestrator:
    """Run the vault provisioning steps in fixed order."""

    def __init__(
        self,
        client: CloudClient,
        cancel_event: threading.Event | None = None,
        poller: VaultReadinessPoller | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            client: Cloud client shared by every step
            cancel_event: Checked between steps and during the readiness poll
            poller: Readiness poller (default: built from RetryConfig)
        """
        self.client = client
        self.cancel_event = cancel_event or threading.Event()
        self.session_guard = SessionGuard(client)
        self.resource_group_step = ResourceGroupStep(client)
        self.provider_step = ProviderRegistrationStep(client)
        self.vault_step = VaultStep(client)
        self.poller = poller or VaultReadinessPoller(client, cancel_event=self.cancel_event)
        self.secret_step = SecretWriteStep(client)
        self.access_step = AccessPolicyStep(client)

    def run(self, request: ProvisionRequest) -> OrchestrationResult:
        """Provision the vault described by ``request``.

        Returns:
            OrchestrationResult in state Done, or Failed with the failing
            step, its error and exit code
        """
        result = OrchestrationResult()

        def verify_session() -> None:
            result.session = self.session_guard.verify()

        def ensure_group() -> None:
            result.resource_group = self.resource_group_step.ensure(
                request.resource_group, request.region
            )

        def register_provider() -> None:
            self.provider_step.ensure()

        def ensure_vault() -> None:
            result.vault = self.vault_step.ensure(
                request.vault_name, request.resource_group, request.region
            )

        def wait_for_vault() -> None:
            self.poller.wait(request.vault_name)
            if result.vault is not None:
                result.vault = result.vault.with_state(ResourceState.READY)

        def write_secrets() -> None:
            self.secret_step.write_bootstrap_secrets(
                request.vault_name, request.vm_username, request.vm_password
            )

        def grant_access() -> None:
            result.principal_id = self.access_step.resolve_principal_id(
                request.identity_name, request.app_id
            )
            logger.debug(f"Service Principal ID: {result.principal_id}")
            result.grant = self.access_step.grant(request.vault_name, result.principal_id)

        stages: list[Stage] = [
            (SessionGuard.__name__, PipelineState.SESSION_VERIFIED, verify_session),
            (ResourceGroupStep.name, PipelineState.GROUP_READY, ensure_group),
            (ProviderRegistrationStep.name, PipelineState.PROVIDER_REGISTERED, register_provider),
            (VaultStep.name, None, ensure_vault),
            (VaultReadinessPoller.name, PipelineState.VAULT_READY, wait_for_vault),
            (SecretWriteStep.name, PipelineState.SECRETS_WRITTEN, write_secrets),
            (AccessPolicyStep.name, PipelineState.ACCESS_GRANTED, grant_access),
        ]

        if _run_stages(stages, result, self.cancel_event):
            result.advance(PipelineState.DONE)
            logger.info("Key Vault setup complete")

        return result


@dataclass
class BootstrapResult:
    """Outcome of identity creation followed by vault provisioning."""

    session: Session | None = None
    identity: ServiceIdentity | None = None
    vault_result: OrchestrationResult | None = None
    failed_step: str | None = None
    error: VaultstrapError | None = None

    @property
    def succeeded(self) -> bool:
        return self.vault_result is not None and self.vault_result.succeeded

    @property
    def exit_code(self) -> int:
        if self.error is not None:
            return self.error.exit_code
        if self.vault_result is not None:
            return self.vault_result.exit_code
        return EXIT_SUCCESS


class BootstrapOrchestrator:
    """Create the service identity, then provision the vault for it."""

    def __init__(
        self,
        client: CloudClient,
        cancel_event: threading.Event | None = None,
        orchestrator: Orchestrator | None = None,
    ):
        self.client = client
        self.cancel_event = cancel_event or threading.Event()
        self.session_guard = SessionGuard(client)
        self.identity_step = IdentityStep(client)
        self.orchestrator = orchestrator or Orchestrator(client, cancel_event=self.cancel_event)

    def run(self, identity_request: IdentityRequest, request: ProvisionRequest) -> BootstrapResult:
        """Create the identity and grant it access to a freshly provisioned vault.

        The vault request's app id is replaced by the new application's id.
        """
        result = BootstrapResult()
        scratch = OrchestrationResult()

        def verify_session() -> None:
            result.session = self.session_guard.verify()

        vault_request: ProvisionRequest | None = None

        def create_identity() -> None:
            nonlocal vault_request
            if result.session is None:
                raise NotLoggedInError("no verified session for identity creation")
            result.identity = self.identity_step.create(identity_request, result.session)
            vault_request = dataclasses.replace(request, app_id=result.identity.app_id)

        stages: list[Stage] = [
            (SessionGuard.__name__, None, verify_session),
            (IdentityStep.name, None, create_identity),
        ]
        if not _run_stages(stages, scratch, self.cancel_event):
            result.failed_step = scratch.failed_step
            result.error = scratch.error
            return result

        logger.info("Setting up Keyvault....")
        result.vault_result = self.orchestrator.run(vault_request)
        if not result.vault_result.succeeded:
            result.failed_step = result.vault_result.failed_step
            result.error = result.vault_result.error
        else:
            logger.info("Azure setup complete")
        return result


__all__ = [
    "BootstrapOrchestrator",
    "BootstrapResult",
    "OrchestrationResult",
    "Orchestrator",
    "PipelineState",
]

"""Error types for vaultstrap.

Every failure the pipeline can surface has its own exception class carrying
a stable ``kind`` and the process ``exit_code`` the CLI returns for it.
Steps raise these; the Orchestrator catches them once and turns them into a
failed StepResult.
"""

from typing import ClassVar

EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 2
EXIT_CANCELLED = 130


class VaultstrapError(Exception):
    """Base class for all vaultstrap errors."""

    kind: ClassVar[str] = "VaultstrapError"
    exit_code: ClassVar[int] = 1

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class ConfigError(VaultstrapError):
    """Raised when the provisioning request is invalid."""

    kind = "ConfigError"
    exit_code = EXIT_CONFIG_ERROR


class MissingFieldError(ConfigError):
    """Raised when a required request field is absent."""

    kind = "MissingField"

    def __init__(self, field_name: str, message: str | None = None):
        super().__init__(message or f"Missing required value: {field_name}")
        self.field_name = field_name


class AuthError(VaultstrapError):
    """Raised when no authenticated Azure session is available."""

    kind = "AuthError"
    exit_code = 10


class NotLoggedInError(AuthError):
    kind = "NotLoggedIn"

    def __init__(self, detail: str | None = None):
        super().__init__(
            "Unable to access account information. Ensure that you are logged in (az login)",
            detail,
        )


class ProvisionError(VaultstrapError):
    """Base class for provisioning step failures."""

    kind = "ProvisionError"


class CreateFailedError(ProvisionError):
    kind = "CreateFailed"
    exit_code = 11

    def __init__(self, resource: str, name: str, detail: str | None = None):
        super().__init__(f"Create {resource} '{name}' failed", detail)
        self.resource = resource
        self.name = name


class RegisterFailedError(ProvisionError):
    kind = "RegisterFailed"
    exit_code = 12

    def __init__(self, provider: str, detail: str | None = None):
        super().__init__(f"Register provider '{provider}' failed", detail)
        self.provider = provider


class ProvisionTimeoutError(ProvisionError):
    kind = "Timeout"
    exit_code = 13

    def __init__(self, resource: str, name: str, attempts: int):
        super().__init__(
            f"Timed out waiting for {resource} '{name}' to become ready",
            f"no successful probe after {attempts} attempts",
        )
        self.resource = resource
        self.name = name
        self.attempts = attempts


class SecretWriteFailedError(ProvisionError):
    kind = "SecretWriteFailed"
    exit_code = 14

    def __init__(self, name: str, detail: str | None = None):
        super().__init__(f"Create secret '{name}' failed", detail)
        self.name = name


class IdentityNotFoundError(ProvisionError):
    kind = "IdentityNotFound"
    exit_code = 15

    def __init__(self, name: str):
        super().__init__(f"No service principal found matching '{name}'")
        self.name = name


class GrantFailedError(ProvisionError):
    kind = "GrantFailed"
    exit_code = 16

    def __init__(self, vault_name: str, principal_id: str, detail: str | None = None):
        super().__init__(
            f"Grant access to '{principal_id}' on vault '{vault_name}' failed", detail
        )
        self.vault_name = vault_name
        self.principal_id = principal_id


class IdentityCreateFailedError(ProvisionError):
    kind = "IdentityCreateFailed"
    exit_code = 17

    def __init__(self, stage: str, detail: str | None = None):
        super().__init__(f"Service identity setup failed while creating {stage}", detail)
        self.stage = stage


class CancelledError(VaultstrapError):
    """Raised when the operator cancels a run between steps or mid-poll."""

    kind = "Cancelled"
    exit_code = EXIT_CANCELLED

    def __init__(self, where: str):
        super().__init__(f"Cancelled during {where}")
        self.where = where


class CloudClientError(Exception):
    """Raised by a CloudClient when a remote call fails.

    Carries the sanitized command and the remote diagnostic so the step that
    caught it can attach them to its own error.
    """

    def __init__(self, operation: str, returncode: int | None = None, stderr: str = ""):
        self.operation = operation
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(self.diagnostic)

    @property
    def diagnostic(self) -> str:
        rc = f" (exit {self.returncode})" if self.returncode is not None else ""
        stderr = self.stderr.strip()
        return f"{self.operation}{rc}: {stderr}" if stderr else f"{self.operation}{rc}"


__all__ = [
    "EXIT_CANCELLED",
    "EXIT_CONFIG_ERROR",
    "EXIT_SUCCESS",
    "AuthError",
    "CancelledError",
    "CloudClientError",
    "ConfigError",
    "CreateFailedError",
    "GrantFailedError",
    "IdentityCreateFailedError",
    "IdentityNotFoundError",
    "MissingFieldError",
    "NotLoggedInError",
    "ProvisionError",
    "ProvisionTimeoutError",
    "RegisterFailedError",
    "SecretWriteFailedError",
    "VaultstrapError",
]

"""Request resolution and validation.

Merges command-line values with the config file defaults and rejects an
incomplete request before any Azure call is made.
"""

import logging

from vaultstrap.config_manager import VaultstrapConfig
from vaultstrap.errors import MissingFieldError
from vaultstrap.models import IdentityRequest, ProvisionRequest

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ConfigResolver:
    """Build validated requests from CLI input and stored defaults."""

    def __init__(self, config: VaultstrapConfig | None = None):
        self.config = config or VaultstrapConfig()

    def resolve(
        self,
        *,
        vm_username: str | None,
        vm_password: str | None,
        identity_name: str | None = None,
        app_id: str | None = None,
        resource_group: str | None = None,
        vault_name: str | None = None,
        region: str | None = None,
        debug: bool = False,
        require_identity: bool = True,
    ) -> ProvisionRequest:
        """Return a validated ProvisionRequest.

        Args:
            require_identity: False when the identity is created by this run

        Raises:
            MissingFieldError: If username or password is empty, or neither an
                identity name nor an application id is given
        """
        username = _clean(vm_username)
        password = vm_password if vm_password and vm_password.strip() else None

        if not username or not password:
            raise MissingFieldError(
                "username" if not username else "password",
                "You must supply a USERNAME AND PASSWORD to use as the default "
                "credentials for VM instances",
            )

        name = _clean(identity_name)
        app = _clean(app_id)
        if require_identity and not name and not app:
            raise MissingFieldError(
                "identity",
                "You must supply either the Service Principal Name or the Application ID",
            )

        request = ProvisionRequest(
            vm_username=username,
            vm_password=password,
            identity_name=name,
            app_id=app,
            resource_group=_clean(resource_group) or self.config.default_resource_group,
            vault_name=_clean(vault_name) or self.config.default_vault_name,
            region=_clean(region) or self.config.default_region,
            debug=debug,
        )
        logger.debug(f"Resolved request: {request}")
        return request

    def resolve_identity(
        self,
        *,
        app_name: str | None = None,
        homepage: str | None = None,
        identifier_uris: str | None = None,
        role: str | None = None,
    ) -> IdentityRequest:
        """Return an IdentityRequest with config defaults filled in."""
        return IdentityRequest(
            app_name=_clean(app_name) or self.config.default_app_name,
            homepage=_clean(homepage) or self.config.default_homepage,
            identifier_uris=_clean(identifier_uris) or self.config.default_identifier_uris,
            role=_clean(role) or self.config.default_role,
        )


__all__ = ["ConfigResolver"]

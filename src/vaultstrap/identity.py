"""Service identity bootstrap.

Creates the application registration, a client secret, the service principal
and a role assignment on the subscription. The resulting application id is
what the vault access policy is granted to.
"""

import logging

from vaultstrap.cloud_client import CloudClient
from vaultstrap.errors import CloudClientError, IdentityCreateFailedError
from vaultstrap.models import IdentityRequest, ServiceIdentity, Session

logger = logging.getLogger(__name__)


class IdentityStep:
    """Create a service identity for the deployment platform."""

    name = "IdentityStep"

    def __init__(self, client: CloudClient):
        self.client = client

    def create(self, request: IdentityRequest, session: Session) -> ServiceIdentity:
        """Create application, credential, principal and role assignment.

        Args:
            request: Application name, homepage, identifier URIs and role
            session: Verified session; its subscription is the role scope

        Returns:
            ServiceIdentity with app id, object id and generated password

        Raises:
            IdentityCreateFailedError: Naming the stage that failed
        """
        logger.info(f"Creating application {request.app_name}...")
        try:
            app = self.client.create_application(
                request.app_name, request.homepage, request.identifier_uris
            )
        except CloudClientError as e:
            raise IdentityCreateFailedError("application", e.diagnostic) from e

        try:
            credential = self.client.add_application_password(app.app_id)
        except CloudClientError as e:
            raise IdentityCreateFailedError("application credential", e.diagnostic) from e

        logger.info("Creating the service principal...")
        try:
            principal = self.client.create_service_principal(app.app_id)
        except CloudClientError as e:
            raise IdentityCreateFailedError("service principal", e.diagnostic) from e
        logger.debug(f"Service Principal ID: {principal.object_id}")

        scope = f"/subscriptions/{session.subscription_id}"
        logger.info(f"Set role assignment {request.role} for Service Principal...")
        try:
            self.client.create_role_assignment(principal.object_id, request.role, scope)
        except CloudClientError as e:
            raise IdentityCreateFailedError("role assignment", e.diagnostic) from e

        return ServiceIdentity(
            app_id=app.app_id,
            object_id=principal.object_id,
            display_name=app.display_name or request.app_name,
            password=credential.password,
        )


__all__ = ["IdentityStep"]

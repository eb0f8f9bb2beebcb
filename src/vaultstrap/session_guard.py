"""Session verification.

No mutating call may run without a logged-in Azure CLI session. The guard
asks the client for account information once and, on success, binds the
resulting Session into the client so every later call is scoped to it.
"""

import logging

from vaultstrap.cloud_client import CloudClient
from vaultstrap.errors import CloudClientError, NotLoggedInError
from vaultstrap.models import Session

logger = logging.getLogger(__name__)


class SessionGuard:
    """Confirm an authenticated session exists before provisioning."""

    def __init__(self, client: CloudClient):
        self.client = client

    def verify(self) -> Session:
        """Verify the current session.

        Returns:
            The verified Session (tenant and subscription)

        Raises:
            NotLoggedInError: If account info is unavailable or has no tenant id
        """
        try:
            session = self.client.account_info()
        except CloudClientError as e:
            raise NotLoggedInError(e.diagnostic) from e

        if not session.tenant_id:
            raise NotLoggedInError("account information did not include a tenant id")

        self.client.bind_session(session)
        logger.info(f"Using Azure subscription {session.subscription_id}")
        return session


__all__ = ["SessionGuard"]

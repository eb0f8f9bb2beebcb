"""Vault readiness polling.

Vault creation completes asynchronously on the Azure side, so a fresh vault
may not be queryable for a while. The poller probes it with exponential
backoff until a read succeeds, up to a fixed number of attempts.

"Ready" means the vault could be read. That is the only signal the control
plane gives us without touching the data plane, and it is a weak one: a
readable vault can still reject secret writes for a few seconds while DNS
propagates.
"""

import logging
import threading

from vaultstrap.cloud_client import CloudClient
from vaultstrap.errors import CancelledError, CloudClientError, ProvisionTimeoutError
from vaultstrap.models import VaultInfo
from vaultstrap.retry_config import get_retry_config
from vaultstrap.retry_handler import compute_backoff_delay

logger = logging.getLogger(__name__)


class VaultReadinessPoller:
    """Wait until a vault can be read, or give up after max_attempts probes."""

    name = "VaultReadinessPoller"

    def __init__(
        self,
        client: CloudClient,
        max_attempts: int | None = None,
        initial_delay: float | None = None,
        max_delay: float | None = None,
        cancel_event: threading.Event | None = None,
    ):
        """Initialize the poller.

        Args:
            client: Cloud client used for probes
            max_attempts: Probe limit (default: RetryConfig.readiness_max_attempts)
            initial_delay: Delay after the first failed probe (default: from RetryConfig)
            max_delay: Cap for any single delay (default: from RetryConfig)
            cancel_event: Set to abort the wait
        """
        config = get_retry_config()
        self.client = client
        self.max_attempts = max_attempts if max_attempts is not None else config.readiness_max_attempts
        self.initial_delay = (
            initial_delay if initial_delay is not None else config.readiness_initial_delay
        )
        self.max_delay = max_delay if max_delay is not None else config.readiness_max_delay
        self.cancel_event = cancel_event or threading.Event()
        self.attempts = 0

    def wait(self, vault_name: str) -> VaultInfo:
        """Block until ``vault_name`` is readable.

        Returns:
            VaultInfo from the first successful probe

        Raises:
            ProvisionTimeoutError: If no probe succeeds within max_attempts
            CancelledError: If the cancel event is set while waiting
        """
        logger.info(f"Waiting for vault {vault_name} to be ready....")
        self.attempts = 0

        for attempt in range(1, self.max_attempts + 1):
            if self.cancel_event.is_set():
                raise CancelledError("vault readiness poll")

            self.attempts = attempt
            try:
                info = self.client.get_vault(vault_name)
            except CloudClientError as e:
                logger.debug(f"Vault probe {attempt}/{self.max_attempts} failed: {e.diagnostic}")
                info = None

            if info is not None:
                logger.info(f"Vault {vault_name} is ready (probe {attempt}/{self.max_attempts})")
                return info

            if attempt == self.max_attempts:
                break

            delay = compute_backoff_delay(attempt, self.initial_delay, self.max_delay)
            logger.debug(f"Vault {vault_name} not ready, next probe in {delay:.1f}s")
            if self.cancel_event.wait(delay):
                raise CancelledError("vault readiness poll")

        raise ProvisionTimeoutError("vault", vault_name, self.max_attempts)


__all__ = ["VaultReadinessPoller"]

"""Standardized Azure CLI subprocess execution with retry logic.

Provides run_az_command(), a thin wrapper around subprocess.run that adds
automatic retry with exponential backoff for transient Azure CLI failures
(CalledProcessError, TimeoutExpired).

Only idempotent reads are retried. Two kinds of command run exactly once
and must pass retry=False:
- mutating commands (create, register, set-policy), so a failed create is
  never repeated behind the caller's back
- the session check (`az account show`), where a failure means "not logged
  in" and no amount of waiting will change that

Usage:
    from vaultstrap.azure_cli_executor import run_az_command

    result = run_az_command(["az", "keyvault", "list", "--output", "json"])

    # Mutating call: single attempt, longer timeout
    result = run_az_command(["az", "keyvault", "create", ...], timeout=300, retry=False)
"""

import logging
import subprocess

from vaultstrap.log_sanitizer import LogSanitizer
from vaultstrap.retry_config import get_retry_config
from vaultstrap.retry_handler import retry_with_exponential_backoff

logger = logging.getLogger(__name__)


def _execute(cmd: list[str], timeout: int, check: bool) -> subprocess.CompletedProcess[str]:
    logger.debug(f"Executing: {LogSanitizer.sanitize_command(cmd)}")
    return subprocess.run(cmd, capture_output=True, text=True, check=check, timeout=timeout)


def run_az_command(
    cmd: list[str],
    *,
    timeout: int = 60,
    retry: bool = True,
    max_attempts: int | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute an Azure CLI command, retrying transient failures of reads.

    Args:
        cmd: Command list starting with "az", e.g. ["az", "group", "show"]
        timeout: Subprocess timeout in seconds (default: 60)
        retry: False runs the command exactly once (mutations, session check)
        max_attempts: Attempts when retrying (default: from RetryConfig)
        check: If True, raise CalledProcessError on non-zero exit (default: True)

    Returns:
        subprocess.CompletedProcess with stdout/stderr

    Raises:
        subprocess.CalledProcessError: On failure, after retries when retrying (check=True)
        subprocess.TimeoutExpired: On timeout, after retries when retrying
    """
    if not retry:
        return _execute(cmd, timeout, check)

    config = get_retry_config()

    @retry_with_exponential_backoff(
        max_attempts=max_attempts or config.azure_cli_max_attempts,
        initial_delay=config.azure_cli_initial_delay,
        max_delay=config.azure_cli_max_delay,
        jitter=config.jitter_enabled,
        retryable_exceptions=(subprocess.CalledProcessError, subprocess.TimeoutExpired),
    )
    def _run_with_retry() -> subprocess.CompletedProcess[str]:
        return _execute(cmd, timeout, check)

    return _run_with_retry()


__all__ = ["run_az_command"]

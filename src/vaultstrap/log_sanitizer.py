"""Log sanitization for preventing secret leakage.

Redacts secret values from log lines, error messages and Azure CLI argv
before they are logged or shown to the operator. The VM password and the
generated client secret are the values that matter here; both reach the
CLI through ``--value``/``--password`` style parameters or az JSON output.
"""

import re
from re import Pattern
from typing import ClassVar


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"

    # Parameters whose following argv element is a secret
    SENSITIVE_PARAMS: ClassVar[set[str]] = {
        "--password",
        "--value",
        "--secret",
        "--client-secret",
        "--admin-password",
        "--token",
        "--access-token",
    }

    SECRET_PATTERNS: ClassVar[dict[str, Pattern]] = {
        "client_secret_assignment": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "value_assignment": re.compile(r'("value"\s*:\s*")([^"]*)', re.IGNORECASE),
        "sensitive_flag": re.compile(
            r"(--(?:password|value|secret|client-secret|admin-password)(?:\s+|=))(\S+)",
            re.IGNORECASE,
        ),
    }

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Sanitize message by redacting sensitive patterns.

        Examples:
            >>> LogSanitizer.sanitize("password=abc123")
            'password=[REDACTED]'
            >>> LogSanitizer.sanitize("az ad app create --password hunter2")
            'az ad app create --password [REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)
        return result

    @classmethod
    def sanitize_command(cls, cmd: list[str]) -> str:
        """Render an argv list for logging with secret parameter values redacted.

        Args:
            cmd: Command list, e.g. ["az", "keyvault", "secret", "set", "--value", "x"]

        Returns:
            Space-joined command safe to log
        """
        parts: list[str] = []
        redact_next = False
        for arg in cmd:
            if redact_next:
                parts.append(cls.REDACTED)
                redact_next = False
                continue
            name, sep, _ = arg.partition("=")
            if name.lower() in cls.SENSITIVE_PARAMS:
                if sep:
                    parts.append(f"{name}={cls.REDACTED}")
                else:
                    parts.append(arg)
                    redact_next = True
                continue
            parts.append(arg)
        return " ".join(parts)

    @staticmethod
    def truncate(message: str, limit: int = 500) -> str:
        """Truncate long diagnostics (az stderr can be several KB)."""
        if len(message) > limit:
            return message[:limit] + "..."
        return message


__all__ = ["LogSanitizer"]

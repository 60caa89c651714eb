"""
Error report models.

An ErrorReport is internal: it drives logging and the webhook response
status. Chat users never see it.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorSeverity(str, Enum):
    """How serious the error is and who can fix it."""

    TRANSIENT = "transient"  # Retry likely works (throttling, timeouts, 5xx)
    CONFIG = "config"        # Credentials, permissions, missing adapter; admin action needed
    CRITICAL = "critical"    # Programmer error or broken invariant


@dataclass
class ErrorReport:
    """Classification of a failure raised during webhook or turn processing."""

    severity: ErrorSeverity
    error_code: str = ""          # Machine-readable code (e.g. SLACK_RATE_LIMITED)
    retryable: bool = False       # Should the platform redeliver the event?
    http_status: int = 500        # Status for the webhook response
    original_error: str = ""      # Raw error (logged only)

    def to_dict(self) -> dict:
        return {
            "type": "error",
            "severity": self.severity.value,
            "error_code": self.error_code,
            "retryable": self.retryable,
        }

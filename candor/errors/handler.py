"""
ErrorHandler — classifies exceptions into internal error reports.

Usage:
    from candor.errors.handler import ErrorHandler

    error_handler = ErrorHandler()

    try:
        await orchestrator.handle_inbound_message(message)
    except Exception as e:
        report = error_handler.handle(e, context="turn")
        return WebhookResponse(report.http_status, report.to_dict())
"""

import logging
from dataclasses import replace

from candor.errors.catalog import ERROR_PATTERNS, GENERIC_ERROR
from candor.errors.exceptions import (
    CompletionValidationError,
    ConfigurationError,
    InvalidTransition,
    TransportError,
    TurnFailed,
)
from candor.errors.models import ErrorReport, ErrorSeverity

logger = logging.getLogger("candor.errors")


class ErrorHandler:
    """Matches exceptions against the error catalog and returns reports."""

    def handle(self, error: Exception, context: str = "") -> ErrorReport:
        """Classify an exception.

        Args:
            error: The caught exception. TurnFailed is unwrapped to its cause.
            context: Optional context string (e.g. "webhook:slack", "turn").

        Returns:
            An ErrorReport with severity, retryability and webhook status.
        """
        if isinstance(error, TurnFailed):
            error = error.cause
        return self._classify(error, str(error), context)

    def _classify(self, error, error_str: str, context: str) -> ErrorReport:
        for pattern, template in ERROR_PATTERNS:
            if pattern.search(error_str):
                report = replace(template, original_error=error_str)
                self._log_error(report, context)
                return report

        report = replace(self._fallback(error), original_error=error_str)
        self._log_error(report, context, matched=False)
        return report

    def _fallback(self, error) -> ErrorReport:
        """Type-based classification for errors the catalog doesn't know."""
        if isinstance(error, ConfigurationError):
            return ErrorReport(
                severity=ErrorSeverity.CONFIG,
                error_code="CONFIGURATION",
                retryable=True,
                http_status=503,
            )
        if isinstance(error, (CompletionValidationError, InvalidTransition)):
            return ErrorReport(
                severity=ErrorSeverity.CRITICAL,
                error_code="INVALID_REQUEST",
                http_status=500,
            )
        if isinstance(error, TransportError) and error.status and 400 <= error.status < 500:
            return ErrorReport(
                severity=ErrorSeverity.CONFIG,
                error_code=f"REMOTE_{error.status}",
                http_status=500,
            )
        return GENERIC_ERROR

    def _log_error(
        self, report: ErrorReport, context: str, matched: bool = True
    ) -> None:
        """Log the error with full details."""
        prefix = f"[{context}] " if context else ""
        match_tag = report.error_code if matched else f"UNMATCHED:{report.error_code}"

        if report.severity == ErrorSeverity.CRITICAL:
            logger.error(f"{prefix}{match_tag}: {report.original_error}")
        elif report.severity == ErrorSeverity.CONFIG:
            logger.warning(f"{prefix}{match_tag}: {report.original_error}")
        else:
            logger.info(f"{prefix}{match_tag}: {report.original_error}")

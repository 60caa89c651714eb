"""
Error pattern catalog.

Maps regex patterns from known platform and provider errors to reports.
When a new error is encountered in production:
  1. Capture the raw error from logs
  2. Add a regex pattern here
  3. Decide whether the platform should redeliver (retryable)
  4. Add a unit test
"""

import re
from candor.errors.models import ErrorReport, ErrorSeverity

# Each entry: (compiled_regex, ErrorReport template)
# Order matters: first match wins.

ERROR_PATTERNS: list[tuple[re.Pattern, ErrorReport]] = [
    # ── Configuration ─────────────────────────────────────────────────────

    (
        re.compile(r"No adapter registered for platform", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="ADAPTER_NOT_REGISTERED",
            retryable=True,
            http_status=503,
        ),
    ),
    (
        re.compile(r"No (LLM|embedding) provider registered", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="PROVIDER_NOT_REGISTERED",
            retryable=True,
            http_status=503,
        ),
    ),

    # ── Slack Web API ─────────────────────────────────────────────────────

    (
        re.compile(r"slack.*\bratelimited\b|\bratelimited\b.*slack", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.TRANSIENT,
            error_code="SLACK_RATE_LIMITED",
            retryable=True,
            http_status=503,
        ),
    ),
    (
        re.compile(r"slack.*\b(invalid_auth|not_authed|token_revoked|account_inactive)\b", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="SLACK_AUTH",
            http_status=503,
        ),
    ),
    (
        re.compile(r"slack.*\b(channel_not_found|not_in_channel|is_archived)\b", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="SLACK_CHANNEL_UNAVAILABLE",
            http_status=200,
        ),
    ),

    # ── Google Chat ───────────────────────────────────────────────────────

    (
        re.compile(r"google.chat.*\b(UNAUTHENTICATED|PERMISSION_DENIED)\b", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="GCHAT_AUTH",
            http_status=503,
        ),
    ),
    (
        re.compile(r"google.chat.*\bRESOURCE_EXHAUSTED\b", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.TRANSIENT,
            error_code="GCHAT_QUOTA",
            retryable=True,
            http_status=503,
        ),
    ),

    # ── Microsoft Teams / Bot Framework ───────────────────────────────────

    (
        re.compile(r"teams.*\b(BotNotInConversationRoster|ConversationNotFound)\b", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="TEAMS_CONVERSATION_UNAVAILABLE",
            http_status=200,
        ),
    ),
    (
        re.compile(r"teams.*\b(invalid_client|unauthorized_client|AADSTS\d+)\b", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="TEAMS_AUTH",
            http_status=503,
        ),
    ),

    # ── Bedrock ───────────────────────────────────────────────────────────

    (
        re.compile(r"ThrottlingException|ServiceUnavailableException", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.TRANSIENT,
            error_code="BEDROCK_THROTTLED",
            retryable=True,
            http_status=503,
        ),
    ),
    (
        re.compile(r"ModelTimeoutException", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.TRANSIENT,
            error_code="MODEL_TIMEOUT",
            retryable=True,
            http_status=503,
        ),
    ),
    (
        re.compile(r"AccessDeniedException|Model access is denied", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="BEDROCK_ACCESS_DENIED",
            http_status=503,
        ),
    ),

    # ── Anthropic / OpenAI-compatible ─────────────────────────────────────

    (
        re.compile(r"authentication_error|invalid.*api.key|incorrect api key", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CONFIG,
            error_code="LLM_AUTH",
            http_status=503,
        ),
    ),
    (
        re.compile(r"rate_limit_error|rate.limit|overloaded_error|\b429\b|\b529\b", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.TRANSIENT,
            error_code="LLM_RATE_LIMITED",
            retryable=True,
            http_status=503,
        ),
    ),
    (
        re.compile(r"context_length_exceeded|prompt is too long", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.CRITICAL,
            error_code="LLM_CONTEXT_EXCEEDED",
            http_status=200,
        ),
    ),

    # ── Generic transport ─────────────────────────────────────────────────

    (
        re.compile(r"timed out|timeout|temporarily unavailable|connection (reset|refused)", re.IGNORECASE),
        ErrorReport(
            severity=ErrorSeverity.TRANSIENT,
            error_code="NETWORK",
            retryable=True,
            http_status=503,
        ),
    ),
]


# Unmatched errors: let the platform redeliver, the turn did not advance
GENERIC_ERROR = ErrorReport(
    severity=ErrorSeverity.TRANSIENT,
    error_code="UNKNOWN",
    retryable=True,
    http_status=503,
)

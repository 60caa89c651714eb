from candor.errors.models import ErrorReport, ErrorSeverity
from candor.errors.handler import ErrorHandler
from candor.errors.exceptions import (
    CandorError,
    CompletionValidationError,
    ConcurrentModification,
    ConversationNotFound,
    ConfigurationError,
    InvalidTransition,
    MalformedOutputError,
    TransportError,
    TurnFailed,
)

__all__ = [
    "ErrorReport", "ErrorSeverity", "ErrorHandler",
    "CandorError", "CompletionValidationError", "ConcurrentModification",
    "ConversationNotFound",
    "ConfigurationError", "InvalidTransition", "MalformedOutputError",
    "TransportError", "TurnFailed",
]

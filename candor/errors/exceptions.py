"""
Exception taxonomy.

  ConfigurationError        missing adapter/provider/secret; fatal, never retried
  CompletionValidationError malformed completion request; caller's bug, never retried
  TransportError            remote API failure; retried only when transient
  MalformedOutputError      LLM output not in the expected shape; recovered locally
"""

from typing import Optional


class CandorError(Exception):
    pass


class ConfigurationError(CandorError):
    """Missing adapter, provider, credential or secret."""
    pass


class CompletionValidationError(CandorError):
    """A completion request that can never succeed."""
    pass


class TransportError(CandorError):
    """A remote API call failed. `status` is the HTTP (or equivalent) status."""

    def __init__(self, message: str, status: Optional[int] = None, source: str = ""):
        self.message = message
        self.status = status
        self.source = source
        super().__init__(message)


class MalformedOutputError(CandorError):
    pass


class InvalidTransition(CandorError):
    pass


class ConcurrentModification(CandorError):
    """A conditional update lost the race against another writer."""
    pass


class TurnFailed(CandorError):
    """A conversation turn failed without advancing conversation state."""

    def __init__(self, conversation_id: str, cause: Exception):
        self.conversation_id = conversation_id
        self.cause = cause
        super().__init__(f"Turn failed for conversation {conversation_id}: {cause}")


class ConversationNotFound(CandorError):
    pass

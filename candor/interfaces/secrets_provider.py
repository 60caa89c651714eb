"""
Secrets Provider Interface

Abstraction for platform and provider credentials.
Implementations: EnvSecretsProvider (local), etc.
"""

from abc import ABC, abstractmethod


class SecretsProvider(ABC):
    """
    Abstract base class for secrets retrieval.

    Secrets are scoped per organization and integration, e.g.
        {org_id}/slack -> {"bot_token": ..., "signing_secret": ...}
    """

    @abstractmethod
    async def get(self, org_id: str, integration_name: str) -> dict:
        """
        Retrieve secrets for an organization's integration.

        Args:
            org_id: Organization scope
            integration_name: e.g., "slack", "google_chat", "teams", "anthropic"

        Returns:
            Dict of secret key-value pairs

        Raises:
            SecretNotFound: If no secrets exist for this org/integration
        """
        ...

    @abstractmethod
    async def put(self, org_id: str, integration_name: str, secrets: dict) -> None:
        """Store or update secrets for an integration."""
        ...

    @abstractmethod
    async def list_integrations(self, org_id: str) -> list[str]:
        """List all integration names that have stored secrets."""
        ...


class SecretNotFound(Exception):
    """Raised when requested secrets don't exist."""
    pass

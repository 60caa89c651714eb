"""
Local Secrets Provider — reads from .env file.

For local development. Secrets are loaded from environment variables
with a naming convention:
    {INTEGRATION}_BOT_TOKEN, {INTEGRATION}_SIGNING_SECRET, etc.
"""

import os

from candor.config.settings import load_env_file
from candor.interfaces.secrets_provider import SecretsProvider, SecretNotFound


# Maps integration names to their env var names
INTEGRATION_KEYS = {
    "slack": {
        "bot_token": "SLACK_BOT_TOKEN",
        "signing_secret": "SLACK_SIGNING_SECRET",
    },
    "google_chat": {
        "service_account_json": "GOOGLE_CHAT_SERVICE_ACCOUNT_JSON",
        "verification_token": "GOOGLE_CHAT_VERIFICATION_TOKEN",
    },
    "teams": {
        "app_id": "TEAMS_APP_ID",
        "app_secret": "TEAMS_APP_SECRET",
        "tenant_id": "TEAMS_TENANT_ID",
    },
    "anthropic": {
        "api_key": "ANTHROPIC_API_KEY",
    },
    "openai": {
        "api_key": "OPENAI_API_KEY",
    },
}


class EnvSecretsProvider(SecretsProvider):
    """
    Reads secrets from environment variables.
    In local mode, all orgs share the same secrets (from .env).
    """

    def __init__(self, env_file: str = ".env"):
        load_env_file(env_file)

    async def get(self, org_id: str, integration_name: str) -> dict:
        """
        Get secrets for an integration.
        In local mode, org_id is ignored (single-org).
        """
        key_map = INTEGRATION_KEYS.get(integration_name)
        if not key_map:
            raise SecretNotFound(
                f"Unknown integration: {integration_name}. "
                f"Known: {list(INTEGRATION_KEYS.keys())}"
            )

        secrets = {}
        for secret_key, env_var in key_map.items():
            value = os.getenv(env_var, "")
            if value:
                secrets[secret_key] = value

        if not secrets:
            raise SecretNotFound(
                f"No secrets found for '{integration_name}'. "
                f"Set these in .env: {list(key_map.values())}"
            )

        return secrets

    async def put(self, org_id: str, integration_name: str, secrets: dict) -> None:
        """In local mode, just set env vars (non-persistent)."""
        key_map = INTEGRATION_KEYS.get(integration_name, {})
        for secret_key, value in secrets.items():
            env_var = key_map.get(secret_key, f"{integration_name.upper()}_{secret_key.upper()}")
            os.environ[env_var] = value

    async def list_integrations(self, org_id: str) -> list[str]:
        """List integrations that have at least one env var set."""
        return [
            name
            for name, key_map in INTEGRATION_KEYS.items()
            if any(os.getenv(env_var) for env_var in key_map.values())
        ]

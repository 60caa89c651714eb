"""
Composition root — wires settings and secrets into a running application.

Platforms whose credentials are missing are skipped with a warning; their
webhooks answer 503 until configured. A missing LLM credential is fatal.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from adapters.aws.bedrock_provider import BedrockProvider
from adapters.local.anthropic_provider import AnthropicProvider
from adapters.local.direct_bus import DirectBus
from adapters.local.env_secrets import EnvSecretsProvider
from adapters.local.openai_provider import OpenAICompatProvider
from adapters.local.sqlite_store import SQLiteConversationStore
from adapters.platforms.google_chat import GoogleChatAdapter
from adapters.platforms.slack import SlackAdapter
from adapters.platforms.teams import TeamsAdapter
from candor.auth.session_tokens import SessionTokenIssuer
from candor.channels.base import AdapterRegistry, ChatAdapter
from candor.config.settings import Settings
from candor.errors.exceptions import ConfigurationError
from candor.interfaces.llm_provider import ProviderConfig
from candor.interfaces.secrets_provider import SecretNotFound, SecretsProvider
from candor.llm.gateway import LLMGateway
from candor.orchestrator.orchestrator import ConversationOrchestrator
from candor.themes.registry import ThemeCatalog, default_catalog
from candor.webhooks.handler import WebhookHandler

logger = logging.getLogger("candor.bootstrap")


@dataclass
class Application:
    settings: Settings
    secrets: SecretsProvider
    store: SQLiteConversationStore
    adapters: AdapterRegistry
    llm: LLMGateway
    themes: ThemeCatalog
    orchestrator: ConversationOrchestrator
    bus: DirectBus
    webhooks: WebhookHandler
    session_tokens: SessionTokenIssuer


async def build_application(
    settings: Settings,
    secrets: Optional[SecretsProvider] = None,
) -> Application:
    """Build every component from settings and secrets."""
    secrets = secrets or EnvSecretsProvider()
    org_id = settings.default_org_id

    adapters = await build_adapter_registry(secrets, org_id)
    llm = await build_llm_gateway(settings, secrets)
    themes = load_themes(settings.themes_dir)
    store = SQLiteConversationStore(settings.database_path)

    bus = DirectBus()
    orchestrator = ConversationOrchestrator(
        store=store,
        adapters=adapters,
        llm=llm,
        themes=themes,
        events=bus,
    )
    bus.orchestrator = orchestrator

    if not settings.session_token_secret:
        logger.warning("SESSION_TOKEN_SECRET not set; session tokens are disabled")

    return Application(
        settings=settings,
        secrets=secrets,
        store=store,
        adapters=adapters,
        llm=llm,
        themes=themes,
        orchestrator=orchestrator,
        bus=bus,
        webhooks=WebhookHandler(adapters, bus),
        session_tokens=SessionTokenIssuer(
            settings.session_token_secret, settings.session_token_ttl_seconds
        ),
    )


async def build_adapter_registry(secrets: SecretsProvider, org_id: str) -> AdapterRegistry:
    registry = AdapterRegistry()
    for name, factory in (
        ("slack", _slack),
        ("google_chat", _google_chat),
        ("teams", _teams),
    ):
        try:
            creds = await secrets.get(org_id, name)
            registry.register(factory(creds))
        except (SecretNotFound, KeyError, ConfigurationError) as e:
            logger.warning(f"Platform '{name}' not configured, skipping: {e}")

    logger.info(f"Chat platforms: {[p.value for p in registry.registered_platforms()]}")
    return registry


def _slack(creds: dict) -> ChatAdapter:
    return SlackAdapter(bot_token=creds["bot_token"], signing_secret=creds["signing_secret"])


def _google_chat(creds: dict) -> ChatAdapter:
    return GoogleChatAdapter(
        service_account_json=creds["service_account_json"],
        verification_token=creds["verification_token"],
    )


def _teams(creds: dict) -> ChatAdapter:
    return TeamsAdapter(
        app_id=creds["app_id"],
        app_secret=creds["app_secret"],
        tenant_id=creds.get("tenant_id", ""),
    )


async def build_llm_gateway(settings: Settings, secrets: SecretsProvider) -> LLMGateway:
    """Register the configured provider. Raises ConfigurationError without credentials."""
    provider = settings.llm_provider
    gateway = LLMGateway(default_provider=provider)

    if provider == "bedrock":
        # IAM role auth
        config = ProviderConfig.create(provider, models=settings.llm_models)
        gateway.register_provider(BedrockProvider(config, region=settings.aws_region))
    else:
        api_key = ""
        try:
            api_key = (await secrets.get(settings.default_org_id, provider)).get("api_key", "")
        except SecretNotFound:
            # Self-hosted OpenAI-compatible servers run without a key
            if not (provider == "openai" and settings.llm_base_url):
                raise ConfigurationError(
                    f"No API key for LLM provider '{provider}'. "
                    f"Set {provider.upper()}_API_KEY in .env"
                )
        config = ProviderConfig.create(
            provider, api_key=api_key, models=settings.llm_models, base_url=settings.llm_base_url
        )
        if provider == "anthropic":
            gateway.register_provider(AnthropicProvider(config))
        else:
            openai = OpenAICompatProvider(config)
            gateway.register_provider(openai)
            gateway.register_embedding_provider(openai)

    logger.info(f"LLM provider: {provider} ({', '.join(config.models.values())})")
    return gateway


def load_themes(themes_dir: Optional[str]) -> ThemeCatalog:
    if not themes_dir:
        return default_catalog()
    catalog = ThemeCatalog()
    catalog.load_from_directory(Path(themes_dir))
    logger.info(f"Loaded themes for: {catalog.interaction_types()}")
    return catalog

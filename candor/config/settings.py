"""
Runtime settings, read from the environment.

A .env file in the working directory is loaded first; variables already
set in the process environment win.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from candor.errors.exceptions import ConfigurationError
from candor.models.ai_models import ModelTier

KNOWN_LLM_PROVIDERS = ("anthropic", "openai", "bedrock")


def load_env_file(env_file: str = ".env") -> None:
    """Load a .env file into os.environ. Existing variables win."""
    path = Path(env_file)
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


@dataclass
class Settings:
    llm_provider: str = "anthropic"
    llm_models: dict = field(default_factory=dict)     # ModelTier -> model override
    llm_base_url: Optional[str] = None
    aws_region: str = "us-east-1"
    database_path: str = "data/candor.db"
    port: int = 8080
    session_token_secret: str = ""
    session_token_ttl_seconds: int = 60
    auth_jwt_secret: str = ""                          # HS256 key for bearer JWTs
    auth_jwks_url: str = ""                            # or RS256 via JWKS
    auth_audience: Optional[str] = None
    auth_issuer: Optional[str] = None
    themes_dir: Optional[str] = None
    default_org_id: str = "local"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "Settings":
        load_env_file(env_file)

        provider = os.getenv("LLM_PROVIDER", "anthropic").strip().lower()
        if provider not in KNOWN_LLM_PROVIDERS:
            raise ConfigurationError(
                f"Unknown LLM_PROVIDER '{provider}'. Known: {list(KNOWN_LLM_PROVIDERS)}"
            )

        models = {}
        for tier in ModelTier:
            value = os.getenv(f"LLM_MODEL_{tier.value.upper()}", "")
            if value:
                models[tier] = value

        return cls(
            llm_provider=provider,
            llm_models=models,
            llm_base_url=os.getenv("LLM_BASE_URL") or None,
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            database_path=os.getenv("DATABASE_PATH", "data/candor.db"),
            port=_int("PORT", 8080),
            session_token_secret=os.getenv("SESSION_TOKEN_SECRET", ""),
            session_token_ttl_seconds=_int("SESSION_TOKEN_TTL_SECONDS", 60),
            auth_jwt_secret=os.getenv("AUTH_JWT_SECRET", ""),
            auth_jwks_url=os.getenv("AUTH_JWKS_URL", ""),
            auth_audience=os.getenv("AUTH_AUDIENCE") or None,
            auth_issuer=os.getenv("AUTH_ISSUER") or None,
            themes_dir=os.getenv("THEMES_DIR") or None,
            default_org_id=os.getenv("DEFAULT_ORG_ID", "local"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def _int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")

"""Application settings.

Reads configuration from environment variables after loading ``.env`` from
the repository root (if present).

Usage:
    from core.config import get_settings

    settings = get_settings()
    store = Datastore(settings.db_path)
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_VOICE_AGENT_WS_URL = "wss://agent.deepgram.com/v1/agent/converse"
DEFAULT_TOKEN_GRANT_URL = "https://api.deepgram.com/v1/auth/grant"


class AppSettings(BaseModel):
    """Resolved runtime configuration."""
    db_path: Path = Field(default=REPO_ROOT / "assistant.db")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # Language model
    openai_api_key: Optional[str] = None
    openai_model: str = Field(default="gpt-4o-mini")

    # Voice agent
    deepgram_api_key: Optional[str] = None
    deepgram_token_ttl: int = Field(default=600, description="Temporary token lifetime in seconds")
    voice_agent_ws_url: str = Field(default=DEFAULT_VOICE_AGENT_WS_URL)
    token_grant_url: str = Field(default=DEFAULT_TOKEN_GRANT_URL)

    # Invoice email delivery service
    invoice_email_url: Optional[str] = None

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> AppSettings:
    """Build settings from the current environment."""
    db_path = os.getenv("ASSISTANT_DB_PATH")
    origins = os.getenv("CORS_ORIGINS", "*")

    return AppSettings(
        db_path=Path(db_path) if db_path else REPO_ROOT / "assistant.db",
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        deepgram_api_key=os.getenv("DEEPGRAM_API_KEY"),
        deepgram_token_ttl=int(os.getenv("DEEPGRAM_TOKEN_TTL", "600")),
        voice_agent_ws_url=os.getenv("VOICE_AGENT_WS_URL", DEFAULT_VOICE_AGENT_WS_URL),
        token_grant_url=os.getenv("DEEPGRAM_TOKEN_GRANT_URL", DEFAULT_TOKEN_GRANT_URL),
        invoice_email_url=os.getenv("INVOICE_EMAIL_URL"),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Process-wide settings (cached)."""
    return load_settings()

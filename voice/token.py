"""Voice agent access token.

The browser or device client should not hold the long-lived provider key, so
a short-lived token is requested from the provider's grant endpoint. Keys
without grant permission are refused; the key itself is then used directly.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import aiohttp

from core.config import AppSettings
from core.errors import SpeechProviderError
from core.observability.logging import get_logger


logger = get_logger(__name__)


@dataclass
class AgentToken:
    """Credential for opening the agent channel."""
    value: str
    temporary: bool
    expires_in: int = 0
    obtained_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def expires_at(self) -> datetime:
        return self.obtained_at + timedelta(seconds=self.expires_in)


async def request_token_grant(api_key: str, grant_url: str, ttl_seconds: int) -> AgentToken:
    """POST to the grant endpoint. Raises ``SpeechProviderError`` when refused."""
    headers = {
        "Authorization": f"Token {api_key}",
        "Content-Type": "application/json",
    }
    try:
        async with aiohttp.ClientSession() as session:
            async with session.post(grant_url, json={"ttl_seconds": ttl_seconds}, headers=headers) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise SpeechProviderError(
                        f"Token grant failed: {response.status}",
                        response.status,
                        error_text,
                    )
                token_data = await response.json()
    except aiohttp.ClientError as e:
        raise SpeechProviderError(f"Token grant request failed: {e}") from e

    return AgentToken(
        value=token_data["access_token"],
        temporary=True,
        expires_in=token_data.get("expires_in", ttl_seconds),
    )


async def grant_agent_token(settings: AppSettings) -> AgentToken:
    """Temporary token when the provider grants one, else the API key.

    Raises:
        SpeechProviderError: no API key is configured
    """
    if not settings.deepgram_api_key:
        raise SpeechProviderError("Voice agent not configured")

    try:
        token = await request_token_grant(
            settings.deepgram_api_key,
            settings.token_grant_url,
            settings.deepgram_token_ttl,
        )
        logger.info("Using temporary voice agent token", extra_fields={"ttl_seconds": token.expires_in})
        return token
    except SpeechProviderError as e:
        logger.warning(
            "Token grant refused, using API key directly",
            extra_fields={"status": e.status_code, "error": e.message},
        )
        return AgentToken(value=settings.deepgram_api_key, temporary=False)

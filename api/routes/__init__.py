"""API Routes Package."""

from api.routes import chat, health, tools, voice_agent

__all__ = [
    "chat",
    "health",
    "tools",
    "voice_agent",
]

"""API Package.

FastAPI server exposing the assistant's tools, voice agent and chat loop.
"""

from api.server import create_app, app

__all__ = [
    "create_app",
    "app",
]

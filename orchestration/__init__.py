"""Orchestration - dispatcher and chat tool-calling loop."""

from orchestration.dispatcher import Dispatcher
from orchestration.chat import ChatSession, ChatReply, ToolCallTrace

__all__ = [
    "Dispatcher",
    "ChatSession",
    "ChatReply",
    "ToolCallTrace",
]

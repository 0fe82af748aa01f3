"""Text chat tool-calling loop.

Sends the conversation and every tool schema to the language model, runs the
tool calls it returns through the dispatcher, feeds the results back, and
repeats until the model answers in plain text.

Usage:
    session = ChatSession(dispatcher, user_id="user-1")
    reply = await session.send("Add $500 consulting income from Acme")
    print(reply.content)
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai

from core.config import AppSettings, get_settings
from core.errors import UpstreamError
from core.observability.logging import get_logger, with_correlation
from orchestration.dispatcher import Dispatcher


logger = get_logger(__name__)

DEFAULT_MAX_ROUNDS = 8

SYSTEM_PROMPT = (
    "You are a finance assistant. Use the tools to read and change the user's "
    "income, expenses, clients, vendors, invoices and projects. Every change is "
    "previewed first with confirmed=false; call again with confirmed=true only "
    "after the user confirms. Run independent lookups in parallel."
)


@dataclass
class ToolCallTrace:
    """One executed tool call, kept for the response trace."""
    id: str
    name: str
    arguments: Dict[str, Any]
    result: Dict[str, Any]


@dataclass
class ChatReply:
    content: str
    tool_calls: List[ToolCallTrace] = field(default_factory=list)
    rounds: int = 0


def _parse_arguments(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Model produced non-JSON tool arguments")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ChatSession:
    """Conversation state plus the tool-calling loop for one user."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        user_id: str,
        settings: Optional[AppSettings] = None,
        client: Any = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.dispatcher = dispatcher
        self.user_id = user_id
        self.settings = settings or get_settings()
        self.max_rounds = max_rounds
        self._client = client
        self.messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]

    @property
    def client(self):
        if self._client is None:
            if not self.settings.openai_api_key:
                raise UpstreamError("OpenAI API key not configured")
            self._client = openai.AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def send(self, text: str) -> ChatReply:
        self.messages.append({"role": "user", "content": text})
        return await self.run()

    async def run(self) -> ChatReply:
        """Run model rounds until a plain reply or ``max_rounds``."""
        trace: List[ToolCallTrace] = []
        tools = self.dispatcher.registry.openai_tools()

        with with_correlation(user_id=self.user_id, channel="chat"):
            for round_number in range(1, self.max_rounds + 1):
                try:
                    response = await self.client.chat.completions.create(
                        model=self.settings.openai_model,
                        messages=self.messages,
                        tools=tools,
                    )
                except openai.OpenAIError as e:
                    logger.error("Chat completion failed", extra_fields={"error": str(e)})
                    raise UpstreamError(f"Language model request failed: {e}") from e

                message = response.choices[0].message
                tool_calls = message.tool_calls or []

                if not tool_calls:
                    content = message.content or ""
                    self.messages.append({"role": "assistant", "content": content})
                    return ChatReply(content=content, tool_calls=trace, rounds=round_number)

                self.messages.append({
                    "role": "assistant",
                    "content": message.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.function.name, "arguments": call.function.arguments},
                        }
                        for call in tool_calls
                    ],
                })

                executed = await asyncio.gather(*(self._run_tool_call(call) for call in tool_calls))
                for item in executed:
                    trace.append(item)
                    self.messages.append({
                        "role": "tool",
                        "tool_call_id": item.id,
                        "content": json.dumps(item.result),
                    })

        logger.warning("Chat loop hit max rounds", extra_fields={"max_rounds": self.max_rounds})
        content = "Sorry, I couldn't finish that request. Please try again."
        self.messages.append({"role": "assistant", "content": content})
        return ChatReply(content=content, tool_calls=trace, rounds=self.max_rounds)

    async def _run_tool_call(self, call) -> ToolCallTrace:
        arguments = _parse_arguments(call.function.arguments)
        result = await self.dispatcher.dispatch(
            call.function.name,
            arguments,
            user_id=self.user_id,
            channel="chat",
            call_id=call.id,
        )
        return ToolCallTrace(id=call.id, name=call.function.name, arguments=arguments, result=result)

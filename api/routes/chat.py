"""Text chat endpoint.

POST /chat - run the tool-calling loop over the supplied conversation and
return the assistant's reply with a trace of the tool calls made.
"""

from typing import Any, Dict, List, Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from api.dependencies import current_user_id, get_dispatcher
from core.errors import UpstreamError
from core.observability.logging import get_logger
from orchestration.chat import ChatSession
from orchestration.dispatcher import Dispatcher


logger = get_logger(__name__)

router = APIRouter()


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)


@router.post("")
async def chat(
    body: ChatRequest,
    request: Request,
    user_id: str = Depends(current_user_id),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    if body.messages[-1].role != "user":
        raise HTTPException(status_code=400, detail="Last message must be from the user")

    session = ChatSession(dispatcher, user_id, settings=dispatcher.settings, client=request.app.state.chat_client)
    session.messages.extend(m.model_dump() for m in body.messages)

    try:
        reply = await session.run()
    except UpstreamError as e:
        logger.error("Chat failed", extra_fields={"error": e.message})
        raise HTTPException(status_code=502, detail="The assistant is unavailable. Please try again.")

    return {
        "reply": reply.content,
        "rounds": reply.rounds,
        "toolCalls": [
            {"id": t.id, "name": t.name, "arguments": t.arguments, "result": t.result}
            for t in reply.tool_calls
        ],
    }

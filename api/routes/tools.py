"""Tool invocation endpoints.

- GET  /tools              - tool names, descriptions and parameter schemas
- POST /tools/{tool_name}  - run one tool; body is the raw parameter object
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel

from api.dependencies import current_user_id, get_dispatcher
from orchestration.dispatcher import Dispatcher


router = APIRouter()


class ToolDescription(BaseModel):
    name: str
    description: str
    mutating: bool
    parameters: Dict[str, Any]


@router.get("", response_model=List[ToolDescription])
async def list_tools(dispatcher: Dispatcher = Depends(get_dispatcher)) -> List[ToolDescription]:
    return [
        ToolDescription(
            name=spec.name,
            description=spec.description,
            mutating=spec.mutating,
            parameters=spec.parameters_schema(),
        )
        for spec in dispatcher.registry.specs()
    ]


@router.post("/{tool_name}")
async def invoke_tool(
    tool_name: str,
    parameters: Optional[Dict[str, Any]] = Body(default=None),
    user_id: str = Depends(current_user_id),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """Dispatch a tool call. The response is the tool result, whatever its status."""
    return await dispatcher.dispatch(tool_name, parameters or {}, user_id=user_id, channel="api")

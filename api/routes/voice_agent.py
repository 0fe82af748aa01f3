"""Voice agent endpoints.

- GET  /voice-agent/config   - credential, Settings message and channel URL
- POST /voice-agent/function - relay one agent function call to the dispatcher
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from api.dependencies import current_user_id, get_datastore, get_dispatcher
from core.errors import DatastoreError, SpeechProviderError
from core.observability.logging import get_logger
from core.observability.metrics import get_metrics
from orchestration.dispatcher import Dispatcher
from storage.db import Datastore
from storage.owners import UserPreferences, get_user_preferences, resolve_effective_owner
from voice.settings import settings_for_user
from voice.token import grant_agent_token


logger = get_logger(__name__)

router = APIRouter()


class VoiceAgentConfig(BaseModel):
    token: str
    config: Dict[str, Any]
    user_id: str = Field(..., serialization_alias="userId")
    ws_url: str = Field(..., serialization_alias="wsUrl")


class FunctionCallRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    function_name: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    function_call_id: Optional[str] = None


@router.get("/config")
async def voice_agent_config(
    user_id: str = Depends(current_user_id),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    store: Datastore = Depends(get_datastore),
) -> Dict[str, Any]:
    settings = dispatcher.settings
    try:
        token = await grant_agent_token(settings)
    except SpeechProviderError:
        logger.error("Voice agent requested without an API key")
        raise HTTPException(status_code=500, detail="Voice agent not configured")

    try:
        preferences = get_user_preferences(store, resolve_effective_owner(store, user_id))
    except DatastoreError:
        logger.exception("Could not load user preferences for voice prompt")
        preferences = UserPreferences()

    get_metrics().record_voice_event("session_started")
    config = VoiceAgentConfig(
        token=token.value,
        config=settings_for_user(dispatcher.registry, user_id, preferences),
        user_id=user_id,
        ws_url=settings.voice_agent_ws_url,
    )
    return config.model_dump(by_alias=True)


@router.post("/function")
async def voice_agent_function(
    request: FunctionCallRequest,
    user_id: str = Depends(current_user_id),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    if not request.function_name:
        raise HTTPException(status_code=400, detail="Function name required")

    get_metrics().record_voice_event("function_call")
    result = await dispatcher.dispatch(
        request.function_name,
        request.parameters,
        user_id=user_id,
        channel="voice",
        call_id=request.function_call_id,
    )
    return {"functionCallId": request.function_call_id, "result": result}

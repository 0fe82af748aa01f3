"""Request dependencies: identity, datastore and dispatcher.

The identity collaborator is the upstream auth layer, which forwards the
authenticated user id in the ``X-User-Id`` header. Nothing in a request body
is ever trusted as identity.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request

from core.config import AppSettings
from orchestration.dispatcher import Dispatcher
from storage.db import Datastore


USER_ID_HEADER = "X-User-Id"


async def current_user_id(x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER)) -> str:
    """Authenticated user id, or 401."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def get_settings_dep(request: Request) -> AppSettings:
    return request.app.state.settings


def get_datastore(request: Request) -> Datastore:
    """Process-wide datastore (created on first use)."""
    state = request.app.state
    if state.store is None:
        state.store = Datastore(state.settings.db_path)
    return state.store


def get_dispatcher(request: Request) -> Dispatcher:
    state = request.app.state
    if state.dispatcher is None:
        state.dispatcher = Dispatcher(
            get_datastore(request),
            settings=state.settings,
            email_client=state.email_client,
        )
    return state.dispatcher

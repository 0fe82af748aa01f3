"""Shared pytest fixtures: a throwaway datastore, a dispatcher over it, and a
``call`` helper that runs one tool through the dispatcher synchronously."""

import asyncio

import pytest

from core.config import AppSettings
from core.observability.metrics import get_metrics
from orchestration.dispatcher import Dispatcher
from storage.db import Datastore


USER_ID = "user-1"


@pytest.fixture
def settings(tmp_path):
    return AppSettings(db_path=tmp_path / "assistant.db")


@pytest.fixture
def store(settings):
    return Datastore(settings.db_path)


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics().reset()
    yield
    get_metrics().reset()


@pytest.fixture
def dispatcher(store, settings):
    return Dispatcher(store, settings=settings)


@pytest.fixture
def call(dispatcher):
    def _call(tool_name, user_id=USER_ID, **parameters):
        return asyncio.run(dispatcher.dispatch(tool_name, parameters, user_id=user_id))
    return _call


@pytest.fixture
def add_client(store):
    def _add(name, owner_id=USER_ID, **fields):
        return store.insert("clients", {"user_id": owner_id, "name": name, **fields})
    return _add

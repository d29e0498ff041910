"""Shared test fixtures and configuration for backend tests."""
import time

import pytest
from fastapi.testclient import TestClient

from groupchat.chat.runtime import ChatRuntime
from groupchat.config import AppSettings, ChatSettings, DatabaseSettings
from groupchat.main import create_app
from groupchat.store.service import ChatStore


@pytest.fixture
def chat_settings():
    """Chat settings with a short typing window so expiry tests stay fast."""
    return ChatSettings(typing_idle_seconds=0.2, mailbox_size=32)


@pytest.fixture
def store():
    """An in-memory store with only the default room."""
    s = ChatStore(db_path=":memory:")
    yield s
    s.close()


@pytest.fixture
def second_room(store):
    """A room besides the default one."""
    return store.create_room("Second Group")


@pytest.fixture
def runtime(store, chat_settings):
    """A full broker runtime over the in-memory store."""
    rt = ChatRuntime(store, chat_settings)
    yield rt
    rt.shutdown()


@pytest.fixture
def app_settings(chat_settings):
    return AppSettings(
        database=DatabaseSettings(path=":memory:", seed_sample=False),
        chat=chat_settings,
    )


@pytest.fixture
def api_client(app_settings):
    """TestClient with the lifespan running (store and runtime created).

    Named api_client (not client) to match the HTTP-oriented tests.
    """
    with TestClient(create_app(app_settings)) as client:
        yield client


def wait_for_members(client, room_id, count, timeout=2.0):
    """Block until ``count`` connections are subscribed to ``room_id``.

    join-group has no reply, so WebSocket tests poll /health before sending.
    """
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        rooms = client.get("/health").json()["rooms"]
        if rooms.get(str(room_id), 0) >= count:
            return
        time.sleep(0.01)
    raise AssertionError(f"room {room_id} never reached {count} member(s)")

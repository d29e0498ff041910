"""Tests for the typing presence coordinator."""
import asyncio

import pytest

from groupchat.errors import NotConnected, Unauthenticated


def member(runtime, connection_id, user_id, room_id=1):
    conn = runtime.registry.register(connection_id)
    runtime.registry.identify(connection_id, user_id)
    runtime.registry.join(connection_id, room_id)
    return conn


def typing_events(conn):
    return [f["data"] for f in conn.drain_nowait() if f["event"] == "user-typing"]


@pytest.fixture
def users(store):
    return {
        "alice": store.create_user("Alice"),
        "bob": store.create_user("Bob", is_anonymous=True),
        "carol": store.create_user("Carol"),
    }


class TestTransitions:

    @pytest.mark.asyncio
    async def test_start_typing_notifies_others_not_sender(self, runtime, users):
        a = member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        published = await runtime.presence.signal("a", 1, True)

        assert published is True
        assert typing_events(b) == [
            {"userId": users["alice"].id, "isTyping": True, "displayName": "Alice"}
        ]
        assert typing_events(a) == []
        assert runtime.presence.typing_users(1) == [users["alice"].id]

    @pytest.mark.asyncio
    async def test_repeated_start_only_rearms_timer(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        await runtime.presence.signal("a", 1, True)
        assert await runtime.presence.signal("a", 1, True) is False
        assert len(typing_events(b)) == 1

    @pytest.mark.asyncio
    async def test_override_change_republishes_with_new_name(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        await runtime.presence.signal("a", 1, True)
        assert await runtime.presence.signal("a", 1, True, anonymity_override=True) is True

        names = [e["displayName"] for e in typing_events(b)]
        assert names == ["Alice", "Anonymous"]

    @pytest.mark.asyncio
    async def test_stop_typing_publishes_idle(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        await runtime.presence.signal("a", 1, True)
        await runtime.presence.signal("a", 1, False)

        assert [e["isTyping"] for e in typing_events(b)] == [True, False]
        assert runtime.presence.typing_users(1) == []

    @pytest.mark.asyncio
    async def test_stop_uses_name_resolved_for_that_signal(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        await runtime.presence.signal("a", 1, True, anonymity_override=False)
        await runtime.presence.signal("a", 1, False, anonymity_override=True)

        assert typing_events(b) == [
            {"userId": users["alice"].id, "isTyping": True, "displayName": "Alice"},
            {"userId": users["alice"].id, "isTyping": False, "displayName": "Anonymous"},
        ]

    @pytest.mark.asyncio
    async def test_stop_from_second_connection_is_not_echoed_to_it(self, runtime, users):
        a1 = member(runtime, "a1", users["alice"].id)
        a2 = member(runtime, "a2", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        await runtime.presence.signal("a1", 1, True)
        assert [e["isTyping"] for e in typing_events(a2)] == [True]

        await runtime.presence.signal("a2", 1, False)

        assert typing_events(a2) == []
        assert [e["isTyping"] for e in typing_events(a1)] == [False]
        assert [e["isTyping"] for e in typing_events(b)] == [True, False]

    @pytest.mark.asyncio
    async def test_stop_while_idle_is_silent(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        assert await runtime.presence.signal("a", 1, False) is False
        assert typing_events(b) == []

    @pytest.mark.asyncio
    async def test_anonymous_user_typing_shows_label(self, runtime, users):
        a = member(runtime, "a", users["alice"].id)
        member(runtime, "b", users["bob"].id)

        await runtime.presence.signal("b", 1, True)

        assert typing_events(a)[0]["displayName"] == "Anonymous"

    @pytest.mark.asyncio
    async def test_unbound_connection_rejected(self, runtime):
        runtime.registry.register("a")
        with pytest.raises(Unauthenticated):
            await runtime.presence.signal("a", 1, True)


class TestExpiry:

    @pytest.mark.asyncio
    async def test_idle_window_expires_typing(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)

        await runtime.presence.signal("a", 1, True)
        await asyncio.sleep(runtime.settings.typing_idle_seconds * 3)

        assert [e["isTyping"] for e in typing_events(b)] == [True, False]
        assert runtime.presence.is_typing(1, users["alice"].id) is False

    @pytest.mark.asyncio
    async def test_new_signal_postpones_expiry(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)
        idle = runtime.settings.typing_idle_seconds

        await runtime.presence.signal("a", 1, True)
        await asyncio.sleep(idle * 0.5)
        await runtime.presence.signal("a", 1, True)
        await asyncio.sleep(idle * 0.5)

        assert runtime.presence.is_typing(1, users["alice"].id) is True
        assert [e["isTyping"] for e in typing_events(b)] == [True]


class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_returns_typing_to_idle(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)
        await runtime.presence.signal("a", 1, True)

        assert runtime.dispatcher.disconnect("a") is True

        assert [e["isTyping"] for e in typing_events(b)] == [True, False]
        assert runtime.presence.typing_users(1) == []

    @pytest.mark.asyncio
    async def test_no_typing_events_after_disconnect(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)
        runtime.dispatcher.disconnect("a")

        with pytest.raises(NotConnected):
            await runtime.presence.signal("a", 1, True)

        await asyncio.sleep(runtime.settings.typing_idle_seconds * 2)
        assert typing_events(b) == []

    @pytest.mark.asyncio
    async def test_disconnect_during_signal_leaves_no_state(self, runtime, store, users, monkeypatch):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)
        real_lookup = store.lookup_user

        def lookup_then_drop(user_id):
            user = real_lookup(user_id)
            runtime.registry.unregister_all("a")
            return user

        monkeypatch.setattr(store, "lookup_user", lookup_then_drop)

        with pytest.raises(NotConnected):
            await runtime.presence.signal("a", 1, True)

        assert runtime.presence.typing_users(1) == []
        assert typing_events(b) == []

    @pytest.mark.asyncio
    async def test_leave_clears_only_that_room(self, runtime, users):
        runtime.registry.register("a")
        runtime.registry.identify("a", users["alice"].id)
        runtime.registry.join("a", 1)
        runtime.registry.join("a", 2)
        room1 = member(runtime, "b", users["bob"].id, room_id=1)
        room2 = member(runtime, "c", users["carol"].id, room_id=2)

        await runtime.presence.signal("a", 1, True)
        await runtime.presence.signal("a", 2, True)
        runtime.registry.leave("a", 1)
        assert runtime.presence.clear_room("a", 1) == 1

        assert [e["isTyping"] for e in typing_events(room1)] == [True, False]
        assert [e["isTyping"] for e in typing_events(room2)] == [True]
        assert runtime.presence.typing_users(2) == [users["alice"].id]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_timers_silently(self, runtime, users):
        member(runtime, "a", users["alice"].id)
        b = member(runtime, "b", users["bob"].id)
        await runtime.presence.signal("a", 1, True)
        typing_events(b)

        runtime.presence.shutdown()
        await asyncio.sleep(runtime.settings.typing_idle_seconds * 2)

        assert typing_events(b) == []

"""Unit tests for the DuckDB persistence gateway."""
import os
import tempfile
from datetime import datetime

import pytest

from groupchat.errors import NotFound, StoreUnavailable
from groupchat.store.schemas import MessageKind
from groupchat.store.service import DEFAULT_ROOM_NAME, ChatStore


@pytest.fixture
def temp_db():
    """Create a temporary database path for testing."""
    # DuckDB creates the file itself; only reserve a name.
    db_path = tempfile.mktemp(suffix=".duckdb")

    yield db_path

    for path in (db_path, db_path + ".wal"):
        if os.path.exists(path):
            os.remove(path)


class TestBootstrap:
    """Schema creation and seed data."""

    def test_default_room_exists(self, store):
        rooms = store.list_rooms()
        assert len(rooms) == 1
        assert rooms[0].id == 1
        assert rooms[0].name == DEFAULT_ROOM_NAME

    def test_no_sample_data_unless_requested(self, store):
        assert store.fetch_history(1) == []
        with pytest.raises(NotFound):
            store.lookup_user(1)

    def test_seed_sample_inserts_users_and_messages(self):
        s = ChatStore(db_path=":memory:", seed_sample=True)
        try:
            history = s.fetch_history(1)
            assert [m.text for m in history][0] == "Someone order Bornvita!!"
            assert s.lookup_user(3).is_anonymous is True
            assert s.get_room(1).created_by_name == "Kirtigan Gadhvi"
            assert len(s.list_members(1)) == 3
        finally:
            s.close()

    def test_reopen_keeps_data_and_does_not_reseed(self, temp_db):
        s = ChatStore(db_path=temp_db)
        user = s.create_user("Alice")
        s.insert_message(1, user.id, "persisted")
        s.close()

        reopened = ChatStore(db_path=temp_db)
        try:
            assert len(reopened.list_rooms()) == 1
            assert [m.text for m in reopened.fetch_history(1)] == ["persisted"]
        finally:
            reopened.close()


class TestMessages:
    """insert_message / fetch_history."""

    def test_insert_assigns_id_and_timestamp(self, store):
        user = store.create_user("Alice")
        message = store.insert_message(1, user.id, "hello")

        assert message.id >= 1
        assert message.room_id == 1
        assert message.user_id == user.id
        assert message.text == "hello"
        assert message.kind == MessageKind.TEXT
        assert isinstance(message.created_at, datetime)

    def test_history_is_ordered_by_creation(self, store):
        user = store.create_user("Alice")
        inserted = [store.insert_message(1, user.id, f"m{i}") for i in range(5)]

        history = store.fetch_history(1)

        assert [m.id for m in history] == [m.id for m in inserted]
        assert [m.text for m in history] == ["m0", "m1", "m2", "m3", "m4"]

    def test_history_is_scoped_to_room(self, store, second_room):
        user = store.create_user("Alice")
        store.insert_message(1, user.id, "room one")
        store.insert_message(second_room.id, user.id, "room two")

        assert [m.text for m in store.fetch_history(1)] == ["room one"]
        assert [m.text for m in store.fetch_history(second_room.id)] == ["room two"]

    def test_insert_into_missing_room_raises_not_found(self, store):
        user = store.create_user("Alice")
        with pytest.raises(NotFound):
            store.insert_message(424242, user.id, "orphan")
        assert store.fetch_history(424242) == []

    def test_system_kind_round_trips(self, store):
        user = store.create_user("Alice")
        store.insert_message(1, user.id, "Alice joined", kind=MessageKind.SYSTEM)
        assert store.fetch_history(1)[0].kind == MessageKind.SYSTEM

    def test_history_view_joins_author(self, store):
        alice = store.create_user("Alice")
        anon = store.create_user("Bob", is_anonymous=True)
        store.insert_message(1, alice.id, "hi")
        store.insert_message(1, anon.id, "hey")

        view = store.fetch_history_view(1)

        assert [(m.text, u.display_name, u.is_anonymous) for m, u in view] == [
            ("hi", "Alice", False),
            ("hey", "Bob", True),
        ]


class TestUsersAndMembership:
    """create_user / lookup_user / add_member."""

    def test_create_user_generates_username(self, store):
        named = store.create_user("Alice")
        anon = store.create_user("Anonymous", is_anonymous=True)

        assert named.username.startswith("user_")
        assert anon.username.startswith("anon_")
        assert named.username != anon.username
        assert anon.id > named.id

    def test_lookup_user_round_trip(self, store):
        created = store.create_user("Alice")
        found = store.lookup_user(created.id)
        assert found.display_name == "Alice"
        assert found.is_anonymous is False

    def test_lookup_missing_user_raises_not_found(self, store):
        with pytest.raises(NotFound):
            store.lookup_user(999)

    def test_add_member_is_unique(self, store):
        user = store.create_user("Alice")
        store.add_member(1, user.id)
        store.add_member(1, user.id)
        assert store.list_members(1) == [user.id]

    def test_get_missing_room_raises_not_found(self, store):
        with pytest.raises(NotFound):
            store.get_room(42)

    def test_create_room_with_creator(self, store):
        creator = store.create_user("Alice")
        room = store.create_room("Book Club", "Monthly picks", created_by=creator.id)

        assert room.id == 2
        assert room.created_by_name == "Alice"
        assert store.get_room(room.id).description == "Monthly picks"
        assert store.list_members(room.id) == [creator.id]
        assert [r.id for r in store.list_rooms()] == [1, 2]


class TestUnavailable:
    """Operations on a closed store."""

    def test_closed_store_raises_store_unavailable(self):
        s = ChatStore(db_path=":memory:")
        s.close()

        with pytest.raises(StoreUnavailable):
            s.insert_message(1, 1, "lost")
        with pytest.raises(StoreUnavailable):
            s.fetch_history(1)
        with pytest.raises(StoreUnavailable):
            s.lookup_user(1)

    def test_close_is_idempotent(self):
        s = ChatStore(db_path=":memory:")
        s.close()
        s.close()

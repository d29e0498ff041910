"""DuckDB-based persistence gateway for users, rooms, membership and messages.

This module provides durable storage for the chat broker using DuckDB, a fast
embedded database. Message ids come from a sequence, so ``ORDER BY id`` is the
authoritative per-room order for both history reads and live broadcast.

Database Schema:
    users:         id, username (unique), display_name, avatar_url,
                   is_anonymous, created_at
    chat_groups:   id, name, description, avatar_url, created_by, created_at
    group_members: (group_id, user_id) primary key, joined_at, is_admin
    messages:      id, group_id, user_id, message_text, message_type,
                   created_at

Thread Safety:
    A single DuckDB connection is shared. Every public method takes an
    internal lock, so the broker may call the gateway from worker threads
    (``asyncio.to_thread``) without interleaving statements.

Usage:
    store = ChatStore(db_path=":memory:")
    message = store.insert_message(room_id=1, user_id=3, text="hello")
    history = store.fetch_history(1)
"""
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import duckdb

from groupchat.errors import NotFound, StoreUnavailable

from .schemas import Message, MessageKind, Room, UserIdentity

logger = logging.getLogger(__name__)

_SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS users_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS chat_groups_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        id           INTEGER DEFAULT nextval('users_seq') PRIMARY KEY,
        username     VARCHAR NOT NULL UNIQUE,
        display_name VARCHAR NOT NULL,
        avatar_url   VARCHAR,
        is_anonymous BOOLEAN NOT NULL DEFAULT FALSE,
        created_at   TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_groups (
        id          INTEGER DEFAULT nextval('chat_groups_seq') PRIMARY KEY,
        name        VARCHAR NOT NULL,
        description VARCHAR,
        avatar_url  VARCHAR,
        created_by  INTEGER,
        created_at  TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS group_members (
        group_id  INTEGER NOT NULL,
        user_id   INTEGER NOT NULL,
        joined_at TIMESTAMP NOT NULL,
        is_admin  BOOLEAN NOT NULL DEFAULT FALSE,
        PRIMARY KEY (group_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id           INTEGER DEFAULT nextval('messages_seq') PRIMARY KEY,
        group_id     INTEGER NOT NULL,
        user_id      INTEGER NOT NULL,
        message_text VARCHAR NOT NULL,
        message_type VARCHAR NOT NULL DEFAULT 'text',
        created_at   TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_group ON messages(group_id)",
]

DEFAULT_ROOM_NAME = "Fun Friday Group"
DEFAULT_ROOM_DESCRIPTION = "Group chat for Friday fun activities"

_SAMPLE_USERS = [
    ("kirtigan", "Kirtigan Gadhvi", False),
    ("abhou", "Abhou Shukla", False),
    ("anonymous1", "Anonymous", True),
]

_SAMPLE_MESSAGES = [
    (3, "Someone order Bornvita!!"),
    (1, "Hi Guysss"),
    (2, "We have Surprise For you!!"),
]

_USER_COLUMNS = "id, username, display_name, is_anonymous, avatar_url, created_at"
_MESSAGE_COLUMNS = "id, group_id, user_id, message_text, message_type, created_at"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ChatStore:
    """Persistence gateway backed by a single DuckDB connection.

    All methods are synchronous. Driver failures surface as
    :class:`StoreUnavailable`; missing rows as :class:`NotFound`.
    """

    def __init__(self, db_path: str = "groupchat.duckdb", seed_sample: bool = False) -> None:
        """Open the database and create the schema if needed.

        Args:
            db_path: Path to DuckDB file, or ":memory:".
            seed_sample: Insert demo users and messages into an empty database.
        """
        self._db_path = db_path
        self._lock = threading.Lock()
        try:
            self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(db_path)
        except duckdb.Error as exc:
            raise StoreUnavailable(f"Cannot open message store: {exc}") from exc
        self._initialize_db(seed_sample)
        logger.info("[ChatStore] Initialized with db=%s", db_path)

    # -----------------------------------------------------------------------
    # Bootstrap
    # -----------------------------------------------------------------------

    def _initialize_db(self, seed_sample: bool) -> None:
        with self._lock:
            conn = self._connection()
            for statement in _SCHEMA:
                conn.execute(statement)
            (room_count,) = conn.execute("SELECT COUNT(*) FROM chat_groups").fetchone()
            if room_count:
                return
            now = _utcnow()
            conn.execute(
                "INSERT INTO chat_groups (name, description, created_at) VALUES (?, ?, ?)",
                [DEFAULT_ROOM_NAME, DEFAULT_ROOM_DESCRIPTION, now],
            )
            if seed_sample:
                self._seed_sample(conn, now)
            logger.info("[ChatStore] Bootstrapped default room '%s'", DEFAULT_ROOM_NAME)

    @staticmethod
    def _seed_sample(conn: duckdb.DuckDBPyConnection, now: datetime) -> None:
        for username, display_name, is_anonymous in _SAMPLE_USERS:
            (user_id,) = conn.execute(
                """
                INSERT INTO users (username, display_name, is_anonymous, created_at)
                VALUES (?, ?, ?, ?) RETURNING id
                """,
                [username, display_name, is_anonymous, now],
            ).fetchone()
            conn.execute(
                "INSERT INTO group_members (group_id, user_id, joined_at, is_admin) VALUES (1, ?, ?, ?)",
                [user_id, now, user_id == 1],
            )
        conn.execute("UPDATE chat_groups SET created_by = 1 WHERE id = 1")
        for user_id, text in _SAMPLE_MESSAGES:
            conn.execute(
                "INSERT INTO messages (group_id, user_id, message_text, created_at) VALUES (1, ?, ?, ?)",
                [user_id, text, now],
            )

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise StoreUnavailable("Message store is closed")
        return self._conn

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def insert_message(
        self,
        room_id: int,
        user_id: int,
        text: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> Message:
        """Append a message and return it with its assigned id and timestamp.

        Raises:
            NotFound: The room does not exist.
            StoreUnavailable: The database cannot be reached.
        """
        now = _utcnow()
        try:
            with self._lock:
                conn = self._connection()
                if conn.execute("SELECT 1 FROM chat_groups WHERE id = ?", [room_id]).fetchone() is None:
                    raise NotFound(f"Group {room_id} not found")
                row = conn.execute(
                    f"""
                    INSERT INTO messages (group_id, user_id, message_text, message_type, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    RETURNING {_MESSAGE_COLUMNS}
                    """,
                    [room_id, user_id, text, kind.value, now],
                ).fetchone()
        except duckdb.Error as exc:
            logger.error("[ChatStore] insert_message failed for room %s: %s", room_id, exc)
            raise StoreUnavailable() from exc
        return self._row_to_message(row)

    def fetch_history(self, room_id: int) -> List[Message]:
        """All messages of a room, oldest first."""
        rows = self._query(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE group_id = ? ORDER BY id ASC",
            [room_id],
        )
        return [self._row_to_message(r) for r in rows]

    def fetch_history_view(self, room_id: int) -> List[Tuple[Message, UserIdentity]]:
        """History joined with each author's stored identity, oldest first."""
        user_cols = ", ".join(f"u.{c}" for c in _USER_COLUMNS.split(", "))
        message_cols = ", ".join(f"m.{c}" for c in _MESSAGE_COLUMNS.split(", "))
        rows = self._query(
            f"""
            SELECT {message_cols}, {user_cols}
            FROM messages m
            JOIN users u ON m.user_id = u.id
            WHERE m.group_id = ?
            ORDER BY m.id ASC
            """,
            [room_id],
        )
        return [(self._row_to_message(r[:6]), self._row_to_user(r[6:])) for r in rows]

    # -----------------------------------------------------------------------
    # Users and membership
    # -----------------------------------------------------------------------

    def lookup_user(self, user_id: int) -> UserIdentity:
        """Fetch a user by id.

        Raises:
            NotFound: No such user (stale or forged client reference).
        """
        rows = self._query(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", [user_id])
        if not rows:
            raise NotFound(f"User {user_id} not found")
        return self._row_to_user(rows[0])

    def create_user(self, display_name: str, is_anonymous: bool = False) -> UserIdentity:
        """Create a user with a server-generated username."""
        token = uuid.uuid4().hex[:10]
        username = f"anon_{token}" if is_anonymous else f"user_{token}"
        try:
            with self._lock:
                row = self._connection().execute(
                    f"""
                    INSERT INTO users (username, display_name, is_anonymous, created_at)
                    VALUES (?, ?, ?, ?)
                    RETURNING {_USER_COLUMNS}
                    """,
                    [username, display_name, is_anonymous, _utcnow()],
                ).fetchone()
        except duckdb.Error as exc:
            logger.error("[ChatStore] create_user failed: %s", exc)
            raise StoreUnavailable() from exc
        return self._row_to_user(row)

    def add_member(self, room_id: int, user_id: int) -> None:
        """Add a user to a room; a repeated pair is ignored."""
        try:
            with self._lock:
                self._connection().execute(
                    "INSERT OR IGNORE INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)",
                    [room_id, user_id, _utcnow()],
                )
        except duckdb.Error as exc:
            logger.error("[ChatStore] add_member failed for room %s: %s", room_id, exc)
            raise StoreUnavailable() from exc

    def list_members(self, room_id: int) -> List[int]:
        rows = self._query(
            "SELECT user_id FROM group_members WHERE group_id = ? ORDER BY joined_at, user_id",
            [room_id],
        )
        return [r[0] for r in rows]

    # -----------------------------------------------------------------------
    # Rooms
    # -----------------------------------------------------------------------

    _ROOM_SELECT = """
        SELECT g.id, g.name, g.description, g.avatar_url, g.created_by,
               u.display_name, g.created_at
        FROM chat_groups g
        LEFT JOIN users u ON g.created_by = u.id
    """

    def create_room(
        self, name: str, description: Optional[str] = None, created_by: Optional[int] = None
    ) -> Room:
        """Create a room; its creator, if given, becomes an admin member."""
        now = _utcnow()
        try:
            with self._lock:
                conn = self._connection()
                (room_id,) = conn.execute(
                    """
                    INSERT INTO chat_groups (name, description, created_by, created_at)
                    VALUES (?, ?, ?, ?) RETURNING id
                    """,
                    [name, description, created_by, now],
                ).fetchone()
                if created_by is not None:
                    conn.execute(
                        "INSERT OR IGNORE INTO group_members (group_id, user_id, joined_at, is_admin) VALUES (?, ?, ?, TRUE)",
                        [room_id, created_by, now],
                    )
        except duckdb.Error as exc:
            logger.error("[ChatStore] create_room failed: %s", exc)
            raise StoreUnavailable() from exc
        logger.info("[ChatStore] Created room %s '%s'", room_id, name)
        return self.get_room(room_id)

    def list_rooms(self) -> List[Room]:
        rows = self._query(self._ROOM_SELECT + " ORDER BY g.id", [])
        return [self._row_to_room(r) for r in rows]

    def get_room(self, room_id: int) -> Room:
        rows = self._query(self._ROOM_SELECT + " WHERE g.id = ?", [room_id])
        if not rows:
            raise NotFound(f"Group {room_id} not found")
        return self._row_to_room(rows[0])

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _query(self, sql: str, params: list) -> list:
        try:
            with self._lock:
                return self._connection().execute(sql, params).fetchall()
        except duckdb.Error as exc:
            logger.error("[ChatStore] query failed: %s", exc)
            raise StoreUnavailable() from exc

    @staticmethod
    def _row_to_message(row) -> Message:
        return Message(
            id=row[0],
            room_id=row[1],
            user_id=row[2],
            text=row[3],
            kind=MessageKind(row[4]),
            created_at=row[5],
        )

    @staticmethod
    def _row_to_user(row) -> UserIdentity:
        return UserIdentity(
            id=row[0],
            username=row[1],
            display_name=row[2],
            is_anonymous=bool(row[3]),
            avatar_url=row[4],
            created_at=row[5],
        )

    @staticmethod
    def _row_to_room(row) -> Room:
        return Room(
            id=row[0],
            name=row[1],
            description=row[2],
            avatar_url=row[3],
            created_by=row[4],
            created_by_name=row[5],
            created_at=row[6],
        )

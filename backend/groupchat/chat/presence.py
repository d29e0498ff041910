"""Typing indicator coordinator.

Keeps an ephemeral ``Idle -> Typing -> Idle`` state per (room, user). Nothing
here is persisted. A Typing state falls back to Idle on an explicit stop
signal, on idle-timer expiry, when the owning connection leaves the room, or
when it disconnects. Every transition is republished to the room as a
``user-typing`` event, excluding the connection that produced it.

Thread Safety:
    Signals arrive from connection handlers on the event loop and expiries
    from ``loop.call_later`` callbacks on the same loop; both mutate state
    under one lock and never await while holding it.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from groupchat.errors import NotConnected
from groupchat.store.service import ChatStore

from .display import resolve_display
from .fanout import RoomFanout
from .registry import ConnectionRegistry
from .schemas import UserTypingEvent

logger = logging.getLogger(__name__)

TypingKey = Tuple[int, int]


@dataclass
class TypingState:
    """Typing status of one user in one room.

    Attributes:
        room_id: Room the indicator belongs to.
        user_id: Typing user.
        connection_id: Connection that produced the latest signal; it is
            excluded from the republished events.
        display_name: Name resolved at the latest signal.
        last_updated: Monotonic time of the latest signal.
        generation: Bumped on every signal so stale timers are ignored.
        timer: Pending idle expiry.
    """
    room_id: int
    user_id: int
    connection_id: str
    display_name: str
    last_updated: float
    generation: int = 0
    timer: Optional[asyncio.TimerHandle] = None


class PresenceCoordinator:
    """Owns typing state and publishes its transitions."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        store: ChatStore,
        fanout: RoomFanout,
        idle_seconds: float = 5.0,
        anonymous_label: str = "Anonymous",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._store = store
        self._fanout = fanout
        self._idle_seconds = idle_seconds
        self._anonymous_label = anonymous_label
        self._clock = clock
        self._lock = threading.Lock()

        # (room_id, user_id) -> state; absent means Idle
        self._states: Dict[TypingKey, TypingState] = {}

    async def signal(
        self,
        connection_id: str,
        room_id: int,
        is_typing: bool,
        anonymity_override: bool = False,
    ) -> bool:
        """Apply a typing signal from a connection.

        The display name is resolved now, from the stored user and the
        override sent with this signal.

        Returns:
            True if a ``user-typing`` event was published.

        Raises:
            NotConnected: The connection is unknown or disconnected while the
                signal was being processed.
            Unauthenticated: The connection has no bound user.
        """
        user_id = self._registry.user_of(connection_id)
        user = await asyncio.to_thread(self._store.lookup_user, user_id)
        display_name, _ = resolve_display(user, anonymity_override, self._anonymous_label)

        with self._lock:
            # Disconnect may have happened during the lookup.
            if not self._registry.is_registered(connection_id):
                raise NotConnected(connection_id)
            key = (room_id, user_id)
            state = self._states.get(key)
            if not is_typing:
                if state is None:
                    return False
                # An explicit stop carries its own name and origin.
                state.display_name = display_name
                state.connection_id = connection_id
                self._to_idle(key, state, reason="stopped")
                return True

            changed = state is None or state.display_name != display_name
            if state is None:
                state = TypingState(
                    room_id=room_id,
                    user_id=user_id,
                    connection_id=connection_id,
                    display_name=display_name,
                    last_updated=self._clock(),
                )
                self._states[key] = state
            state.connection_id = connection_id
            state.display_name = display_name
            state.last_updated = self._clock()
            self._arm_timer(key, state)
            if changed:
                self._publish(state, is_typing=True)
            return changed

    def clear_room(self, connection_id: str, room_id: int) -> int:
        """Return to Idle every state the connection owns in one room."""
        with self._lock:
            return self._clear(lambda s: s.connection_id == connection_id and s.room_id == room_id,
                               reason="left")

    def clear_connection(self, connection_id: str) -> int:
        """Return to Idle every state the connection owns (disconnect)."""
        with self._lock:
            return self._clear(lambda s: s.connection_id == connection_id, reason="disconnected")

    def is_typing(self, room_id: int, user_id: int) -> bool:
        with self._lock:
            state = self._states.get((room_id, user_id))
            return state is not None and not self._is_stale(state)

    def typing_users(self, room_id: int) -> List[int]:
        """User ids currently typing in a room."""
        with self._lock:
            return sorted(
                s.user_id for s in self._states.values()
                if s.room_id == room_id and not self._is_stale(s)
            )

    def shutdown(self) -> None:
        """Drop all state and cancel pending timers without publishing."""
        with self._lock:
            for state in self._states.values():
                if state.timer is not None:
                    state.timer.cancel()
            self._states.clear()

    # -----------------------------------------------------------------------
    # Internal (caller holds the lock)
    # -----------------------------------------------------------------------

    def _is_stale(self, state: TypingState) -> bool:
        return self._clock() - state.last_updated > self._idle_seconds

    def _arm_timer(self, key: TypingKey, state: TypingState) -> None:
        if state.timer is not None:
            state.timer.cancel()
        state.generation += 1
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(
            self._idle_seconds, self._expire, key, state.generation
        )

    def _expire(self, key: TypingKey, generation: int) -> None:
        with self._lock:
            state = self._states.get(key)
            if state is None or state.generation != generation:
                return
            self._to_idle(key, state, reason="expired")

    def _clear(self, predicate: Callable[[TypingState], bool], reason: str) -> int:
        matched = [(k, s) for k, s in self._states.items() if predicate(s)]
        for key, state in matched:
            self._to_idle(key, state, reason=reason)
        return len(matched)

    def _to_idle(self, key: TypingKey, state: TypingState, reason: str) -> None:
        if state.timer is not None:
            state.timer.cancel()
        del self._states[key]
        logger.debug("[Presence] user %s idle in room %s (%s)", state.user_id, state.room_id, reason)
        self._publish(state, is_typing=False)

    def _publish(self, state: TypingState, is_typing: bool) -> None:
        event = UserTypingEvent(
            userId=state.user_id,
            isTyping=is_typing,
            displayName=state.display_name,
        )
        self._fanout.publish_excluding(state.room_id, event, state.connection_id)

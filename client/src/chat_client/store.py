from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from chat_client.models import Friend, FriendsSnapshot, Message, Reaction

Listener = Callable[["ChatStore"], None]


@dataclass
class ChatState:
    messages_by_room: Dict[str, List[Message]] = field(default_factory=dict)
    unread_counts: Dict[str, int] = field(default_factory=dict)
    online_users: List[str] = field(default_factory=list)
    current_room: Optional[str] = None
    loading_history: Dict[str, bool] = field(default_factory=dict)
    typing_status: Dict[str, bool] = field(default_factory=dict)
    friends: List[Friend] = field(default_factory=list)
    pending_requests: List[Friend] = field(default_factory=list)


class ChatStore:
    """Single-writer container for all chat state.

    Every mutation goes through a named action; listeners registered with
    :meth:`subscribe` are called with the store after each action settles.
    Room logs are only ever appended to or replaced wholesale, never
    reordered.
    """

    def __init__(self) -> None:
        self._state = ChatState()
        self._listeners: List[Listener] = []
        self._batch_depth = 0
        self._dirty = False

    @property
    def state(self) -> ChatState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return

        return unsubscribe

    @contextmanager
    def batch(self) -> Iterator["ChatStore"]:
        """Group several actions so listeners see only the settled result."""

        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty:
                self._notify()

    def _notify(self) -> None:
        if self._batch_depth:
            self._dirty = True
            return
        self._dirty = False
        for listener in list(self._listeners):
            listener(self)

    # -- reads -------------------------------------------------------------

    def messages(self, room_id: str) -> Optional[List[Message]]:
        log = self._state.messages_by_room.get(room_id)
        return list(log) if log is not None else None

    def has_log(self, room_id: str) -> bool:
        return room_id in self._state.messages_by_room

    def is_loading(self, room_id: str) -> bool:
        return self._state.loading_history.get(room_id, False)

    def unread(self, room_id: str) -> int:
        return self._state.unread_counts.get(room_id, 0)

    def is_typing(self, room_id: str) -> bool:
        return self._state.typing_status.get(room_id, False)

    # -- actions -----------------------------------------------------------

    def set_current_room(self, room_id: Optional[str]) -> None:
        self._state.current_room = room_id
        self._notify()

    def set_online_users(self, users: Iterable[str]) -> None:
        self._state.online_users = list(users)
        self._notify()

    def add_message(self, message: Message) -> None:
        self._state.messages_by_room.setdefault(message.room_id, []).append(message)
        self._notify()

    def set_messages(self, room_id: str, messages: Sequence[Message]) -> None:
        self._state.messages_by_room[room_id] = list(messages)
        self._notify()

    def update_message_reactions(self, message_id: str, reactions: Sequence[Reaction]) -> bool:
        """Replace the reactions of the message with ``message_id``.

        Returns ``False`` when no loaded room holds that message.
        """

        for log in self._state.messages_by_room.values():
            for index, message in enumerate(log):
                if message.id == message_id:
                    log[index] = message.with_reactions(reactions)
                    self._notify()
                    return True
        return False

    def mark_messages_seen(self, room_id: str) -> None:
        log = self._state.messages_by_room.get(room_id)
        if log is None:
            return
        self._state.messages_by_room[room_id] = [message.mark_seen() for message in log]
        self._notify()

    def set_typing(self, room_id: str, is_typing: bool) -> None:
        self._state.typing_status[room_id] = is_typing
        self._notify()

    def increment_unread(self, room_id: str) -> None:
        self._state.unread_counts[room_id] = self._state.unread_counts.get(room_id, 0) + 1
        self._notify()

    def clear_unread(self, room_id: str) -> None:
        if self._state.unread_counts.pop(room_id, None) is None:
            return
        self._notify()

    def set_loading(self, room_id: str, is_loading: bool) -> None:
        self._state.loading_history[room_id] = is_loading
        self._notify()

    def set_friends(self, snapshot: FriendsSnapshot) -> None:
        self._state.friends = list(snapshot.friends)
        self._state.pending_requests = list(snapshot.pending_requests)
        self._notify()

    def remove_pending_request(self, request_id: str) -> None:
        self._state.pending_requests = [entry for entry in self._state.pending_requests if entry.id != request_id]
        self._notify()

    def reset(self) -> None:
        self._state = ChatState()
        self._notify()

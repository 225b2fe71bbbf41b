"""Reconcile channel events and REST responses into the chat store."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Coroutine, Iterable, List, Optional, Sequence, Set

import aiohttp
from loguru import logger

from chat_client import channel as ch
from chat_client.channel import RemoteChannel
from chat_client.config import ClientConfig, load_client_config_from_env
from chat_client.errors import ChatClientError
from chat_client.models import ActionResult, Message, Reaction, parse_reactions
from chat_client.rooms import peer_of, room_id
from chat_client.session import IdentityContext, SessionSlot
from chat_client.store import ChatStore
from chat_client.typing_notifier import TypingNotifier

RECOVERABLE_ERRORS = (ChatClientError, aiohttp.ClientError, asyncio.TimeoutError)


class ChatSync:
    """Owns the chat state and the protocol that keeps it in step with the server.

    Handlers run on the event loop one at a time, so the store needs no
    locking. Only history loads and friend requests suspend.
    """

    def __init__(
        self,
        identity: IdentityContext,
        channel: RemoteChannel,
        store: ChatStore | None = None,
        *,
        typing_idle_s: float | None = None,
    ) -> None:
        self.identity = identity
        self.channel = channel
        self.store = store or ChatStore()
        idle_s = typing_idle_s if typing_idle_s is not None else channel.config.typing_idle_s
        self._typing = TypingNotifier(self.send_typing_status, idle_s)
        self._unsubscribers: List[Callable[[], None]] = []
        self._tasks: Set[asyncio.Task] = set()

    @property
    def username(self) -> Optional[str]:
        return self.identity.username

    @property
    def current_room(self) -> Optional[str]:
        return self.store.state.current_room

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> bool:
        """Subscribe to the channel, connect, and fetch the friend lists."""

        self._subscribe()
        connected = await self.channel.connect()
        if self.identity.is_authenticated:
            await self.refresh_friends()
        return connected

    async def stop(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._typing.cancel()
        await self._cancel_tasks()
        await self.channel.disconnect()

    async def login(self, username: str, credential: str) -> bool:
        self.identity.set_auth(username, credential)
        self._typing.cancel()
        await self._cancel_tasks()
        self.store.reset()
        return await self.start()

    async def sign_in(self, username: str, password: str) -> ActionResult:
        try:
            auth = await self.channel.login(username, password)
        except RECOVERABLE_ERRORS as exc:
            logger.warning("Sign in as {} failed: {}", username, exc)
            return ActionResult.failed(str(exc))
        await self.login(auth["username"], auth["token"])
        return ActionResult(success=True)

    async def register(self, username: str, password: str) -> ActionResult:
        try:
            return await self.channel.register(username, password)
        except RECOVERABLE_ERRORS as exc:
            logger.warning("Registration of {} failed: {}", username, exc)
            return ActionResult.failed(str(exc))

    async def logout(self) -> None:
        self._typing.cancel()
        await self._cancel_tasks()
        self.identity.clear()
        await self.channel.disconnect()
        self.store.reset()

    def _subscribe(self) -> None:
        if self._unsubscribers:
            return
        handlers = {
            ch.EVENT_CHAT_MESSAGE: self._on_chat_message,
            ch.EVENT_ONLINE_USERS: self._on_online_users,
            ch.EVENT_USER_TYPING: self._on_user_typing,
            ch.EVENT_REACTION_UPDATE: self._on_reaction_update,
            ch.EVENT_SEEN_UPDATE: self._on_seen_update,
            ch.EVENT_FRIEND_REQUEST: self._on_friends_changed,
            ch.EVENT_FRIEND_ACCEPTED: self._on_friends_changed,
            ch.EVENT_CONNECT: self._on_connect,
        }
        for event, handler in handlers.items():
            self._unsubscribers.append(self.channel.on(event, handler))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _cancel_tasks(self) -> None:
        tasks = [task for task in self._tasks if task is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # -- inbound events ------------------------------------------------------

    def _on_chat_message(self, body: Any) -> None:
        if isinstance(body, dict):
            self.append_incoming(Message.from_wire(body))

    def _on_online_users(self, body: Any) -> None:
        users = body.get("users") if isinstance(body, dict) else body
        if isinstance(users, list):
            self.apply_presence_snapshot(user for user in users if isinstance(user, str))

    def _on_user_typing(self, body: Any) -> None:
        if not isinstance(body, dict) or not isinstance(body.get("roomId"), str):
            return
        self.set_typing(body["roomId"], bool(body.get("isTyping")), sender=body.get("sender"))

    def _on_reaction_update(self, body: Any) -> None:
        if not isinstance(body, dict) or not isinstance(body.get("messageId"), str):
            return
        self.apply_reaction_update(body["messageId"], parse_reactions(body.get("reactions")))

    def _on_seen_update(self, body: Any) -> None:
        if isinstance(body, dict) and isinstance(body.get("roomId"), str):
            self.mark_room_seen(body["roomId"])

    def _on_friends_changed(self, _body: Any) -> None:
        self._spawn(self.refresh_friends())

    def _on_connect(self, _body: Any) -> None:
        room = self.current_room
        if room:
            self.channel.join_room(room)

    # -- messages ------------------------------------------------------------

    async def load_history(self, room: str) -> None:
        """Fetch and install the history of ``room`` unless it is known or in flight."""

        if self.store.has_log(room) or self.store.is_loading(room):
            return
        self.store.set_loading(room, True)
        try:
            history = await self.channel.fetch_message_history(room)
        except RECOVERABLE_ERRORS as exc:
            logger.warning("Failed to fetch history for {}: {}", room, exc)
        else:
            self.store.set_messages(room, history)
        finally:
            self.store.set_loading(room, False)

    def append_incoming(self, message: Message) -> None:
        me = self.username
        with self.store.batch():
            self.store.add_message(message)
            if message.sender == me:
                return
            if message.room_id == self.current_room:
                if me:
                    self.channel.send_read_signal(message.room_id, me)
            else:
                self.store.increment_unread(message.room_id)

    def apply_reaction_update(self, message_id: str, reactions: Sequence[Reaction]) -> bool:
        updated = self.store.update_message_reactions(message_id, reactions)
        if not updated:
            logger.debug("Dropping reaction update for unknown message {}", message_id)
        return updated

    def mark_room_seen(self, room: str) -> None:
        self.store.mark_messages_seen(room)

    def send_chat_message(self, body: str) -> bool:
        room = self.current_room
        me = self.username
        if not room or not me:
            return False
        if not body.strip():
            self._typing.finish()
            return False
        sent = self.channel.send_message(room, body, peer_of(room, me))
        self._typing.finish()
        return sent

    def react(self, message: Message, emoji: str) -> bool:
        me = self.username
        if not message.id or not me:
            return False
        return self.channel.send_reaction(message.id, message.room_id, emoji, me)

    # -- presence and typing -------------------------------------------------

    def apply_presence_snapshot(self, users: Iterable[str]) -> None:
        me = self.username
        self.store.set_online_users(user for user in users if user != me)

    def set_typing(self, room: str, is_typing: bool, *, sender: Optional[str] = None) -> None:
        if sender is not None and sender == self.username:
            return
        self.store.set_typing(room, is_typing)

    def send_typing_status(self, is_typing: bool) -> bool:
        room = self.current_room
        me = self.username
        if not room or not me:
            return False
        return self.channel.send_typing(room, is_typing, me, peer_of(room, me))

    def compose_keystroke(self) -> None:
        if self.current_room and self.username:
            self._typing.keystroke()

    # -- rooms and read receipts ---------------------------------------------

    def open_room(self, target_user: str) -> Optional[asyncio.Task]:
        """Focus the conversation with ``target_user``.

        Sets the active room, joins it, sends a read receipt and clears the
        unread counter as one step. Returns the history load task when the
        room has no log yet.
        """

        me = self.username
        if not me:
            logger.warning("Cannot open a room without a logged-in user")
            return None
        room = room_id(me, target_user)
        if self.current_room and self.current_room != room:
            self._typing.finish()
        with self.store.batch():
            self.store.set_current_room(room)
            self.channel.join_room(room)
            self.mark_as_read(room)
        if not self.store.has_log(room):
            return self._spawn(self.load_history(room))
        return None

    def close_room(self) -> None:
        self._typing.finish()
        self.store.set_current_room(None)

    def mark_as_read(self, room: str) -> None:
        me = self.username
        if not me:
            return
        self.channel.send_read_signal(room, me)
        self.store.clear_unread(room)

    # -- friends -------------------------------------------------------------

    async def refresh_friends(self) -> bool:
        try:
            snapshot = await self.channel.fetch_friends()
        except RECOVERABLE_ERRORS as exc:
            logger.warning("Failed to refresh friends: {}", exc)
            return False
        self.store.set_friends(snapshot)
        return True

    async def _friend_action(
        self, label: str, request: Callable[[str], Awaitable[ActionResult]], target: str
    ) -> ActionResult:
        try:
            result = await request(target)
        except RECOVERABLE_ERRORS as exc:
            result = ActionResult.failed(str(exc))
        if not result.success:
            logger.warning("{} for {} failed: {}", label, target, result.error)
        return result

    async def send_friend_request(self, username: str) -> ActionResult:
        return await self._friend_action("Friend request", self.channel.send_friend_request, username)

    async def accept_request(self, request_id: str) -> ActionResult:
        result = await self._friend_action("Accepting request", self.channel.accept_friend_request, request_id)
        if result.success:
            await self.refresh_friends()
        return result

    async def decline_request(self, request_id: str) -> ActionResult:
        result = await self._friend_action("Declining request", self.channel.decline_friend_request, request_id)
        if result.success:
            self.store.remove_pending_request(request_id)
        return result


def create_chat_sync(config: ClientConfig | None = None) -> ChatSync:
    """Build a core wired to the persisted session and a fresh channel."""

    config = config or load_client_config_from_env()
    identity = IdentityContext.from_slot(SessionSlot(config.session_path))
    return ChatSync(identity, RemoteChannel(identity, config))

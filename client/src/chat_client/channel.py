"""WebSocket event channel plus REST requests behind one adapter."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

import aiohttp
from aiohttp import WSMsgType
from loguru import logger

from chat_client import api_client
from chat_client.config import ClientConfig
from chat_client.errors import ChannelClosedError
from chat_client.models import ActionResult, FriendsSnapshot, Message
from chat_client.session import IdentityContext

# Inbound events.
EVENT_CHAT_MESSAGE = "chat message"
EVENT_ONLINE_USERS = "online users"
EVENT_USER_TYPING = "user_typing"
EVENT_REACTION_UPDATE = "message_reaction_update"
EVENT_SEEN_UPDATE = "messages_seen_update"
EVENT_FRIEND_REQUEST = "friend_request"
EVENT_FRIEND_ACCEPTED = "friend_accepted"

# Outbound events.
EMIT_CHAT_MESSAGE = "chat message"
EMIT_JOIN_ROOM = "join room"
EMIT_TYPING = "typing"
EMIT_MESSAGES_READ = "messages_read"
EMIT_REACTION = "message_reaction"

# Local lifecycle events, never sent by the server.
EVENT_CONNECT = "connect"
EVENT_DISCONNECT = "disconnect"

Handler = Callable[[Any], None]


def make_frame(event: str, body: Any) -> Dict[str, Any]:
    return {"v": 1, "t": event, "body": body}


class RemoteChannel:
    """Owns the live connection handle and the HTTP session."""

    def __init__(
        self,
        identity: IdentityContext,
        config: ClientConfig | None = None,
        *,
        http: aiohttp.ClientSession | None = None,
    ) -> None:
        self.identity = identity
        self.config = config or ClientConfig()
        self._http = http
        self._owns_http = http is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbound: asyncio.Queue[Optional[Dict[str, Any]]] | None = None
        self._reader_task: asyncio.Task | None = None
        self._writer_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._handlers: Dict[str, List[Handler]] = {}

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def ws_url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}{self.config.ws_path}"

    def _ensure_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_s or None)
            self._http = aiohttp.ClientSession(timeout=timeout)
            self._owns_http = True
        return self._http

    # -- subscriptions -------------------------------------------------

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event)
            if not handlers:
                return
            try:
                handlers.remove(handler)
            except ValueError:
                return
            if not handlers:
                self._handlers.pop(event, None)

        return unsubscribe

    def _dispatch(self, event: str, body: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(body)
            except Exception:
                logger.opt(exception=True).error("Handler for '{}' failed", event)

    # -- connection lifecycle ------------------------------------------

    async def connect(self) -> bool:
        """Open the channel with the current credential.

        An already open socket is torn down first so two authenticated
        sessions never overlap. Returns ``False`` when no credential is
        present or the server cannot be reached.
        """

        credential = self.identity.credential
        if not credential:
            logger.warning("No credential present, channel connection refused")
            return False

        self._cancel_reconnect()
        if self._ws is not None:
            await self.disconnect()

        http = self._ensure_http()
        try:
            ws = await http.ws_connect(self.ws_url, headers=api_client.auth_headers(credential))
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("Channel connection to {} failed: {}", self.ws_url, exc)
            self._schedule_reconnect()
            return False

        outbound: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue()
        self._ws = ws
        self._outbound = outbound
        self._writer_task = asyncio.create_task(self._writer(ws, outbound))
        self._reader_task = asyncio.create_task(self._reader(ws))
        logger.debug("Channel connected to {}", self.ws_url)
        self._dispatch(EVENT_CONNECT, None)
        return True

    async def disconnect(self) -> None:
        self._cancel_reconnect()
        ws, self._ws = self._ws, None
        outbound, self._outbound = self._outbound, None
        writer_task, self._writer_task = self._writer_task, None
        reader_task, self._reader_task = self._reader_task, None
        if ws is None:
            return

        if outbound is not None:
            outbound.put_nowait(None)
        if writer_task is not None:
            await asyncio.gather(writer_task, return_exceptions=True)
        await ws.close()
        if reader_task is not None and reader_task is not asyncio.current_task():
            reader_task.cancel()
            await asyncio.gather(reader_task, return_exceptions=True)
        logger.debug("Channel disconnected")
        self._dispatch(EVENT_DISCONNECT, None)

    async def close(self) -> None:
        await self.disconnect()
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self._http = None

    async def _writer(self, ws: aiohttp.ClientWebSocketResponse, outbound: asyncio.Queue) -> None:
        try:
            while True:
                frame = await outbound.get()
                if frame is None:
                    break
                await ws.send_json(frame)
        except asyncio.CancelledError:
            return
        except (aiohttp.ClientError, ConnectionError) as exc:
            logger.warning("Channel send failed: {}", exc)

    async def _reader(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    try:
                        frame = msg.json()
                    except ValueError:
                        logger.debug("Ignoring malformed channel frame")
                        continue
                    if not isinstance(frame, dict) or not isinstance(frame.get("t"), str):
                        continue
                    self._dispatch(frame["t"], frame.get("body"))
                elif msg.type in {WSMsgType.CLOSE, WSMsgType.CLOSED, WSMsgType.ERROR}:
                    break
        except asyncio.CancelledError:
            return
        if ws is self._ws:
            await self._handle_drop(ws)

    async def _handle_drop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        logger.warning("Channel closed by remote end (code={})", ws.close_code)
        self._ws = None
        outbound, self._outbound = self._outbound, None
        writer_task, self._writer_task = self._writer_task, None
        self._reader_task = None
        if outbound is not None:
            outbound.put_nowait(None)
        if writer_task is not None:
            writer_task.cancel()
            await asyncio.gather(writer_task, return_exceptions=True)
        self._dispatch(EVENT_DISCONNECT, None)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if not self.config.reconnect_enabled or not self.identity.credential:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_after(self.config.reconnect_delay_s))

    async def _reconnect_after(self, delay_s: float) -> None:
        try:
            await asyncio.sleep(delay_s)
        except asyncio.CancelledError:
            return
        self._reconnect_task = None
        logger.debug("Reconnecting channel")
        await self.connect()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # -- emitters --------------------------------------------------------

    def send_frame(self, event: str, body: Any) -> None:
        if self._outbound is None or not self.connected:
            raise ChannelClosedError(f"channel is not connected, cannot emit '{event}'")
        self._outbound.put_nowait(make_frame(event, body))

    def emit(self, event: str, body: Any) -> bool:
        try:
            self.send_frame(event, body)
        except ChannelClosedError:
            logger.debug("Dropping '{}' while offline", event)
            return False
        return True

    def send_message(self, room_id: str, body: str, to: str | None = None) -> bool:
        return self.emit(EMIT_CHAT_MESSAGE, {"roomId": room_id, "msg": body, "to": to})

    def join_room(self, room_id: str) -> bool:
        return self.emit(EMIT_JOIN_ROOM, {"roomId": room_id})

    def send_typing(self, room_id: str, is_typing: bool, sender: str, to: str | None = None) -> bool:
        return self.emit(EMIT_TYPING, {"roomId": room_id, "isTyping": is_typing, "sender": sender, "to": to})

    def send_read_signal(self, room_id: str, reader: str) -> bool:
        return self.emit(EMIT_MESSAGES_READ, {"roomId": room_id, "reader": reader})

    def send_reaction(self, message_id: str, room_id: str, emoji: str, user: str) -> bool:
        return self.emit(EMIT_REACTION, {"messageId": message_id, "roomId": room_id, "emoji": emoji, "user": user})

    # -- requests --------------------------------------------------------

    async def login(self, username: str, password: str) -> Dict[str, str]:
        return await api_client.login(self._ensure_http(), self.config.api_url, username, password)

    async def register(self, username: str, password: str) -> ActionResult:
        return await api_client.register(self._ensure_http(), self.config.api_url, username, password)

    async def fetch_message_history(self, room_id: str) -> List[Message]:
        return await api_client.fetch_message_history(
            self._ensure_http(), self.config.api_url, self.identity.credential, room_id
        )

    async def fetch_friends(self) -> FriendsSnapshot:
        return await api_client.fetch_friends(self._ensure_http(), self.config.api_url, self.identity.credential)

    async def send_friend_request(self, to_username: str) -> ActionResult:
        return await api_client.send_friend_request(
            self._ensure_http(), self.config.api_url, self.identity.credential, to_username
        )

    async def accept_friend_request(self, from_user_id: str) -> ActionResult:
        return await api_client.accept_friend_request(
            self._ensure_http(), self.config.api_url, self.identity.credential, from_user_id
        )

    async def decline_friend_request(self, from_user_id: str) -> ActionResult:
        return await api_client.decline_friend_request(
            self._ensure_http(), self.config.api_url, self.identity.credential, from_user_id
        )

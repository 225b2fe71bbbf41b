import asyncio
from typing import Any, Callable, Dict, List, Optional

from aiohttp import WSMsgType, web


class FakeChatServer:
    """In-process chat server speaking the client's channel and REST formats."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None) -> None:
        self.tokens: Dict[str, str] = dict(tokens or {"tok-alice": "alice"})
        self.history: Dict[str, List[Dict[str, Any]]] = {}
        self.friends: List[Dict[str, str]] = []
        self.pending: List[Dict[str, str]] = []
        self.received: List[Dict[str, Any]] = []
        self.requests: List[tuple[str, str, Optional[str]]] = []
        self.sockets: List[web.WebSocketResponse] = []
        self.history_status = 200
        self.history_gate: Optional[asyncio.Event] = None
        self.canned: Dict[str, tuple[int, str]] = {}

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[self._canned_responses])
        app.router.add_get("/ws", self.handle_ws)
        app.router.add_get("/api/messages/{room_id}", self.handle_history)
        app.router.add_get("/api/friends", self.handle_friends)
        app.router.add_post("/api/friends/request", self.handle_friend_request)
        app.router.add_post("/api/friends/accept", self.handle_friend_accept)
        app.router.add_post("/api/friends/decline", self.handle_friend_decline)
        app.router.add_post("/api/auth/login", self.handle_login)
        app.router.add_post("/api/auth/register", self.handle_register)
        return app

    @web.middleware
    async def _canned_responses(self, request: web.Request, handler) -> web.StreamResponse:
        canned = self.canned.get(request.path)
        if canned is None:
            return await handler(request)
        status, text = canned
        return web.Response(status=status, text=text, content_type="application/json")

    @property
    def open_sockets(self) -> List[web.WebSocketResponse]:
        return [ws for ws in self.sockets if not ws.closed]

    def _user_for(self, request: web.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        self.requests.append((request.method, request.path, header or None))
        if not header.startswith("Bearer "):
            return None
        return self.tokens.get(header[len("Bearer ") :].strip())

    @staticmethod
    def _unauthorized() -> web.Response:
        return web.json_response({"error": "unauthorized"}, status=401)

    async def handle_ws(self, request: web.Request) -> web.StreamResponse:
        if self._user_for(request) is None:
            return self._unauthorized()
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            if msg.type == WSMsgType.TEXT:
                self.received.append(msg.json())
            elif msg.type == WSMsgType.ERROR:
                break
        return ws

    async def push(self, event: str, body: Any) -> None:
        for ws in self.open_sockets:
            await ws.send_json({"v": 1, "t": event, "body": body})

    async def drop_connections(self) -> None:
        for ws in self.open_sockets:
            await ws.close()

    def frames(self, event: str) -> List[Dict[str, Any]]:
        return [frame["body"] for frame in self.received if frame.get("t") == event]

    async def handle_history(self, request: web.Request) -> web.Response:
        if self._user_for(request) is None:
            return self._unauthorized()
        if self.history_gate is not None:
            await self.history_gate.wait()
        if self.history_status != 200:
            return web.json_response({"success": False, "error": "history unavailable"}, status=self.history_status)
        room_id = request.match_info["room_id"]
        return web.json_response({"success": True, "messages": self.history.get(room_id, [])})

    async def handle_friends(self, request: web.Request) -> web.Response:
        if self._user_for(request) is None:
            return self._unauthorized()
        return web.json_response({"friends": self.friends, "pendingRequests": self.pending})

    async def handle_friend_request(self, request: web.Request) -> web.Response:
        if self._user_for(request) is None:
            return self._unauthorized()
        body = await request.json()
        if body.get("toUsername") == "ghost":
            return web.json_response({"success": False, "error": "user not found"}, status=404)
        return web.json_response({"success": True})

    async def handle_friend_accept(self, request: web.Request) -> web.Response:
        if self._user_for(request) is None:
            return self._unauthorized()
        body = await request.json()
        entry = self._pop_pending(body.get("fromUserId"))
        if entry is None:
            return web.json_response({"success": False, "error": "request not found"}, status=404)
        self.friends.append(entry)
        return web.json_response({"success": True})

    async def handle_friend_decline(self, request: web.Request) -> web.Response:
        if self._user_for(request) is None:
            return self._unauthorized()
        body = await request.json()
        if self._pop_pending(body.get("fromUserId")) is None:
            return web.json_response({"success": False, "error": "request not found"})
        return web.json_response({"success": True})

    def _pop_pending(self, request_id: Any) -> Optional[Dict[str, str]]:
        for index, entry in enumerate(self.pending):
            if entry["_id"] == request_id:
                return self.pending.pop(index)
        return None

    async def handle_login(self, request: web.Request) -> web.Response:
        body = await request.json()
        if body.get("password") != "secret":
            return web.json_response({"error": "invalid credentials"}, status=401)
        token = f"tok-{body['username']}"
        self.tokens[token] = body["username"]
        return web.json_response({"username": body["username"], "token": token})

    async def handle_register(self, request: web.Request) -> web.Response:
        body = await request.json()
        if not body.get("username"):
            return web.json_response({"error": "username required"}, status=400)
        return web.json_response({"message": "registered"})


async def eventually(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)

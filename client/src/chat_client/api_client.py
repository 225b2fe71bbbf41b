"""aiohttp request functions for the chat REST API."""

from __future__ import annotations

import json
import urllib.parse
from typing import Any, Dict, List, Optional

import aiohttp

from chat_client.errors import ChatApiError, NotAuthenticatedError
from chat_client.models import ActionResult, FriendsSnapshot, Message


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def auth_headers(credential: Optional[str]) -> Dict[str, str]:
    if not credential:
        raise NotAuthenticatedError()
    return {"Authorization": f"Bearer {credential}"}


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "message"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


async def _read_json(response: aiohttp.ClientResponse) -> Any:
    raw = await response.text()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        if response.status >= 400:
            return {"error": raw}
        raise ChatApiError(response.status, "response is not valid json")


async def _request_json(
    http: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    payload: Optional[Dict[str, object]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    async with http.request(method, url, json=payload, headers=headers) as response:
        data = await _read_json(response)
        if response.status >= 400:
            raise ChatApiError(response.status, _error_message(data, response.reason or "request failed"))
    return data


async def _get_json(http: aiohttp.ClientSession, url: str, headers: Dict[str, str]) -> Any:
    return await _request_json(http, "GET", url, headers=headers)


async def _post_json(
    http: aiohttp.ClientSession,
    url: str,
    payload: Dict[str, object],
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    return await _request_json(http, "POST", url, payload=payload, headers=headers)


async def login(http: aiohttp.ClientSession, base_url: str, username: str, password: str) -> Dict[str, str]:
    response = await _post_json(
        http,
        _build_url(base_url, "/api/auth/login"),
        {"username": username, "password": password},
    )
    if not isinstance(response, dict) or not response.get("token"):
        raise ChatApiError(200, _error_message(response, "login response missing token"))
    return {"username": str(response.get("username") or username), "token": str(response["token"])}


async def register(http: aiohttp.ClientSession, base_url: str, username: str, password: str) -> ActionResult:
    response = await _post_json(
        http,
        _build_url(base_url, "/api/auth/register"),
        {"username": username, "password": password},
    )
    return ActionResult.from_wire(response)


async def fetch_message_history(
    http: aiohttp.ClientSession,
    base_url: str,
    credential: Optional[str],
    room_id: str,
) -> List[Message]:
    path = f"/api/messages/{urllib.parse.quote(room_id, safe='')}"
    response = await _get_json(http, _build_url(base_url, path), auth_headers(credential))
    if not isinstance(response, dict) or not response.get("success"):
        raise ChatApiError(200, _error_message(response, "history request was not successful"))
    messages = response.get("messages")
    if not isinstance(messages, list):
        return []
    return [Message.from_wire(entry) for entry in messages if isinstance(entry, dict)]


async def fetch_friends(http: aiohttp.ClientSession, base_url: str, credential: Optional[str]) -> FriendsSnapshot:
    response = await _get_json(http, _build_url(base_url, "/api/friends"), auth_headers(credential))
    if not isinstance(response, dict) or not response or not response.get("success", True):
        raise ChatApiError(200, _error_message(response, "friends request was not successful"))
    return FriendsSnapshot.from_wire(response)


async def send_friend_request(
    http: aiohttp.ClientSession,
    base_url: str,
    credential: Optional[str],
    to_username: str,
) -> ActionResult:
    response = await _post_json(
        http,
        _build_url(base_url, "/api/friends/request"),
        {"toUsername": to_username},
        headers=auth_headers(credential),
    )
    return ActionResult.from_wire(response)


async def accept_friend_request(
    http: aiohttp.ClientSession,
    base_url: str,
    credential: Optional[str],
    from_user_id: str,
) -> ActionResult:
    response = await _post_json(
        http,
        _build_url(base_url, "/api/friends/accept"),
        {"fromUserId": from_user_id},
        headers=auth_headers(credential),
    )
    return ActionResult.from_wire(response)


async def decline_friend_request(
    http: aiohttp.ClientSession,
    base_url: str,
    credential: Optional[str],
    from_user_id: str,
) -> ActionResult:
    response = await _post_json(
        http,
        _build_url(base_url, "/api/friends/decline"),
        {"fromUserId": from_user_id},
        headers=auth_headers(credential),
    )
    return ActionResult.from_wire(response)

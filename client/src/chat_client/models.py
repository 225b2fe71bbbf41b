from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple


def _parse_timestamp(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    if isinstance(raw, str) and raw:
        text = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
        try:
            return int(datetime.fromisoformat(text).timestamp() * 1000)
        except ValueError:
            return None
    return None


def _first_str(payload: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
    return ""


@dataclass(frozen=True)
class Reaction:
    user: str
    emoji: str

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "Reaction":
        return cls(user=_first_str(payload, "user"), emoji=_first_str(payload, "emoji"))


def parse_reactions(raw: Any) -> Tuple[Reaction, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(Reaction.from_wire(entry) for entry in raw if isinstance(entry, dict))


@dataclass(frozen=True)
class Message:
    """One chat message; ``id`` is its only identity."""

    id: str
    room_id: str
    sender: str
    body: str
    timestamp: Optional[int] = None
    seen: bool = False
    reactions: Tuple[Reaction, ...] = field(default_factory=tuple)

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "Message":
        return cls(
            id=_first_str(payload, "_id", "id"),
            room_id=_first_str(payload, "roomId"),
            sender=_first_str(payload, "sender"),
            body=_first_str(payload, "msg", "body", "content"),
            timestamp=_parse_timestamp(payload.get("timestamp")),
            seen=bool(payload.get("seen", False)),
            reactions=parse_reactions(payload.get("reactions")),
        )

    def with_reactions(self, reactions: Sequence[Reaction]) -> "Message":
        return replace(self, reactions=tuple(reactions))

    def mark_seen(self) -> "Message":
        if self.seen:
            return self
        return replace(self, seen=True)


@dataclass(frozen=True)
class Friend:
    id: str
    username: str

    @classmethod
    def from_wire(cls, payload: Dict[str, Any]) -> "Friend":
        return cls(id=_first_str(payload, "_id", "id"), username=_first_str(payload, "username"))


@dataclass(frozen=True)
class FriendsSnapshot:
    friends: List[Friend] = field(default_factory=list)
    pending_requests: List[Friend] = field(default_factory=list)

    @classmethod
    def from_wire(cls, payload: Any) -> "FriendsSnapshot":
        if not isinstance(payload, dict):
            return cls()

        def _entries(raw: Any) -> List[Friend]:
            if not isinstance(raw, list):
                return []
            return [Friend.from_wire(entry) for entry in raw if isinstance(entry, dict)]

        return cls(
            friends=_entries(payload.get("friends")),
            pending_requests=_entries(payload.get("pendingRequests")),
        )


@dataclass(frozen=True)
class ActionResult:
    success: bool
    error: Optional[str] = None

    @classmethod
    def from_wire(cls, payload: Any) -> "ActionResult":
        if not isinstance(payload, dict):
            return cls(success=False, error="malformed response")
        if not payload:
            return cls(success=False, error="empty response")
        error = payload.get("error")
        success = payload.get("success")
        if success is None:
            success = not error
        if success:
            return cls(success=True)
        error = error or payload.get("message")
        return cls(success=False, error=str(error) if error else "request rejected")

    @classmethod
    def failed(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)

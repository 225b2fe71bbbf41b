"""Persist the logged-in user and credential for the chat client."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from chat_client.config import DEFAULT_SESSION_PATH

USER_KEY = "chat-user"
TOKEN_KEY = "chat-token"


@dataclass(frozen=True)
class Session:
    username: str
    credential: str


def _atomic_write_json(path: Path, payload: Dict[str, str]) -> None:
    path = path.expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    content = json.dumps(payload, indent=2, sort_keys=True)

    fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


class SessionSlot:
    """Key-value slot holding ``chat-user`` and ``chat-token`` on disk."""

    def __init__(self, path: Path | str = DEFAULT_SESSION_PATH) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> Optional[Session]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, ValueError):
            return None

        if not isinstance(data, dict):
            return None
        username = data.get(USER_KEY)
        credential = data.get(TOKEN_KEY)
        if not isinstance(username, str) or not isinstance(credential, str):
            return None
        if not username or not credential:
            return None
        return Session(username=username, credential=credential)

    def save(self, session: Session) -> None:
        _atomic_write_json(self.path, {USER_KEY: session.username, TOKEN_KEY: session.credential})

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return


class IdentityContext:
    """Current user name and credential, shared by the channel and the core."""

    def __init__(self, session: Session | None = None, slot: SessionSlot | None = None) -> None:
        self._session = session
        self._slot = slot

    @classmethod
    def from_slot(cls, slot: SessionSlot) -> "IdentityContext":
        return cls(slot.load(), slot)

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def username(self) -> str | None:
        return self._session.username if self._session else None

    @property
    def credential(self) -> str | None:
        return self._session.credential if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def set_auth(self, username: str | None, credential: str | None) -> None:
        """Store both values, or clear the session when either is missing."""

        if username and credential:
            self._session = Session(username=username, credential=credential)
            if self._slot is not None:
                self._slot.save(self._session)
            return
        self.clear()

    def clear(self) -> None:
        self._session = None
        if self._slot is not None:
            self._slot.clear()

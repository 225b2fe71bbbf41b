from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SESSION_PATH = Path.home() / ".chat_client" / "session.json"


@dataclass(frozen=True)
class ClientConfig:
    api_url: str = "http://localhost:3000"
    ws_path: str = "/ws"
    typing_idle_s: float = 1.5
    request_timeout_s: float = 10.0
    reconnect_delay_s: float = 2.0
    session_path: Path = DEFAULT_SESSION_PATH

    @property
    def reconnect_enabled(self) -> bool:
        return self.reconnect_delay_s > 0


def _parse_non_negative_float(name: str, default: float, *, scale: float = 1.0) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if parsed < 0:
        raise ValueError(f"{name} must be non-negative")
    return parsed * scale


def _parse_str(name: str, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw


def load_client_config_from_env() -> ClientConfig:
    api_url = _parse_str("CHAT_API_URL", ClientConfig.api_url)
    ws_path = _parse_str("CHAT_WS_PATH", ClientConfig.ws_path)
    if not ws_path.startswith("/"):
        ws_path = "/" + ws_path
    typing_idle_s = _parse_non_negative_float("CHAT_TYPING_IDLE_MS", ClientConfig.typing_idle_s, scale=0.001)
    request_timeout_s = _parse_non_negative_float("CHAT_REQUEST_TIMEOUT_S", ClientConfig.request_timeout_s)
    reconnect_delay_s = _parse_non_negative_float(
        "CHAT_RECONNECT_DELAY_MS", ClientConfig.reconnect_delay_s, scale=0.001
    )
    session_path = Path(_parse_str("CHAT_SESSION_PATH", str(DEFAULT_SESSION_PATH))).expanduser()
    return ClientConfig(
        api_url=api_url.rstrip("/"),
        ws_path=ws_path,
        typing_idle_s=typing_idle_s,
        request_timeout_s=request_timeout_s,
        reconnect_delay_s=reconnect_delay_s,
        session_path=session_path,
    )

from __future__ import annotations

import asyncio
from typing import Callable, Optional


class TypingNotifier:
    """Debounced outbound typing signal for the compose box.

    Each keystroke emits ``True`` and restarts an idle timer; when the timer
    fires, or a message is sent, ``False`` is emitted once for the episode.
    """

    def __init__(
        self,
        emit: Callable[[bool], None],
        idle_s: float = 1.5,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._emit = emit
        self.idle_s = idle_s
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def keystroke(self) -> None:
        self._active = True
        self._emit(True)
        self._cancel_timer()
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self.idle_s, self._stop)

    def finish(self) -> None:
        self._cancel_timer()
        self._stop()

    def cancel(self) -> None:
        self._cancel_timer()
        self._active = False

    def _stop(self) -> None:
        self._handle = None
        if not self._active:
            return
        self._active = False
        self._emit(False)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

from __future__ import annotations


class ChatClientError(Exception):
    pass


class NotAuthenticatedError(ChatClientError):
    def __init__(self, message: str = "no credential present") -> None:
        super().__init__(message)


class ChatApiError(ChatClientError):
    def __init__(self, status: int, message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"request failed with status {status}: {message}")


class ChannelClosedError(ChatClientError):
    pass

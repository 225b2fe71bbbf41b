"""Chat synchronization client: room state, presence, typing and friends."""

from .channel import RemoteChannel
from .config import ClientConfig, load_client_config_from_env
from .errors import ChannelClosedError, ChatApiError, ChatClientError, NotAuthenticatedError
from .models import ActionResult, Friend, FriendsSnapshot, Message, Reaction
from .rooms import peer_of, room_id
from .session import IdentityContext, Session, SessionSlot
from .store import ChatState, ChatStore
from .sync import ChatSync, create_chat_sync
from .typing_notifier import TypingNotifier

__all__ = [
    "RemoteChannel",
    "ClientConfig",
    "load_client_config_from_env",
    "ChannelClosedError",
    "ChatApiError",
    "ChatClientError",
    "NotAuthenticatedError",
    "ActionResult",
    "Friend",
    "FriendsSnapshot",
    "Message",
    "Reaction",
    "peer_of",
    "room_id",
    "IdentityContext",
    "Session",
    "SessionSlot",
    "ChatState",
    "ChatStore",
    "ChatSync",
    "create_chat_sync",
    "TypingNotifier",
]

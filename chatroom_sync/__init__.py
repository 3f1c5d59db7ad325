"""Chat room client that merges broadcast and stored messages into one timeline."""

from importlib import metadata

__version__ = "0.1.0"
__license__ = "MIT"

try:
    __version__ = metadata.version("chatroom-sync")
except metadata.PackageNotFoundError:
    # Package is not installed
    pass

from .config import Settings, SupabaseConfig, ChatConfig, LogConfig
from .errors import ChatSyncError, DecodeFailure, LoadFailure, SendFailure
from .logger import setup_logging, get_logger
from .reconciler import MessageReconciler, Subscription
from .room import ChatRoom, list_topics
from .schema import BroadcastMessage, CurrentUser, Message, MessageState, Profile

__all__ = [
    "Settings",
    "SupabaseConfig",
    "ChatConfig",
    "LogConfig",
    "ChatSyncError",
    "DecodeFailure",
    "LoadFailure",
    "SendFailure",
    "setup_logging",
    "get_logger",
    "MessageReconciler",
    "Subscription",
    "ChatRoom",
    "list_topics",
    "BroadcastMessage",
    "CurrentUser",
    "Message",
    "MessageState",
    "Profile",
]

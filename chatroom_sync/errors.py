"""Errors raised by the chat room client."""

from typing import Optional


class ChatSyncError(Exception):
    """Base class for chat room errors."""


class LoadFailure(ChatSyncError):
    """The message history (or topic list) could not be fetched."""

    def __init__(self, topic_id: Optional[str], message: str) -> None:
        super().__init__(message)
        self.topic_id = topic_id


class DecodeFailure(ChatSyncError):
    """A broadcast or row payload did not have the expected shape."""

    def __init__(self, kind: str, payload: object, reason: str) -> None:
        super().__init__(f"Could not decode {kind} payload: {reason}")
        self.kind = kind
        self.payload = payload


class SendFailure(ChatSyncError):
    """The durable write of a message failed; ``text`` is what the user typed."""

    def __init__(self, text: str, message: str) -> None:
        super().__init__(message)
        self.text = text

"""Message models exchanged with the backend."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
)

from .errors import DecodeFailure

MATCH_WINDOW_SECONDS = 2.0


def _as_identifier(value: Any) -> Any:
    # Rows may carry integer keys or UUIDs; compare them as text
    if isinstance(value, (int, uuid.UUID)) and not isinstance(value, bool):
        return str(value)
    return value


Identifier = Annotated[str, BeforeValidator(_as_identifier)]


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


Timestamp = Annotated[datetime, AfterValidator(_aware)]


class MessageState(str, Enum):
    PROVISIONAL = "provisional"  # shown from a broadcast, not yet stored
    CONFIRMED = "confirmed"  # backed by a database row


class Profile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Identifier
    full_name: Optional[str] = None


class CurrentUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Identifier
    name: str


class MessageMeta(BaseModel):
    """Metadata attached by this client to every message it sends."""

    model_config = ConfigDict(populate_by_name=True)

    create_date: str = Field(alias="createDate")
    name_from_auth: str = Field(alias="nameFromAuth")
    client_id: str = Field(default_factory=lambda: str(uuid.uuid4()), alias="clientId")


class SendParams(BaseModel):
    """Arguments of the procedure that stores a message."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    thing_id: str
    meta: MessageMeta


class BroadcastMessage(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Optional[Identifier] = None
    body: str = Field(alias="message")
    author_id: Optional[Identifier] = Field(default=None, alias="user_id")
    timestamp: Timestamp = Field(alias="date")
    meta: Optional[Dict[str, Any]] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Message(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Identifier
    topic_id: Optional[Identifier] = Field(default=None, alias="thing_id")
    body: Optional[str] = Field(default=None, alias="message")
    author_id: Optional[Identifier] = Field(default=None, alias="user_id")
    timestamp: Timestamp = Field(alias="date")
    meta: Optional[Dict[str, Any]] = None
    profile: Optional[Profile] = None
    state: MessageState = MessageState.CONFIRMED

    @classmethod
    def provisional(
        cls, broadcast: BroadcastMessage, topic_id: Optional[str]
    ) -> "Message":
        """Build a placeholder entry for a broadcast the database has not confirmed yet."""
        return cls(
            id=str(uuid.uuid4()),
            topic_id=topic_id,
            body=broadcast.body,
            author_id=broadcast.author_id,
            timestamp=broadcast.timestamp,
            meta=broadcast.meta,
            state=MessageState.PROVISIONAL,
        )

    @property
    def is_provisional(self) -> bool:
        return self.state is MessageState.PROVISIONAL


def correlation_id(message: Union[Message, BroadcastMessage]) -> Optional[str]:
    if not message.meta:
        return None
    value = message.meta.get("clientId")
    return str(value) if value else None


def is_equivalent(
    a: Union[Message, BroadcastMessage],
    b: Union[Message, BroadcastMessage],
    window: float = MATCH_WINDOW_SECONDS,
) -> bool:
    """Whether two messages are the same logical message.

    When both sides carry a client correlation id the ids decide. Otherwise
    they match on body and author with timestamps less than ``window``
    seconds apart.
    """
    a_id, b_id = correlation_id(a), correlation_id(b)
    if a_id and b_id:
        return a_id == b_id
    return (
        a.body == b.body
        and a.author_id == b.author_id
        and abs((a.timestamp - b.timestamp).total_seconds()) < window
    )


def decode_message(raw: Any) -> Message:
    """Decode a database row into a confirmed message."""
    if not isinstance(raw, dict):
        raise DecodeFailure("row", raw, f"expected an object, got {type(raw).__name__}")
    try:
        return Message.model_validate(
            {k: v for k, v in raw.items() if k != "state"}
        )
    except ValidationError as e:
        raise DecodeFailure("row", raw, str(e)) from e


def decode_broadcast(raw: Any) -> BroadcastMessage:
    if not isinstance(raw, dict):
        raise DecodeFailure(
            "broadcast", raw, f"expected an object, got {type(raw).__name__}"
        )
    try:
        return BroadcastMessage.model_validate(raw)
    except ValidationError as e:
        raise DecodeFailure("broadcast", raw, str(e)) from e

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from .backend import ChatBackend, RealtimeChannel
from .config import ChatConfig
from .errors import DecodeFailure, LoadFailure, SendFailure
from .logger import get_logger
from .schema import (
    BroadcastMessage,
    CurrentUser,
    Message,
    MessageMeta,
    SendParams,
    decode_broadcast,
    decode_message,
    is_equivalent,
)

logger = get_logger(__name__)

Listener = Callable[[Sequence[Message]], None]


@dataclass(frozen=True)
class Subscription:
    topic_id: str
    channel: RealtimeChannel
    generation: int


class MessageReconciler:
    """Keeps the ordered message list of one chat topic.

    Messages reach the client twice: first as a broadcast (instant, no server
    id) and later as an inserted row (canonical). Both streams are merged here
    into one chronological list without duplicates, whatever order they
    arrive in.

    All methods must be called from the event loop that owns the instance.
    """

    def __init__(
        self, backend: ChatBackend, config: Optional[ChatConfig] = None
    ) -> None:
        self.backend = backend
        self.config: ChatConfig = config or ChatConfig()
        self.topic_id: Optional[str] = None
        self.subscription: Optional[Subscription] = None
        self.current_user: Optional[CurrentUser] = None
        self._messages: List[Message] = []
        self._listeners: List[Listener] = []
        # Bumped whenever a channel is released; stale callbacks compare against it
        self._generation = 0

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def add_listener(self, listener: Listener) -> None:
        """Call ``listener`` with the new list after every change."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        snapshot = self.messages
        for listener in self._listeners:
            listener(snapshot)

    async def load_current_user(self) -> Optional[CurrentUser]:
        try:
            self.current_user = await self.backend.current_user()
        except Exception as e:
            logger.warning(f"Error loading current user: {e}")
        return self.current_user

    async def load_initial(self, topic_id: str) -> List[Message]:
        """Fetch the stored history of ``topic_id``.

        Tries once with the author profile join and once without it. If both
        fail, raises LoadFailure and keeps the current list.
        """
        if not topic_id:
            raise ValueError("topic_id must not be empty")

        cfg = self.config
        generation = self._generation
        filters = {cfg.topic_column: topic_id}
        try:
            rows = await self.backend.select(
                cfg.messages_table,
                columns=f"*, {cfg.profile_join}",
                filters=filters,
                order_by=cfg.timestamp_column,
            )
        except Exception as e:
            logger.warning(
                f"Error loading messages with profile for {topic_id}, trying without: {e}"
            )
            try:
                rows = await self.backend.select(
                    cfg.messages_table,
                    filters=filters,
                    order_by=cfg.timestamp_column,
                )
            except Exception as e:
                logger.error(f"Error loading messages for {topic_id}: {e}")
                raise LoadFailure(topic_id, f"Failed to load messages: {e}") from e

        if generation != self._generation:
            logger.debug(f"Discarding history of {topic_id} loaded after close")
            return []

        loaded: List[Message] = []
        for row in rows:
            try:
                loaded.append(decode_message(row))
            except DecodeFailure as e:
                logger.warning(f"Skipping stored message: {e}")
        loaded.sort(key=lambda m: m.timestamp)

        # Broadcasts still waiting for their row, and rows delivered on the
        # channel while the query ran, survive a reload
        loaded_ids = {m.id for m in loaded}
        carried = [
            m
            for m in self._messages
            if m.topic_id == topic_id
            and m.id not in loaded_ids
            and not any(self._matches(m, other) for other in loaded)
        ]
        self.topic_id = topic_id
        self._messages = loaded
        for message in carried:
            self._insert(message)
        logger.info(f"Loaded {len(loaded)} messages for {topic_id}")
        self._notify()
        return list(loaded)

    async def open_channel(self, topic_id: str) -> Subscription:
        """Subscribe to broadcasts and row inserts of ``topic_id``.

        Any previous subscription of this reconciler is released first.
        """
        if not topic_id:
            raise ValueError("topic_id must not be empty")
        await self._release_channel()

        cfg = self.config
        generation = self._generation
        channel = self.backend.open_channel(cfg.channel_name(topic_id))
        channel.on_broadcast(
            cfg.broadcast_event,
            lambda payload: self._dispatch(generation, self.on_broadcast_arrived, payload),
        )
        channel.on_row_insert(
            cfg.messages_table,
            cfg.topic_filter(topic_id),
            lambda row: self._dispatch(generation, self.on_persisted_arrived, row),
        )
        self.subscription = Subscription(topic_id, channel, generation)
        self.topic_id = topic_id
        await channel.subscribe()
        logger.info(f"Subscribed to {cfg.channel_name(topic_id)}")
        return self.subscription

    def _dispatch(
        self, generation: int, handler: Callable[[Any], None], payload: Any
    ) -> None:
        if generation != self._generation:
            logger.debug("Ignoring event from a released channel")
            return
        handler(payload)

    def _matches(
        self, a: Union[Message, BroadcastMessage], b: Union[Message, BroadcastMessage]
    ) -> bool:
        return is_equivalent(a, b, self.config.match_window_seconds)

    def _insert(self, message: Message) -> None:
        # New arrivals are near the end; walk back from the tail
        index = len(self._messages)
        while index > 0 and self._messages[index - 1].timestamp > message.timestamp:
            index -= 1
        self._messages.insert(index, message)

    def on_broadcast_arrived(self, raw: Any) -> None:
        try:
            broadcast = decode_broadcast(raw)
        except DecodeFailure as e:
            logger.warning(f"Dropping broadcast: {e}")
            return

        if any(self._matches(m, broadcast) for m in self._messages):
            logger.debug("Broadcast already shown, ignoring")
            return

        self._insert(Message.provisional(broadcast, self.topic_id))
        self._notify()

    def on_persisted_arrived(self, raw_row: Any) -> None:
        try:
            message = decode_message(raw_row)
        except DecodeFailure as e:
            logger.warning(f"Dropping inserted row: {e}")
            return

        if any(not m.is_provisional and m.id == message.id for m in self._messages):
            logger.debug(f"Message {message.id} already present, ignoring")
            return

        # At most one equivalent entry is replaced, a provisional one first
        matches = [
            index
            for index, existing in enumerate(self._messages)
            if self._matches(existing, message)
        ]
        if matches:
            index = next(
                (i for i in matches if self._messages[i].is_provisional), matches[0]
            )
            replaced = self._messages.pop(index)
            logger.debug(
                f"Message {message.id} replaced {replaced.state.value} entry {replaced.id}"
            )

        self._insert(message)
        self._notify()

    async def send(self, topic_id: str, body: str) -> None:
        """Broadcast ``body`` for instant display and store it.

        Raises SendFailure (carrying ``body``) when the message could not be
        stored. The optimistic entry stays in the list either way.
        """
        text = body.strip()
        if not text:
            raise ValueError("Cannot send a blank message")
        subscription = self.subscription
        if subscription is None:
            raise SendFailure(body, "Failed to send message: channel not initialized")

        now = datetime.now(timezone.utc)
        user = self.current_user
        meta = MessageMeta(
            create_date=now.isoformat(),
            name_from_auth=user.name if user else "Unknown",
        )
        broadcast = BroadcastMessage(
            body=text,
            author_id=user.id if user else None,
            timestamp=now,
            meta=meta.model_dump(by_alias=True),
        )
        payload = broadcast.to_payload()

        # The platform does not echo broadcasts back to their sender
        self.on_broadcast_arrived(payload)

        params = SendParams(message=text, thing_id=topic_id, meta=meta)
        try:
            await asyncio.gather(
                self._publish(subscription.channel, payload),
                self.backend.call(
                    self.config.send_procedure, params.model_dump(by_alias=True)
                ),
            )
        except Exception as e:
            logger.error(f"Error sending message to {topic_id}: {e}")
            raise SendFailure(body, f"Failed to send message: {e}") from e

    async def _publish(self, channel: RealtimeChannel, payload: Any) -> None:
        try:
            await channel.broadcast(self.config.broadcast_event, payload)
        except Exception as e:
            # Delivery of broadcasts is best effort; the stored row follows
            logger.warning(f"Error broadcasting message: {e}")

    async def _release_channel(self) -> None:
        subscription, self.subscription = self.subscription, None
        self._generation += 1
        if subscription is None:
            return
        try:
            await self.backend.close_channel(subscription.channel)
        except Exception as e:
            logger.warning(f"Error releasing channel for {subscription.topic_id}: {e}")
        else:
            logger.info(f"Unsubscribed from {subscription.topic_id}")

    async def close(self) -> None:
        """Release the realtime subscription. Safe to call more than once."""
        await self._release_channel()

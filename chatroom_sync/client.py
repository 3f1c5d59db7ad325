import asyncio
from typing import Dict, Optional, Sequence

from .config import Settings
from .logger import get_logger, setup_logging
from .room import ChatRoom, list_topics
from .schema import Message, is_equivalent
from .supabase_backend import SupabaseBackend

# Create logger for this module
logger = get_logger(__name__)


class ChatRoomClient:
    """Follows one chat topic from the command line and logs what it sees."""

    def __init__(self, settings: Settings, backend: SupabaseBackend) -> None:
        self.settings: Settings = settings
        self.backend: SupabaseBackend = backend
        self.room: Optional[ChatRoom] = None
        self.shown: Dict[str, Message] = {}  # id -> entry, as last logged
        self._stopped = asyncio.Event()

    def log_messages(self, messages: Sequence[Message]) -> None:
        """Listener: log new entries, and broadcasts confirmed by their row."""
        if self.room is None:
            return
        current = {message.id: message for message in messages}
        window = self.settings.chat.match_window_seconds
        vanished = [
            m for key, m in self.shown.items() if key not in current and m.is_provisional
        ]
        for message in messages:
            if message.id in self.shown:
                continue
            if message.is_provisional:
                marker = " (sending)"
            elif any(is_equivalent(old, message, window) for old in vanished):
                marker = " (delivered)"
            else:
                marker = ""
            logger.info(
                f"[{message.timestamp:%H:%M:%S}] {self.room.display_name(message)}: "
                f"{message.body or ''}{marker}"
            )
        self.shown = current

    async def run(self) -> None:
        """Main run loop"""
        supabase = self.settings.supabase
        if supabase.email:
            await self.backend.sign_in(supabase.email, supabase.password)

        topic_id = self.settings.topic_id
        if not topic_id:
            topics = await list_topics(self.backend, self.settings.chat)
            if not topics:
                logger.info("No messages yet")
            for topic in topics:
                logger.info(f"Topic {topic}")
            return

        self.room = ChatRoom(self.backend, topic_id, self.settings.chat)
        self.room.add_listener(self.log_messages)
        await self.room.enter()
        if self.room.last_error:
            logger.error(self.room.last_error)

        logger.info(f"Following chat {topic_id}...")
        await self._stopped.wait()

    def stop(self) -> None:
        self._stopped.set()

    async def close(self) -> None:
        if self.room is not None:
            await self.room.leave()


async def main() -> None:
    settings: Settings = Settings()

    # Set up logging before creating the client
    setup_logging(settings)
    logger.info("Starting chat room client")

    backend = await SupabaseBackend.create(settings.supabase)
    client: ChatRoomClient = ChatRoomClient(settings, backend)
    try:
        await client.run()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        await client.close()


def cli() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()

from typing import List, Optional, Tuple

from .backend import ChatBackend
from .config import ChatConfig
from .errors import LoadFailure, SendFailure
from .logger import get_logger
from .reconciler import Listener, MessageReconciler
from .schema import Message

logger = get_logger(__name__)


async def list_topics(backend: ChatBackend, config: Optional[ChatConfig] = None) -> List[str]:
    """Distinct topic ids that have at least one message, sorted as text."""
    cfg = config or ChatConfig()
    try:
        rows = await backend.select(cfg.messages_table, columns=cfg.topic_column)
    except Exception as e:
        logger.error(f"Error loading topics: {e}")
        raise LoadFailure(None, f"Failed to load topics: {e}") from e
    topics = {str(row[cfg.topic_column]) for row in rows if row.get(cfg.topic_column)}
    return sorted(topics)


class ChatRoom:
    """One open chat topic, as seen by a user interface.

    Holds the draft being typed and the last user-facing error, and drives a
    MessageReconciler in the order the screen needs it.
    """

    def __init__(
        self, backend: ChatBackend, topic_id: str, config: Optional[ChatConfig] = None
    ) -> None:
        if not topic_id:
            raise ValueError("topic_id must not be empty")
        self.topic_id = topic_id
        self.reconciler = MessageReconciler(backend, config)
        self.draft: str = ""
        self.last_error: Optional[str] = None
        self.is_loading: bool = False

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self.reconciler.messages

    def add_listener(self, listener: Listener) -> None:
        self.reconciler.add_listener(listener)

    async def enter(self) -> None:
        await self.reconciler.load_current_user()
        await self.refresh()
        await self.reconciler.open_channel(self.topic_id)

    async def refresh(self) -> bool:
        """Reload the history; on failure keep what is shown and set ``last_error``."""
        self.is_loading = True
        self.last_error = None
        try:
            await self.reconciler.load_initial(self.topic_id)
        except LoadFailure as e:
            self.last_error = str(e)
            return False
        finally:
            self.is_loading = False
        return True

    async def send_draft(self) -> bool:
        text = self.draft.strip()
        if not text:
            return False

        self.draft = ""
        try:
            await self.reconciler.send(self.topic_id, text)
        except SendFailure as e:
            self.last_error = str(e)
            self.draft = e.text
            return False
        return True

    async def leave(self) -> None:
        await self.reconciler.close()

    def is_own(self, message: Message) -> bool:
        user = self.reconciler.current_user
        return user is not None and message.author_id == user.id

    def display_name(self, message: Message) -> str:
        if self.is_own(message):
            return self.reconciler.current_user.name or "You"

        name = (message.meta or {}).get("nameFromAuth")
        if isinstance(name, str) and name:
            return name
        if message.profile is not None and message.profile.full_name:
            return message.profile.full_name
        return "Unknown User"

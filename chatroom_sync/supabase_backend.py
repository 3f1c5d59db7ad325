from typing import Any, Dict, List, Optional

from realtime import AsyncRealtimeChannel
from supabase import AsyncClient, acreate_client

from .backend import Payload, PayloadCallback
from .config import SupabaseConfig
from .errors import ChatSyncError
from .logger import get_logger
from .schema import CurrentUser

logger = get_logger(__name__)


class SupabaseChannel:
    """Realtime channel carrying both broadcasts and row inserts for one topic."""

    def __init__(self, channel: AsyncRealtimeChannel) -> None:
        self.channel = channel

    def on_broadcast(self, event: str, callback: PayloadCallback) -> None:
        def handler(message: Dict[str, Any]) -> None:
            # The SDK hands over the whole envelope: {"event", "type", "payload"}
            callback(message.get("payload", message))

        self.channel.on_broadcast(event, handler)

    def on_row_insert(
        self, table: str, row_filter: Optional[str], callback: PayloadCallback
    ) -> None:
        def handler(change: Dict[str, Any]) -> None:
            data = change.get("data", change)
            callback(data.get("record", data))

        self.channel.on_postgres_changes(
            "INSERT", handler, table=table, schema="public", filter=row_filter
        )

    async def subscribe(self) -> None:
        await self.channel.subscribe()

    async def broadcast(self, event: str, payload: Payload) -> None:
        await self.channel.send_broadcast(event, payload)


class SupabaseBackend:
    def __init__(self, client: AsyncClient) -> None:
        self.client: AsyncClient = client

    @classmethod
    async def create(cls, config: SupabaseConfig) -> "SupabaseBackend":
        client = await acreate_client(config.url, config.key)
        return cls(client)

    async def sign_in(self, email: str, password: str) -> None:
        logger.info(f"Signing in to Supabase as {email}...")
        response = await self.client.auth.sign_in_with_password(
            {"email": email, "password": password}
        )
        if response.user is None:
            logger.error(f"Failed to sign in as {email}")
            raise ChatSyncError(f"Failed to sign in as {email}")
        logger.info("Successfully signed in")

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> List[Payload]:
        query = self.client.table(table).select(columns)
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=not ascending)
        response = await query.execute()
        return list(response.data or [])

    def open_channel(self, name: str) -> SupabaseChannel:
        return SupabaseChannel(self.client.channel(name))

    async def close_channel(self, channel: SupabaseChannel) -> None:
        await self.client.remove_channel(channel.channel)

    async def call(self, procedure: str, params: Payload) -> Any:
        response = await self.client.rpc(procedure, params).execute()
        return response.data

    async def current_user(self) -> CurrentUser:
        """The signed-in user, named from metadata ``full_name`` or the email."""
        session = await self.client.auth.get_session()
        if session is None:
            raise ChatSyncError("No active session")
        user = session.user
        metadata = user.user_metadata or {}
        name = metadata.get("full_name")
        if not isinstance(name, str) or not name:
            name = user.email or "You"
        return CurrentUser(id=user.id, name=name)

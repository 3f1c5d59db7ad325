"""Capabilities the chat room needs from the hosted backend.

The reconciler only talks to these protocols, so tests (and other hosting
platforms) can supply their own implementation. ``SupabaseBackend`` is the
production one.
"""
from typing import Any, Callable, Dict, List, Optional, Protocol

from .schema import CurrentUser

Payload = Dict[str, Any]
PayloadCallback = Callable[[Payload], None]


class RealtimeChannel(Protocol):
    def on_broadcast(self, event: str, callback: PayloadCallback) -> None:
        """Register ``callback`` for broadcast events named ``event``."""

    def on_row_insert(
        self, table: str, row_filter: Optional[str], callback: PayloadCallback
    ) -> None:
        """Register ``callback`` for rows inserted into ``table``; it receives the new row."""

    async def subscribe(self) -> None: ...

    async def broadcast(self, event: str, payload: Payload) -> None: ...


class ChatBackend(Protocol):
    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> List[Payload]:
        """Rows of ``table`` matching every equality in ``filters``."""

    def open_channel(self, name: str) -> RealtimeChannel: ...

    async def close_channel(self, channel: RealtimeChannel) -> None: ...

    async def call(self, procedure: str, params: Payload) -> Any:
        """Invoke a remote procedure."""

    async def current_user(self) -> CurrentUser: ...

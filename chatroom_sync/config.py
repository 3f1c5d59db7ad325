import os

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class SupabaseConfig(BaseModel):
    url: str
    key: str
    email: str = ""  # Only needed by the command line client
    password: str = ""


class ChatConfig(BaseModel):
    """Names of the tables, columns and events the chat room talks to."""

    messages_table: str = "messages"
    topic_column: str = "thing_id"
    timestamp_column: str = "date"
    profile_join: str = "profile:user_id(id, raw_user_meta_data->full_name)"
    channel_prefix: str = "messages:"
    broadcast_event: str = "message"
    send_procedure: str = "add_chat_message"
    match_window_seconds: float = 2.0  # Broadcast/row pairs closer than this are one message

    def channel_name(self, topic_id: str) -> str:
        return f"{self.channel_prefix}{topic_id}"

    def topic_filter(self, topic_id: str) -> str:
        """Server-side filter for row-insert notifications on one topic."""
        return f"{self.topic_column}=eq.{topic_id}"


class LogConfig(BaseModel):
    file_path: str = "logs/chatroom_sync.log"  # Empty logs to the console only
    max_size_mb: int = 10
    backup_count: int = 5
    level: str = "INFO"
    library_level: str = "WARNING"


class Settings(BaseSettings):
    supabase: SupabaseConfig
    chat: ChatConfig = ChatConfig()
    topic_id: str = ""  # Empty means list the topics and exit
    logging: LogConfig = LogConfig()

    class Config:
        env_nested_delimiter = "__"
        env_file = ".env"
        extra = "ignore"  # .env also holds the flat SUPABASE_* / CHAT_* names

    def __init__(self, **kwargs):
        supabase_config = kwargs.pop("supabase", None) or SupabaseConfig(
            url=os.environ.get("SUPABASE_URL", ""),
            key=os.environ.get("SUPABASE_KEY", ""),
            email=os.environ.get("SUPABASE_EMAIL", ""),
            password=os.environ.get("SUPABASE_PASSWORD", ""),
        )

        # Only override chat defaults that are actually set
        chat_overrides = {}
        for field in ChatConfig.model_fields:
            env_name = f"CHAT_{field.upper()}"
            if env_name in os.environ:
                chat_overrides[field] = os.environ[env_name]
        if chat_overrides and "chat" not in kwargs:
            kwargs["chat"] = ChatConfig(**chat_overrides)

        super().__init__(supabase=supabase_config, **kwargs)

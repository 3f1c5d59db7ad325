import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Settings

# Loggers of the Supabase SDK stack, very chatty below WARNING
LIBRARY_LOGGERS = ("httpx", "httpcore", "hpack", "realtime", "websockets")


def setup_logging(settings: Settings) -> None:
    """Log to the console and, unless ``file_path`` is empty, to a rotating file"""
    config = settings.logging
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.file_path:
        Path(config.file_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                config.file_path,
                maxBytes=config.max_size_mb * 1024 * 1024,
                backupCount=config.backup_count,
            )
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    library_level = getattr(logging, config.library_level.upper())
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name"""
    return logging.getLogger(name)

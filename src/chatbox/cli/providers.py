"""Factory functions for CLI.

Centralizes creation of the key-value store and the effective settings from
environment variables. Hides configuration details from command
implementations.
"""

import logging
import os
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from ..llm import get_provider_info
from ..settings import API_KEY_ENV_VARS, ChatSettings
from ..storage import KeyValueStore, create_key_value_store

DEFAULT_DB_PATH = Path("~/.chatbox/chatbox.db")

# Default console for output
_console = Console()


def configure_logging(level: str = "warning", console: Console | None = None) -> None:
    """Route log records through rich.

    Args:
        level: debug, info, warning or error
        console: Console to write to (stderr console by default)
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=console or Console(stderr=True), show_path=False)],
        force=True,
    )


def get_store() -> KeyValueStore:
    """Create the key-value store from environment variables.

    Returns:
        Key-value store instance (not yet connected)

    Environment variables:
        CHATBOX_STORE: Backend type, sqlite or memory (default: sqlite)
        CHATBOX_DB_PATH: SQLite file path (default: ~/.chatbox/chatbox.db)
    """
    backend = os.getenv("CHATBOX_STORE", "sqlite").lower()
    if backend == "sqlite":
        path = Path(os.getenv("CHATBOX_DB_PATH", str(DEFAULT_DB_PATH))).expanduser()
        return create_key_value_store("sqlite", path=path)
    return create_key_value_store(backend)


def resolve_settings(settings: ChatSettings, console: Console | None = None) -> ChatSettings:
    """Fill in the API key from the environment when none is stored.

    Args:
        settings: Stored settings
        console: Optional Rich console for warnings

    Returns:
        Settings snapshot to use for the next turn

    Environment variables:
        OPENAI_API_KEY, SILICONFLOW_API_KEY, DEEPSEEK_API_KEY,
        ANTHROPIC_API_KEY, GEMINI_API_KEY
    """
    if settings.api_key:
        return settings

    con = console or _console
    env_var = API_KEY_ENV_VARS.get(settings.provider)
    api_key = os.getenv(env_var) if env_var else None
    if api_key:
        return settings.model_copy(update={"api_key": api_key})

    info = get_provider_info(settings.provider)
    if env_var and info.requires_api_key and info.streaming_implemented:
        con.print(
            f"[yellow]Warning: no API key stored for {settings.provider_display_name} "
            f"and {env_var} is not set[/yellow]"
        )
    return settings

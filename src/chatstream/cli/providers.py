"""Provider factory functions for CLI.

Centralizes creation of settings and stores from environment variables.
Hides configuration details from command implementations.
"""

from ..chat import ConversationStore, create_conversation_store
from ..config import ClientSettings


def get_settings(endpoint: str | None = None, log_level: str | None = None) -> ClientSettings:
    """Load settings from the environment, with command-line overrides.

    Args:
        endpoint: Overrides CHATSTREAM_ENDPOINT if given
        log_level: Overrides CHATSTREAM_LOG_LEVEL if given

    Returns:
        Resolved client settings
    """
    settings = ClientSettings.from_env()
    overrides: dict[str, str] = {}
    if endpoint:
        overrides["endpoint"] = endpoint
    if log_level:
        overrides["log_level"] = log_level
    return ClientSettings.model_validate({**settings.model_dump(), **overrides})


def get_store(settings: ClientSettings) -> ConversationStore:
    """Create a conversation store streaming from the configured endpoint."""
    return create_conversation_store(
        "sse",
        endpoint=settings.endpoint,
        connect_timeout=settings.connect_timeout,
        read_timeout=settings.read_timeout,
    )

"""Factory for creating conversation stores."""

from typing import Any

from ..stream import create_stream_client
from .ids import IdFactory, new_message_id
from .store import ConversationStore


def create_conversation_store(
    client: str = "sse",
    id_factory: IdFactory = new_message_id,
    **kwargs: Any
) -> ConversationStore:
    """Create a conversation store with its own stream client.

    Args:
        client: Stream client type ("sse" or "scripted")
        id_factory: Zero-argument callable producing message ids
        **kwargs: Client-specific configuration, see create_stream_client

    Returns:
        ConversationStore instance owning the new client

    Raises:
        ValueError: If client type is not supported
    """
    stream_client = create_stream_client(client, **kwargs)
    return ConversationStore(stream_client, id_factory=id_factory)

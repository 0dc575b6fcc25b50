"""
Chatstream: a client-side conversation store for streamed chat answers.

Keeps the transcript of one conversation and grows the pending answer as
tokens arrive from a server-sent event stream.
"""

__version__ = "0.1.0"

from .chat import (
    ChatPhase,
    ConversationState,
    ConversationStore,
    Message,
    Sender,
    create_conversation_store,
)
from .config import ClientSettings
from .stream import StreamClient, StreamEnd, StreamEndReason, create_stream_client

__all__ = [
    "ChatPhase",
    "ClientSettings",
    "ConversationState",
    "ConversationStore",
    "Message",
    "Sender",
    "StreamClient",
    "StreamEnd",
    "StreamEndReason",
    "create_conversation_store",
    "create_stream_client",
]

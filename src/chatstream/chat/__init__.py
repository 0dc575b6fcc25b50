"""Conversation state module for chatstream.

Keeps the running transcript and fills in answers as they stream in.
"""

from .context import build_payload, compose_prompt, fold_messages
from .factory import create_conversation_store
from .ids import new_message_id, sequential_ids
from .models import ChatPhase, ConversationState, Message, Sender
from .store import ConversationStore, Observer

__all__ = [
    "ChatPhase",
    "ConversationState",
    "ConversationStore",
    "Message",
    "Observer",
    "Sender",
    "build_payload",
    "compose_prompt",
    "create_conversation_store",
    "fold_messages",
    "new_message_id",
    "sequential_ids",
]

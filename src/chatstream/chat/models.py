"""Data models for the conversation state.

These models define the transcript and the store's phase, independent of
how answers are streamed in or how the state is rendered.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChatPhase(str, Enum):
    """Top-level mode of the conversation store."""

    IDLE = "idle"            # No answer in flight
    RECEIVING = "receiving"  # A send is waiting on its stream


class Sender(str, Enum):
    """Who wrote a message."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single chat message in the transcript.

    Assistant messages start empty and grow as stream tokens arrive.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(frozen=True, description="Opaque unique identifier")
    sender: Sender = Field(alias="from", frozen=True, description="Author of the message")
    text: str = Field(default="", description="Message content, only ever appended to")
    rag_mode: bool = Field(default=False, frozen=True, description="Whether the turn requested RAG")
    model: str | None = Field(default=None, description="Backend model that produced the answer")


class ConversationState(BaseModel):
    """Complete state of one conversation.

    This is what observers of the store receive on every change.
    """

    phase: ChatPhase = Field(default=ChatPhase.IDLE)
    transcript: list[Message] = Field(default_factory=list)
    last_error: str | None = Field(
        default=None,
        description="Failure of the most recent stream that did not end cleanly"
    )

    @property
    def is_receiving(self) -> bool:
        return self.phase == ChatPhase.RECEIVING

    def get_message(self, message_id: str) -> Message | None:
        """Find a message by id.

        Args:
            message_id: Identifier returned when the message was appended

        Returns:
            The message, or None if it is not in the transcript
        """
        for message in self.transcript:
            if message.id == message_id:
                return message
        return None

    def messages_from(self, sender: Sender) -> list[Message]:
        """Get all messages from one sender in transcript order."""
        return [message for message in self.transcript if message.sender == sender]

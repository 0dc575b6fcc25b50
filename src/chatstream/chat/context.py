"""Context assembly for outbound questions.

Gives the service conversational memory by folding earlier turns into the
text sent with each question.
"""

from collections.abc import Sequence

from ..config import CONTEXT_SEPARATOR
from .models import Message, Sender

PROMPT_TEMPLATE = """Using this as context only:
My previous messages:
{user_fold}
Your previous responses:
{assistant_fold}
Primarily answer this question:
{question}"""


def fold_messages(transcript: Sequence[Message], sender: Sender) -> str:
    """Concatenate the texts of one sender's messages.

    Args:
        transcript: Messages in transcript order
        sender: Whose messages to fold

    Returns:
        Message texts joined by newlines, in transcript order
    """
    return CONTEXT_SEPARATOR.join(
        message.text for message in transcript if message.sender == sender
    )


def compose_prompt(question: str, user_fold: str, assistant_fold: str) -> str:
    """Frame a question with the folded conversation as context."""
    return PROMPT_TEMPLATE.format(
        user_fold=user_fold,
        assistant_fold=assistant_fold,
        question=question,
    )


def build_payload(
    question: str,
    transcript: Sequence[Message],
    bypass_context: bool = False
) -> str:
    """Build the text sent to the service for a question.

    The transcript is folded as given. When called from a send, it already
    holds the new question and the empty answer placeholder, so both take
    part in the fold.

    Args:
        question: The question as the user typed it
        transcript: Current transcript
        bypass_context: Send the bare question without any context

    Returns:
        Payload for the service's `text` parameter
    """
    if bypass_context:
        return question

    return compose_prompt(
        question,
        user_fold=fold_messages(transcript, Sender.USER),
        assistant_fold=fold_messages(transcript, Sender.ASSISTANT),
    )
